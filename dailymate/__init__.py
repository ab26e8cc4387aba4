"""
DailyMate - Personal Finance Core

The data and behaviour behind a personal-finance app: accounts,
transactions, budgets, goals, planned transactions and bills.

DESIGN PRINCIPLES:
1. Balances change only through the reconciliation protocol
2. Fail early, fail visibly
3. No silent corrections (drift is reported; repair is opt-in)
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "0.1.0"
__author__ = "DailyMate Team"
