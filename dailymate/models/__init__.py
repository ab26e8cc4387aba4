"""
Data Models Package

This package contains all Pydantic models used by DailyMate.
All data flowing through the system must conform to these schemas.
"""

from dailymate.models.base import (
    CamelModel,
    RecordModel,
    TimestampedModel,
    new_entity_id,
    utc_now,
)
from dailymate.models.finance import (
    DEFAULT_CATEGORIES,
    Account,
    AccountDetails,
    AccountType,
    BankAccountDetails,
    BondDetails,
    Budget,
    BudgetPeriod,
    Category,
    CategoryType,
    Contact,
    CreditCardDetails,
    DigitalWalletDetails,
    FixedDepositDetails,
    Goal,
    GoldDetails,
    Label,
    LoanDetails,
    MISDetails,
    MutualFundDetails,
    NPSDetails,
    PlainDetails,
    PPFDetails,
    RecurringDepositDetails,
    StockDetails,
    Transaction,
    TransactionSplit,
    TransactionStatus,
    TransactionType,
)
from dailymate.models.schedule import (
    Bill,
    BillStatus,
    DueDateType,
    PlannedTransaction,
    PlannedTransactionStatus,
    Recurrence,
)
from dailymate.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Base
    "CamelModel",
    "RecordModel",
    "TimestampedModel",
    "new_entity_id",
    "utc_now",
    # Finance models
    "DEFAULT_CATEGORIES",
    "Account",
    "AccountDetails",
    "AccountType",
    "BankAccountDetails",
    "BondDetails",
    "Budget",
    "BudgetPeriod",
    "Category",
    "CategoryType",
    "Contact",
    "CreditCardDetails",
    "DigitalWalletDetails",
    "FixedDepositDetails",
    "Goal",
    "GoldDetails",
    "Label",
    "LoanDetails",
    "MISDetails",
    "MutualFundDetails",
    "NPSDetails",
    "PlainDetails",
    "PPFDetails",
    "RecurringDepositDetails",
    "StockDetails",
    "Transaction",
    "TransactionSplit",
    "TransactionStatus",
    "TransactionType",
    # Schedule models
    "Bill",
    "BillStatus",
    "DueDateType",
    "PlannedTransaction",
    "PlannedTransactionStatus",
    "Recurrence",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
