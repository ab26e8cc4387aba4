"""
Shared fixtures.

Everything runs against the in-memory backend; no test touches Google
Sheets or the network.
"""

from datetime import date
from decimal import Decimal

import pytest

from dailymate.audit import AuditLogger
from dailymate.models import Account, AccountType, Transaction, TransactionType
from dailymate.services.storage import (
    InMemoryAuditStorage,
    InMemoryEntityStorage,
    create_memory_gateway,
)


TODAY = date(2024, 6, 15)


def _make_transaction(**overrides) -> Transaction:
    fields = {
        "account_id": "acc-1",
        "category_id": "food",
        "type": TransactionType.EXPENSE,
        "amount": Decimal("100.00"),
        "date": TODAY,
    }
    fields.update(overrides)
    return Transaction(**fields)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def make_transaction():
    """Factory: an expense of 100 from ``acc-1`` on TODAY unless overridden."""
    return _make_transaction


@pytest.fixture
def accounts():
    """A bank account and a wallet with known balances."""
    return [
        Account(
            id="acc-1",
            name="HDFC Savings",
            type=AccountType.SAVINGS_ACCOUNT,
            balance=Decimal("1000.00"),
            opening_balance=Decimal("1000.00"),
        ),
        Account(
            id="acc-2",
            name="Wallet",
            type=AccountType.DIGITAL_WALLET,
            balance=Decimal("500.00"),
            opening_balance=Decimal("500.00"),
        ),
    ]


@pytest.fixture
def storage(accounts):
    """Memory gateway with default categories and the two accounts."""
    gateway = create_memory_gateway()
    gateway.accounts = InMemoryEntityStorage("accounts", Account, accounts)
    return gateway


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)
