"""
Tests for DailyMate models

Test strategy:
1. Unit tests for individual components (models, validators, engine)
2. Integration tests for flows (against the in-memory backend)
3. No real API calls in tests (Google Sheets is faked)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from dailymate.models import (
    Account,
    AccountType,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    BankAccountDetails,
    Bill,
    BillStatus,
    Budget,
    BudgetPeriod,
    DEFAULT_CATEGORIES,
    DueDateType,
    FixedDepositDetails,
    LoanDetails,
    PlannedTransaction,
    Recurrence,
    Transaction,
    TransactionSplit,
    TransactionType,
    new_entity_id,
)


class TestBaseModels:
    """Tests for record plumbing shared by every model."""

    def test_new_entity_ids_are_unique(self):
        """Test that ids generated in a tight loop do not collide."""
        ids = {new_entity_id() for _ in range(500)}
        assert len(ids) == 500

    def test_to_record_uses_camel_case(self):
        """Test that stored records use camelCase keys."""
        tx = Transaction(
            account_id="acc-1",
            category_id="food",
            type=TransactionType.EXPENSE,
            amount=Decimal("250.00"),
            date=date(2024, 6, 1),
        )
        record = tx.to_record()
        assert record["accountId"] == "acc-1"
        assert record["categoryId"] == "food"
        assert "toAccountId" not in record  # None values are left out

    def test_records_load_from_camel_case(self):
        """Test that camelCase records validate back into models."""
        tx = Transaction.model_validate({
            "id": "t1",
            "accountId": "acc-1",
            "categoryId": "food",
            "type": "expense",
            "amount": "99.50",
            "date": "2024-06-01",
        })
        assert tx.account_id == "acc-1"
        assert tx.amount == Decimal("99.50")

    def test_touched_refreshes_updated_at(self):
        """Test that touched() returns a changed copy with a new updated_at."""
        account = Account(name="Cash", type=AccountType.CASH, balance=Decimal("10"))
        later = datetime(2030, 1, 1)
        changed = account.touched(now=later, balance=Decimal("20"))
        assert changed.balance == Decimal("20")
        assert changed.updated_at == later
        assert account.balance == Decimal("10")


class TestAccountModels:
    """Tests for Account and its type-specific details."""

    def test_details_kind_is_taken_from_account_type(self):
        """Test that untagged details are keyed by the account type."""
        account = Account(
            name="HDFC",
            type=AccountType.SAVINGS_ACCOUNT,
            details={"bankName": "HDFC Bank", "ifscCode": "HDFC0001"},
        )
        assert isinstance(account.details, BankAccountDetails)
        assert account.details.bank_name == "HDFC Bank"

    def test_details_must_match_account_type(self):
        """Test that details of another account family are rejected."""
        with pytest.raises(ValueError, match="do not match"):
            Account(
                name="FD",
                type=AccountType.CASH,
                details=FixedDepositDetails(kind="Fixed Deposit (FD)"),
            )

    def test_deposit_end_date_is_maturity(self):
        """Test the reminder end date of a fixed deposit."""
        details = FixedDepositDetails(kind="Fixed Deposit (FD)", maturity_date=date(2025, 3, 1))
        assert details.end_date_for_reminders == date(2025, 3, 1)

    def test_loan_emi_alias(self):
        """Test that the EMI field keeps its stored name."""
        account = Account(
            name="Home loan",
            type=AccountType.LOAN,
            details={"loanEMI": "15000.00", "loanEndDate": "2040-01-01"},
        )
        assert isinstance(account.details, LoanDetails)
        assert account.details.loan_emi == Decimal("15000.00")
        assert account.to_record()["details"]["loanEMI"] == "15000.00"

    def test_credit_card_number_is_last_four_digits(self):
        """Test that full card numbers are rejected."""
        with pytest.raises(ValueError):
            Account(
                name="Card",
                type=AccountType.CREDIT_CARD,
                details={"creditCardNumber": "4111111111111111"},
            )

    def test_opening_balance_defaults_to_unknown(self):
        """Test that a new account does not claim an opening balance."""
        account = Account(name="Cash", type=AccountType.CASH)
        assert account.opening_balance is None
        assert account.balance == Decimal("0")


class TestTransactionModels:
    """Tests for Transaction invariants."""

    def test_transfer_requires_destination(self):
        """Test that a transfer without a destination is rejected."""
        with pytest.raises(ValueError, match="destination"):
            Transaction(
                account_id="acc-1",
                category_id="other-expense",
                type=TransactionType.TRANSFER,
                amount=Decimal("10"),
                date=date(2024, 6, 1),
            )

    def test_transfer_to_same_account_rejected(self):
        """Test that source and destination must differ."""
        with pytest.raises(ValueError, match="same account"):
            Transaction(
                account_id="acc-1",
                to_account_id="acc-1",
                category_id="other-expense",
                type=TransactionType.TRANSFER,
                amount=Decimal("10"),
                date=date(2024, 6, 1),
            )

    def test_non_transfer_cannot_have_destination(self):
        """Test that only transfers carry a destination account."""
        with pytest.raises(ValueError):
            Transaction(
                account_id="acc-1",
                to_account_id="acc-2",
                category_id="food",
                type=TransactionType.EXPENSE,
                amount=Decimal("10"),
                date=date(2024, 6, 1),
            )

    def test_amount_must_be_positive(self):
        """Test that zero and negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(
                account_id="acc-1",
                category_id="food",
                type=TransactionType.EXPENSE,
                amount=Decimal("0"),
                date=date(2024, 6, 1),
            )

    def test_counterpart_accounts(self):
        """Test the accounts a transfer touches."""
        tx = Transaction(
            account_id="acc-1",
            to_account_id="acc-2",
            category_id="other-expense",
            type=TransactionType.TRANSFER,
            amount=Decimal("10"),
            date=date(2024, 6, 1),
        )
        assert tx.counterpart_accounts == ("acc-1", "acc-2")

    def test_split_ids_must_be_unique(self):
        """Test that a transaction cannot hold the same split twice."""
        split = TransactionSplit(id="s1", category_id="food", amount=Decimal("5"))
        with pytest.raises(ValueError, match="unique"):
            Transaction(
                account_id="acc-1",
                category_id="food",
                type=TransactionType.EXPENSE,
                amount=Decimal("10"),
                date=date(2024, 6, 1),
                splits=[split, split],
            )


class TestScheduleModels:
    """Tests for planned transactions and bills."""

    def test_planned_end_date_before_start_rejected(self):
        """Test that a schedule cannot end before it starts."""
        with pytest.raises(ValueError, match="End date"):
            PlannedTransaction(
                account_id="acc-1",
                category_id="salary",
                type=TransactionType.INCOME,
                amount=Decimal("50000"),
                scheduled_date=date(2024, 6, 1),
                recurrence=Recurrence.MONTHLY,
                end_date=date(2024, 5, 1),
            )

    def test_fixed_bill_requires_due_date(self):
        """Test that a fixed bill needs its due date."""
        with pytest.raises(ValueError, match="due date"):
            Bill(
                name="Insurance",
                amount=Decimal("12000"),
                category_id="bills",
                account_id="acc-1",
                due_date_type=DueDateType.FIXED,
                start_date=date(2024, 1, 1),
            )

    def test_recurring_bill_requires_due_day(self):
        """Test that a recurring bill needs its due day."""
        with pytest.raises(ValueError, match="due day"):
            Bill(
                name="Rent",
                amount=Decimal("20000"),
                category_id="bills",
                account_id="acc-1",
                due_date_type=DueDateType.RECURRING,
                start_date=date(2024, 1, 1),
            )

    def test_reminder_days_are_normalized(self):
        """Test that reminder days are deduplicated, largest first."""
        bill = Bill(
            name="Rent",
            amount=Decimal("20000"),
            category_id="bills",
            account_id="acc-1",
            due_date_type=DueDateType.RECURRING,
            due_day=5,
            start_date=date(2024, 1, 1),
            notify_days_before=[1, 7, 3, 7],
        )
        assert bill.notify_days_before == [7, 3, 1]

    def test_negative_reminder_days_rejected(self):
        """Test that reminders cannot be set after the due date."""
        with pytest.raises(ValueError, match="negative"):
            Bill(
                name="Rent",
                amount=Decimal("20000"),
                category_id="bills",
                account_id="acc-1",
                due_date_type=DueDateType.RECURRING,
                due_day=5,
                start_date=date(2024, 1, 1),
                notify_days_before=[-1],
            )

    def test_bill_is_settled(self):
        """Test that paid and cancelled bills are settled."""
        bill = Bill(
            name="Rent",
            amount=Decimal("20000"),
            category_id="bills",
            account_id="acc-1",
            due_date_type=DueDateType.RECURRING,
            due_day=5,
            start_date=date(2024, 1, 1),
        )
        assert bill.is_settled is False
        assert bill.model_copy(update={"status": BillStatus.PAID}).is_settled is True
        assert bill.model_copy(update={"status": BillStatus.CANCELLED}).is_settled is True


class TestBudgetModels:
    """Tests for budget validation."""

    def test_budget_end_before_start_rejected(self):
        with pytest.raises(ValueError, match="end date"):
            Budget(
                name="Food",
                category_id="food",
                amount=Decimal("5000"),
                period=BudgetPeriod.MONTHLY,
                start_date=date(2024, 6, 1),
                end_date=date(2024, 5, 1),
            )


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Test transaction added",
        )
        assert event.event_type == AuditEventType.TRANSACTION_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.ENTITY_SAVED,
            description="Account saved",
            details={"name": "HDFC"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "entity_saved"
        assert log_dict["details"]["name"] == "HDFC"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.bill_paid(
            bill_id="bill-1",
            amount="1500.00",
            transaction_id="tx-1",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "bill_paid"  # event_type
        assert row[5] == "bill-1"  # entity_id
        assert row[10] == "True"  # is_user_action

    def test_audit_event_builder_drift(self):
        """Test that repaired drift gets its own event type."""
        correlation_id = uuid4()
        detected = AuditEventBuilder.balance_drift("acc-1", "10", "20", repaired=False)
        repaired = AuditEventBuilder.balance_drift(
            "acc-1", "10", "20", repaired=True, correlation_id=correlation_id
        )
        assert detected.event_type == AuditEventType.BALANCE_DRIFT_DETECTED
        assert repaired.event_type == AuditEventType.BALANCE_DRIFT_REPAIRED
        assert repaired.severity == AuditSeverity.WARNING
        assert repaired.correlation_id == correlation_id

    def test_audit_event_builder_planned_finished(self):
        """Test the event type of a finished planned transaction."""
        completed = AuditEventBuilder.planned_finished("p1", "completed")
        cancelled = AuditEventBuilder.planned_finished("p1", "cancelled")
        assert completed.event_type == AuditEventType.PLANNED_TRANSACTION_COMPLETED
        assert cancelled.event_type == AuditEventType.PLANNED_TRANSACTION_CANCELLED


class TestDefaultCategories:
    """Tests for the seeded categories."""

    def test_default_category_ids(self):
        """Test that the expected categories exist."""
        ids = {category.id for category in DEFAULT_CATEGORIES}
        for expected in ["food", "transport", "bills", "salary", "other-income", "other-expense"]:
            assert expected in ids

    def test_default_category_count(self):
        assert len(DEFAULT_CATEGORIES) == 15


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
