"""
Scheduled Money Models

Templates that describe money movements in the future:
- PlannedTransaction: materialized into concrete Transactions when due
- Bill: a payment obligation with a due date and a payment status

CRITICAL: The bookkeeping fields (``last_created_date``,
``next_occurrence_date``, ``next_due_date``, ``status``) are derived by the
engine. Callers may set them, but the engine overwrites them on the next
recalculation.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from dailymate.models.base import TimestampedModel
from dailymate.models.finance import Money, PositiveMoney, TransactionFields


class Recurrence(str, Enum):
    """How a due date advances after each cycle."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PlannedTransactionStatus(str, Enum):
    """
    Lifecycle of a planned transaction.

    A CANCELLED planned transaction is never processed again.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class BillStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class DueDateType(str, Enum):
    """
    FIXED: a single calendar date (``due_date``).
    RECURRING: a day of the month (``due_day``).
    """
    FIXED = "fixed"
    RECURRING = "recurring"


def _validate_reminder_days(v: list[int]) -> list[int]:
    if any(day < 0 for day in v):
        raise ValueError("Reminder days cannot be negative")
    return sorted(set(v), reverse=True)


# =============================================================================
# PLANNED TRANSACTION
# =============================================================================

class PlannedTransaction(TransactionFields):
    """
    Template for future transactions.

    One-time templates (``recurrence=none``) materialize once and become
    COMPLETED. Recurring templates advance ``next_occurrence_date`` after
    each materialization until it passes ``end_date``, then become
    CANCELLED.
    """

    scheduled_date: date = Field(
        ...,
        description="First date this transaction should occur"
    )
    recurrence: Recurrence = Recurrence.NONE
    end_date: Optional[date] = Field(
        default=None,
        description="Last date an occurrence may fall on"
    )

    # Notification settings
    enable_notifications: bool = True
    notify_days_before: list[int] = Field(default_factory=list)
    notify_on_day: bool = False

    auto_create: bool = Field(
        default=False,
        description="Materialize automatically when due"
    )

    # Tracking
    status: PlannedTransactionStatus = PlannedTransactionStatus.PENDING
    last_created_date: Optional[date] = None
    next_occurrence_date: Optional[date] = None

    check_reminder_days = field_validator("notify_days_before")(_validate_reminder_days)

    @model_validator(mode="after")
    def validate_schedule(self) -> "PlannedTransaction":
        if self.end_date and self.end_date < self.scheduled_date:
            raise ValueError("End date cannot be before the scheduled date")
        return self


# =============================================================================
# BILL
# =============================================================================

class Bill(TimestampedModel):
    """
    A payment obligation.

    Exactly one of ``due_date`` / ``due_day`` is meaningful, selected by
    ``due_date_type``.
    """

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: PositiveMoney
    category_id: str = Field(..., min_length=1)
    account_id: str = Field(
        ...,
        min_length=1,
        description="Account the bill is paid from"
    )
    payee_id: Optional[str] = Field(
        default=None,
        description="Contact ID of the biller"
    )

    # Due date settings
    due_date_type: DueDateType
    due_date: Optional[date] = None
    due_day: Optional[int] = Field(default=None, ge=1, le=31)

    # Recurrence settings
    recurrence: Recurrence = Recurrence.MONTHLY
    start_date: date
    end_date: Optional[date] = None

    # Payment tracking
    last_paid_date: Optional[date] = None
    last_paid_amount: Optional[Money] = None
    paid_through_date: Optional[date] = Field(
        default=None,
        description="Due date of the cycle the last payment settled"
    )
    next_due_date: Optional[date] = None
    status: BillStatus = BillStatus.PENDING

    # Notification settings
    enable_notifications: bool = True
    notify_days_before: list[int] = Field(default_factory=lambda: [7, 3, 1])
    notify_on_due_date: bool = True

    auto_pay: bool = Field(
        default=False,
        description="Record the payment automatically when due"
    )

    color: str = "#95E1D3"
    icon: Optional[str] = None

    check_reminder_days = field_validator("notify_days_before")(_validate_reminder_days)

    @model_validator(mode="after")
    def validate_due_settings(self) -> "Bill":
        """The due field selected by ``due_date_type`` must be present."""
        if self.due_date_type == DueDateType.FIXED and self.due_date is None:
            raise ValueError("Fixed bills require a due date")
        if self.due_date_type == DueDateType.RECURRING and self.due_day is None:
            raise ValueError("Recurring bills require a due day")
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def is_settled(self) -> bool:
        """Paid or cancelled; nothing is owed right now."""
        return self.status in (BillStatus.PAID, BillStatus.CANCELLED)
