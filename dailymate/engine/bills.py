"""
Bill State Machine

Computes the next due date and the status of a Bill from its schedule and
payment history.

States: pending, paid, overdue, cancelled.

DESIGN DECISION: Paying is an explicit action (``mark_bill_paid``), never a
side effect of recalculation. Recalculation only ever moves a bill between
pending and overdue, or re-opens a paid recurring bill for its next cycle.
A paid fixed bill stays paid until ``reset_bill`` is called.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from dailymate.engine.recurrence import is_due
from dailymate.models.finance import Transaction, TransactionStatus, TransactionType
from dailymate.models.schedule import Bill, BillStatus, DueDateType, Recurrence


class BillError(Exception):
    """Base exception for bill state transitions."""
    pass


def _due_in_month(year: int, month: int, due_day: int) -> date:
    """The bill's due day in a given month, clamped to the month length."""
    return date(year, month, 1) + relativedelta(day=due_day)


def _cycle_anchor(bill: Bill) -> date:
    """Earliest date the next unpaid cycle may fall on."""
    if bill.last_paid_date:
        return max(bill.start_date, bill.last_paid_date + timedelta(days=1))
    return bill.start_date


def calculate_next_due_date(bill: Bill) -> Optional[date]:
    """
    Next date the bill falls due.

    Fixed bills are always due on ``due_date``. Recurring bills are due on
    the first ``due_day`` on or after the later of ``start_date`` and the
    day after the last payment; yearly bills only in the start month.

    Returns:
        The due date, or None when it would fall after ``end_date`` (the
        bill is dormant).
    """
    if bill.due_date_type == DueDateType.FIXED:
        return bill.due_date

    anchor = _cycle_anchor(bill)

    if bill.recurrence == Recurrence.YEARLY:
        candidate = _due_in_month(anchor.year, bill.start_date.month, bill.due_day)
        if candidate < anchor:
            candidate = _due_in_month(anchor.year + 1, bill.start_date.month, bill.due_day)
    else:
        candidate = _due_in_month(anchor.year, anchor.month, bill.due_day)
        if candidate < anchor:
            following = anchor + relativedelta(months=1)
            candidate = _due_in_month(following.year, following.month, bill.due_day)

    if bill.end_date and candidate > bill.end_date:
        return None
    return candidate


def _with_changes(bill: Bill, **changes) -> Bill:
    """Return ``bill`` itself when nothing changes, else a touched copy."""
    if all(getattr(bill, field) == value for field, value in changes.items()):
        return bill
    return bill.touched(**changes)


def recalculate_bill_status(bill: Bill, today: Optional[date] = None) -> Bill:
    """
    Refresh ``next_due_date`` and derive the status.

    Idempotent: recalculating an unchanged bill on the same day returns it
    unchanged (same object, same ``updated_at``).
    """
    today = today or date.today()

    if bill.status == BillStatus.CANCELLED:
        return bill

    next_due = calculate_next_due_date(bill)

    if bill.due_date_type == DueDateType.FIXED and bill.status == BillStatus.PAID:
        return _with_changes(bill, next_due_date=next_due)

    if next_due is None:
        # Dormant: past its end date, status left as it was
        return _with_changes(bill, next_due_date=None)

    status = BillStatus.OVERDUE if next_due < today else BillStatus.PENDING
    return _with_changes(bill, next_due_date=next_due, status=status)


def mark_bill_paid(
    bill: Bill,
    today: Optional[date] = None,
    amount: Optional[Decimal] = None,
) -> Bill:
    """
    Record a payment of the bill.

    Raises:
        BillError: If the bill is cancelled
    """
    if bill.status == BillStatus.CANCELLED:
        raise BillError(f"Bill {bill.id} is cancelled and cannot be paid")

    return bill.touched(
        status=BillStatus.PAID,
        last_paid_date=today or date.today(),
        last_paid_amount=amount if amount is not None else bill.amount,
        paid_through_date=calculate_next_due_date(bill),
    )


def reset_bill(bill: Bill, today: Optional[date] = None) -> Bill:
    """Re-open a paid (or cancelled) bill and recalculate it from scratch."""
    reopened = bill.touched(status=BillStatus.PENDING, paid_through_date=None)
    return recalculate_bill_status(reopened, today)


def cancel_bill(bill: Bill) -> Bill:
    if bill.status == BillStatus.CANCELLED:
        return bill
    return bill.touched(status=BillStatus.CANCELLED)


def is_cycle_paid(bill: Bill, next_due: date) -> bool:
    """
    True when the last payment already settled the cycle due on ``next_due``.

    CRITICAL: A recurring bill paid before its due day re-opens for that same
    due date (the next cycle is anchored the day after the payment), so
    auto-pay must check ``paid_through_date`` rather than the status.
    """
    return bill.paid_through_date is not None and next_due <= bill.paid_through_date


def is_bill_due_for_auto_pay(bill: Bill, today: Optional[date] = None) -> bool:
    """An auto-pay bill whose current cycle is due and not yet paid."""
    if not bill.auto_pay or bill.status not in (BillStatus.PENDING, BillStatus.OVERDUE):
        return False
    next_due = calculate_next_due_date(bill)
    if next_due is None or is_cycle_paid(bill, next_due):
        return False
    return is_due(next_due, today)


def build_bill_payment(
    bill: Bill,
    today: Optional[date] = None,
    amount: Optional[Decimal] = None,
) -> Transaction:
    """Materialize a payment of the bill as an expense transaction."""
    return Transaction(
        account_id=bill.account_id,
        category_id=bill.category_id,
        type=TransactionType.EXPENSE,
        amount=amount if amount is not None else bill.amount,
        description=bill.name,
        date=today or date.today(),
        payee_ids=[bill.payee_id] if bill.payee_id else [],
        status=TransactionStatus.COMPLETED,
    )
