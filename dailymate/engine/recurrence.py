"""
Date/Recurrence Calculator

Pure functions computing the next occurrence of a schedule and the
due / ended predicates used by the planned-transaction processor and the
notification scheduler.

DESIGN DECISION: Monthly and yearly steps are anchored to the day of the
original scheduled date and clamped to the month length. A template
scheduled on Jan 31 occurs on Feb 29 (or 28), then Mar 31, and never
drifts to "Mar 3".
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from dailymate.models.schedule import (
    PlannedTransaction,
    PlannedTransactionStatus,
    Recurrence,
)


DateLike = Union[date, datetime]


_RECURRENCE_LABELS = {
    Recurrence.NONE: "One-time",
    Recurrence.DAILY: "Daily",
    Recurrence.WEEKLY: "Weekly",
    Recurrence.MONTHLY: "Monthly",
    Recurrence.YEARLY: "Yearly",
}

_STATUS_LABELS = {
    PlannedTransactionStatus.PENDING: "Pending",
    PlannedTransactionStatus.COMPLETED: "Completed",
    PlannedTransactionStatus.CANCELLED: "Cancelled",
    PlannedTransactionStatus.SKIPPED: "Skipped",
}


def to_date(value: DateLike) -> date:
    """Truncate a datetime to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def next_occurrence(
    scheduled_date: DateLike,
    recurrence: Recurrence,
    last_created_date: Optional[DateLike] = None,
) -> date:
    """
    Compute the occurrence following the last materialized one.

    Args:
        scheduled_date: First date of the schedule. Its day of month anchors
            monthly and yearly steps.
        recurrence: Schedule type.
        last_created_date: Date of the last materialization, if any. Steps
            are taken from here when given, else from ``scheduled_date``.

    Returns:
        The next occurrence. ``Recurrence.NONE`` returns ``scheduled_date``
        unchanged.
    """
    scheduled = to_date(scheduled_date)
    base = to_date(last_created_date) if last_created_date else scheduled

    if recurrence == Recurrence.DAILY:
        return base + timedelta(days=1)
    if recurrence == Recurrence.WEEKLY:
        return base + timedelta(days=7)
    if recurrence == Recurrence.MONTHLY:
        # relativedelta clamps ``day`` to the length of the target month
        return base + relativedelta(months=1, day=scheduled.day)
    if recurrence == Recurrence.YEARLY:
        return base + relativedelta(years=1, month=scheduled.month, day=scheduled.day)
    return scheduled


def is_due(target: DateLike, today: Optional[DateLike] = None) -> bool:
    """True iff ``target`` falls on or before ``today``; time of day is ignored."""
    today = to_date(today) if today else date.today()
    return to_date(target) <= today


def has_reached_end_date(
    next_date: DateLike,
    end_date: Optional[DateLike],
    recurrence: Recurrence,
) -> bool:
    """True iff a recurring schedule has moved strictly past its end date."""
    if recurrence == Recurrence.NONE or end_date is None:
        return False
    return to_date(next_date) > to_date(end_date)


# =============================================================================
# PLANNED TRANSACTION WRAPPERS
# =============================================================================

def planned_due_date(planned: PlannedTransaction) -> date:
    """The date the template will next materialize on."""
    return planned.next_occurrence_date or planned.scheduled_date


def is_planned_transaction_due(
    planned: PlannedTransaction,
    today: Optional[DateLike] = None,
) -> bool:
    return is_due(planned_due_date(planned), today)


def planned_has_reached_end_date(planned: PlannedTransaction) -> bool:
    return has_reached_end_date(planned_due_date(planned), planned.end_date, planned.recurrence)


def upcoming_occurrences(
    planned: PlannedTransaction,
    until: DateLike,
    limit: int = 50,
) -> list[date]:
    """
    List the dates a planned transaction will still materialize on, up to
    and including ``until``.

    Finished templates (completed, cancelled, skipped) have none. A one-time
    template has at most one.
    """
    if planned.status != PlannedTransactionStatus.PENDING:
        return []

    until = to_date(until)
    occurrences: list[date] = []
    current = planned_due_date(planned)

    while len(occurrences) < limit and current <= until:
        if has_reached_end_date(current, planned.end_date, planned.recurrence):
            break
        occurrences.append(current)
        if planned.recurrence == Recurrence.NONE:
            break
        current = next_occurrence(planned.scheduled_date, planned.recurrence, current)

    return occurrences


def format_recurrence(recurrence: Recurrence) -> str:
    return _RECURRENCE_LABELS.get(recurrence, "One-time")


def planned_status_text(status: Optional[PlannedTransactionStatus]) -> str:
    if status is None:
        return "Pending"
    return _STATUS_LABELS.get(status, "Pending")
