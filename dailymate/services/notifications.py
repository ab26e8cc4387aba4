"""
Notification Scheduler

DESIGN DECISION: Delivering notifications is not the finance core's job.
The core only tells a scheduler what changed; the scheduler decides which
reminders exist. ``InProcessNotificationScheduler`` computes those
reminders and keeps them in memory, keyed by a stable identifier, so a
front end (or a test) can read and deliver them.

Every scheduling call replaces the reminders previously planned for the
same record, so calling it twice is harmless.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog
from pydantic import BaseModel, Field

from dailymate.engine.bills import calculate_next_due_date
from dailymate.engine.budgets import (
    budget_end_date,
    reached_goal_milestones,
    reached_thresholds,
)
from dailymate.engine.recurrence import planned_due_date
from dailymate.models.finance import Account, Budget, Goal
from dailymate.models.schedule import (
    Bill,
    BillStatus,
    PlannedTransaction,
    PlannedTransactionStatus,
)


logger = structlog.get_logger(__name__)


class Reminder(BaseModel):
    """A notification to deliver at ``fire_at`` (local time)."""

    identifier: str
    owner: str = Field(
        default="",
        description="Record the reminder belongs to, as \"<kind>:<id>\""
    )
    title: str
    body: str
    fire_at: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class NotificationSchedulerInterface(ABC):
    """
    What the finance core calls after each mutation.

    Implementations may fail; callers treat every call as best-effort.
    """

    @abstractmethod
    async def schedule_account(self, account: Account) -> None:
        pass

    @abstractmethod
    async def cancel_account(self, account_id: str) -> None:
        pass

    @abstractmethod
    async def schedule_budget(self, budget: Budget) -> None:
        pass

    @abstractmethod
    async def cancel_budget(self, budget_id: str) -> None:
        pass

    @abstractmethod
    async def schedule_goal(self, goal: Goal) -> None:
        pass

    @abstractmethod
    async def cancel_goal(self, goal_id: str) -> None:
        pass

    @abstractmethod
    async def schedule_planned_transaction(self, planned: PlannedTransaction) -> None:
        pass

    @abstractmethod
    async def cancel_planned_transaction(self, planned_id: str) -> None:
        pass

    @abstractmethod
    async def schedule_bill(self, bill: Bill) -> None:
        pass

    @abstractmethod
    async def cancel_bill(self, bill_id: str) -> None:
        pass

    @abstractmethod
    async def check_budget_thresholds(self, budget: Budget, spending: Decimal) -> None:
        """Alert immediately for thresholds the spending has crossed."""
        pass

    @abstractmethod
    async def check_goal_milestones(self, goal: Goal, current_amount: Decimal) -> None:
        """Alert immediately for milestones the saved amount has reached."""
        pass


def _owner(kind: str, record_id: str) -> str:
    return f"{kind}:{record_id}"


def _plural_days(days: int) -> str:
    return f"{days} day" if days == 1 else f"{days} days"


class InProcessNotificationScheduler(NotificationSchedulerInterface):
    """
    Keeps scheduled reminders in memory.

    ``scheduled`` holds future reminders by identifier; ``sent`` holds the
    immediate alerts (budget thresholds, goal milestones), which also
    prevents the same alert from being raised twice.
    """

    def __init__(
        self,
        reminder_hour: int = 9,
        currency_symbol: str = "₹",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.reminder_hour = reminder_hour
        self.currency_symbol = currency_symbol
        self._clock = clock or datetime.now
        self.scheduled: dict[str, Reminder] = {}
        self.sent: dict[str, Reminder] = {}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _money(self, amount: Decimal) -> str:
        return f"{self.currency_symbol}{amount:.2f}"

    def _at_reminder_hour(self, day: date) -> datetime:
        return datetime.combine(day, time(hour=self.reminder_hour))

    def _schedule(self, reminder: Reminder) -> bool:
        """Keep the reminder if it is still in the future."""
        if reminder.fire_at <= self._clock():
            return False
        self.scheduled[reminder.identifier] = reminder
        return True

    def _send(self, reminder: Reminder) -> bool:
        """Raise an immediate alert unless it was already raised."""
        if reminder.identifier in self.sent:
            return False
        self.sent[reminder.identifier] = reminder
        logger.info("alert_raised", identifier=reminder.identifier, title=reminder.title)
        return True

    def _cancel_owner(self, owner: str, forget_sent: bool = False) -> int:
        """
        Drop the scheduled reminders of one record.

        Matches the owner exactly; identifiers are not parsed, since record ids
        may themselves contain dashes. ``forget_sent`` also clears the record's
        de-duplication entries.
        """
        identifiers = [key for key, r in self.scheduled.items() if r.owner == owner]
        for identifier in identifiers:
            del self.scheduled[identifier]
        if forget_sent:
            for identifier in [key for key, r in self.sent.items() if r.owner == owner]:
                del self.sent[identifier]
        return len(identifiers)

    def due_reminders(self, now: Optional[datetime] = None) -> list[Reminder]:
        """Remove and return the reminders whose time has come, oldest first."""
        now = now or self._clock()
        due = sorted(
            (r for r in self.scheduled.values() if r.fire_at <= now),
            key=lambda r: r.fire_at,
        )
        for reminder in due:
            del self.scheduled[reminder.identifier]
        return due

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def schedule_account(self, account: Account) -> None:
        """Remind before, and on, a deposit's maturity or a loan's end date."""
        await self.cancel_account(account.id)

        details = account.details
        if details is None or not details.enable_notifications:
            return
        end_date = details.end_date_for_reminders
        if end_date is None:
            return

        data = {"accountId": account.id, "endDate": end_date.isoformat()}
        days = details.notification_days_before
        self._schedule(Reminder(
            identifier=f"account-{account.id}-end-date",
            owner=_owner("account", account.id),
            title=f"{account.name} ends soon",
            body=f"{account.name} ({account.type.value}) reaches its end date in {_plural_days(days)}.",
            fire_at=self._at_reminder_hour(end_date - timedelta(days=days)),
            data=data,
        ))
        self._schedule(Reminder(
            identifier=f"account-{account.id}-end-date-today",
            owner=_owner("account", account.id),
            title=f"{account.name} - End Date Today",
            body=f"{account.name} ({account.type.value}) reaches its end date today.",
            fire_at=self._at_reminder_hour(end_date),
            data=data,
        ))

    async def cancel_account(self, account_id: str) -> None:
        self._cancel_owner(_owner("account", account_id))

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def schedule_budget(self, budget: Budget) -> None:
        """One check reminder per remaining day of the budget period."""
        self._cancel_owner(_owner("budget", budget.id))
        if not budget.enable_notifications:
            return

        day = max(self._clock().date(), budget.start_date)
        end = budget_end_date(budget)
        while day <= end:
            self._schedule(Reminder(
                identifier=f"budget-{budget.id}-check-{day.isoformat()}",
                owner=_owner("budget", budget.id),
                title="Budget Check",
                body=f'Check your budget "{budget.name}" spending progress.',
                fire_at=self._at_reminder_hour(day),
                data={"budgetId": budget.id, "type": "budget-check"},
            ))
            day += timedelta(days=1)

    async def cancel_budget(self, budget_id: str) -> None:
        """Drop the budget's reminders and forget the alerts it raised."""
        self._cancel_owner(_owner("budget", budget_id), forget_sent=True)

    async def check_budget_thresholds(self, budget: Budget, spending: Decimal) -> None:
        if not budget.enable_notifications:
            return

        period = budget.start_date.isoformat()
        now = self._clock()
        reached = reached_thresholds(budget, spending)
        if reached:
            threshold = reached[-1]
            self._send(Reminder(
                identifier=f"budget-{budget.id}-threshold-{threshold}-{period}",
                owner=_owner("budget", budget.id),
                title=f"Budget Alert: {budget.name}",
                body=(
                    f"You've reached {threshold}% of your budget. "
                    f"Spent: {self._money(spending)}, Budget: {self._money(budget.amount)}"
                ),
                fire_at=now,
                data={"budgetId": budget.id, "threshold": threshold},
            ))

        if spending > budget.amount:
            self._send(Reminder(
                identifier=f"budget-{budget.id}-exceeded-{period}",
                owner=_owner("budget", budget.id),
                title=f"Budget Exceeded: {budget.name}",
                body=f"You've exceeded your budget by {self._money(spending - budget.amount)}.",
                fire_at=now,
                data={"budgetId": budget.id},
            ))

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    async def schedule_goal(self, goal: Goal) -> None:
        self._cancel_owner(_owner("goal", goal.id))
        if not goal.enable_notifications:
            return

        if goal.notify_days_before > 0:
            self._schedule(Reminder(
                identifier=f"goal-{goal.id}-reminder",
                owner=_owner("goal", goal.id),
                title=f"Goal Reminder: {goal.name}",
                body=(
                    f'Your goal "{goal.name}" target date is in '
                    f"{_plural_days(goal.notify_days_before)}. "
                    f"Target: {self._money(goal.target_amount)}"
                ),
                fire_at=self._at_reminder_hour(
                    goal.target_date - timedelta(days=goal.notify_days_before)
                ),
                data={"goalId": goal.id, "type": "goal-reminder"},
            ))
        self._schedule(Reminder(
            identifier=f"goal-{goal.id}-target-date",
            owner=_owner("goal", goal.id),
            title=f"Goal Target Date: {goal.name}",
            body=f'Today is your target date for "{goal.name}". Check your progress!',
            fire_at=self._at_reminder_hour(goal.target_date),
            data={"goalId": goal.id, "type": "goal-target-date"},
        ))

    async def cancel_goal(self, goal_id: str) -> None:
        """Drop the goal's reminders and forget the milestones it raised."""
        self._cancel_owner(_owner("goal", goal_id), forget_sent=True)

    async def check_goal_milestones(self, goal: Goal, current_amount: Decimal) -> None:
        if not goal.enable_notifications:
            return

        now = self._clock()
        for milestone in reached_goal_milestones(goal, current_amount):
            self._send(Reminder(
                identifier=f"goal-{goal.id}-milestone-{milestone}",
                owner=_owner("goal", goal.id),
                title=f"Goal Milestone: {goal.name}",
                body=(
                    f"You've reached {milestone}% of your goal. "
                    f"Saved: {self._money(current_amount)}, Target: {self._money(goal.target_amount)}"
                ),
                fire_at=now,
                data={"goalId": goal.id, "threshold": milestone},
            ))

        if current_amount >= goal.target_amount:
            self._send(Reminder(
                identifier=f"goal-{goal.id}-completed",
                owner=_owner("goal", goal.id),
                title=f"Goal Completed: {goal.name}",
                body=f"Congratulations! You've reached your goal of {self._money(goal.target_amount)}.",
                fire_at=now,
                data={"goalId": goal.id, "type": "goal-completed"},
            ))

    # -------------------------------------------------------------------------
    # Planned transactions
    # -------------------------------------------------------------------------

    async def schedule_planned_transaction(self, planned: PlannedTransaction) -> None:
        await self.cancel_planned_transaction(planned.id)
        if not planned.enable_notifications or planned.status != PlannedTransactionStatus.PENDING:
            return

        due = planned_due_date(planned)
        what = f"{planned.type.value} of {self._money(planned.amount)}"
        data = {"plannedTransactionId": planned.id, "scheduledDate": due.isoformat()}

        for days in planned.notify_days_before:
            self._schedule(Reminder(
                identifier=f"planned-{planned.id}-reminder-{days}",
                owner=_owner("planned", planned.id),
                title=f"Upcoming Transaction: {planned.description}",
                body=f"Your planned {what} is scheduled in {_plural_days(days)}.",
                fire_at=self._at_reminder_hour(due - timedelta(days=days)),
                data={**data, "daysBefore": days},
            ))

        if planned.notify_on_day:
            suffix = " It will be created automatically." if planned.auto_create else ""
            self._schedule(Reminder(
                identifier=f"planned-{planned.id}-due",
                owner=_owner("planned", planned.id),
                title=f"Transaction Due Today: {planned.description}",
                body=f"Your planned {what} is scheduled for today.{suffix}",
                fire_at=self._at_reminder_hour(due),
                data=data,
            ))

    async def cancel_planned_transaction(self, planned_id: str) -> None:
        self._cancel_owner(_owner("planned", planned_id))

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def schedule_bill(self, bill: Bill) -> None:
        """
        Remind N days before the due date, on the due date, and one day
        after it as overdue.
        """
        await self.cancel_bill(bill.id)
        if not bill.enable_notifications or bill.is_settled:
            return

        due = calculate_next_due_date(bill)
        if due is None:
            return

        amount = self._money(bill.amount)
        data = {"billId": bill.id, "dueDate": due.isoformat()}

        for days in bill.notify_days_before:
            self._schedule(Reminder(
                identifier=f"bill-{bill.id}-reminder-{days}",
                owner=_owner("bill", bill.id),
                title=f"Bill Reminder: {bill.name}",
                body=f'Your bill "{bill.name}" of {amount} is due in {_plural_days(days)}.',
                fire_at=self._at_reminder_hour(due - timedelta(days=days)),
                data={**data, "daysBefore": days},
            ))

        if bill.notify_on_due_date:
            self._schedule(Reminder(
                identifier=f"bill-{bill.id}-due",
                owner=_owner("bill", bill.id),
                title=f"Bill Due Today: {bill.name}",
                body=f'Your bill "{bill.name}" of {amount} is due today.',
                fire_at=self._at_reminder_hour(due),
                data=data,
            ))

        self._schedule(Reminder(
            identifier=f"bill-{bill.id}-overdue",
            owner=_owner("bill", bill.id),
            title=f"Bill Overdue: {bill.name}",
            body=f'Your bill "{bill.name}" of {amount} is overdue.',
            fire_at=self._at_reminder_hour(due + timedelta(days=1)),
            data={**data, "status": BillStatus.OVERDUE.value},
        ))

    async def cancel_bill(self, bill_id: str) -> None:
        self._cancel_owner(_owner("bill", bill_id))
