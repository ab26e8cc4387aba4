"""Tests for the in-process notification scheduler."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from dailymate.models import (
    Account,
    AccountType,
    Bill,
    Budget,
    BudgetPeriod,
    DueDateType,
    Goal,
    PlannedTransaction,
    PlannedTransactionStatus,
    TransactionType,
)
from dailymate.engine.bills import mark_bill_paid
from dailymate.services.notifications import InProcessNotificationScheduler


NOW = datetime(2024, 6, 15, 8, 0)


@pytest.fixture
def scheduler():
    return InProcessNotificationScheduler(reminder_hour=9, currency_symbol="₹", clock=lambda: NOW)


def _bill(**overrides) -> Bill:
    fields = {
        "id": "b1",
        "name": "Electricity",
        "amount": Decimal("1500.00"),
        "category_id": "bills",
        "account_id": "acc-1",
        "due_date_type": DueDateType.RECURRING,
        "due_day": 20,
        "start_date": date(2024, 6, 1),
    }
    fields.update(overrides)
    return Bill(**fields)


def _budget(**overrides) -> Budget:
    fields = {
        "id": "bud-1",
        "name": "Food",
        "category_id": "food",
        "amount": Decimal("1000.00"),
        "period": BudgetPeriod.MONTHLY,
        "start_date": date(2024, 6, 1),
        "enable_notifications": True,
    }
    fields.update(overrides)
    return Budget(**fields)


class TestBillReminders:
    """Tests for bill reminders."""

    @pytest.mark.asyncio
    async def test_schedules_future_reminders_only(self, scheduler):
        await scheduler.schedule_bill(_bill())
        # The 7-day reminder fell on Jun 13, already past
        assert set(scheduler.scheduled) == {
            "bill-b1-reminder-3",
            "bill-b1-reminder-1",
            "bill-b1-due",
            "bill-b1-overdue",
        }

    @pytest.mark.asyncio
    async def test_reminder_times(self, scheduler):
        await scheduler.schedule_bill(_bill())
        assert scheduler.scheduled["bill-b1-due"].fire_at == datetime(2024, 6, 20, 9, 0)
        assert scheduler.scheduled["bill-b1-overdue"].fire_at == datetime(2024, 6, 21, 9, 0)
        assert "₹1500.00" in scheduler.scheduled["bill-b1-due"].body

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_reminders(self, scheduler):
        await scheduler.schedule_bill(_bill())
        await scheduler.schedule_bill(_bill(notify_days_before=[], notify_on_due_date=False))
        assert set(scheduler.scheduled) == {"bill-b1-overdue"}

    @pytest.mark.asyncio
    async def test_settled_bill_has_no_reminders(self, scheduler):
        await scheduler.schedule_bill(_bill())
        await scheduler.schedule_bill(mark_bill_paid(_bill(), date(2024, 6, 15)))
        assert scheduler.scheduled == {}

    @pytest.mark.asyncio
    async def test_cancel_bill(self, scheduler):
        await scheduler.schedule_bill(_bill())
        await scheduler.schedule_bill(_bill(id="b2"))
        await scheduler.cancel_bill("b1")
        assert all(key.startswith("bill-b2-") for key in scheduler.scheduled)

    @pytest.mark.asyncio
    async def test_cancel_bill_leaves_ids_sharing_a_prefix(self, scheduler):
        """Test that cancelling bill "a" keeps the reminders of bill "a-b"."""
        await scheduler.schedule_bill(_bill(id="a"))
        await scheduler.schedule_bill(_bill(id="a-b"))

        await scheduler.cancel_bill("a")

        assert scheduler.scheduled
        assert all(r.owner == "bill:a-b" for r in scheduler.scheduled.values())
        assert "bill-a-b-due" in scheduler.scheduled

    @pytest.mark.asyncio
    async def test_due_reminders_are_popped(self, scheduler):
        await scheduler.schedule_bill(_bill())
        due = scheduler.due_reminders(datetime(2024, 6, 17, 9, 0))
        assert [r.identifier for r in due] == ["bill-b1-reminder-3"]
        assert "bill-b1-reminder-3" not in scheduler.scheduled


class TestBudgetAlerts:
    """Tests for budget reminders and threshold alerts."""

    @pytest.mark.asyncio
    async def test_threshold_alert_raised_once(self, scheduler):
        budget = _budget()
        await scheduler.check_budget_thresholds(budget, Decimal("800.00"))
        await scheduler.check_budget_thresholds(budget, Decimal("810.00"))
        assert list(scheduler.sent) == ["budget-bud-1-threshold-75-2024-06-01"]

    @pytest.mark.asyncio
    async def test_exceeded_alert(self, scheduler):
        await scheduler.check_budget_thresholds(_budget(), Decimal("1100.00"))
        assert "budget-bud-1-threshold-100-2024-06-01" in scheduler.sent
        exceeded = scheduler.sent["budget-bud-1-exceeded-2024-06-01"]
        assert "₹100.00" in exceeded.body

    @pytest.mark.asyncio
    async def test_disabled_budget_is_silent(self, scheduler):
        await scheduler.check_budget_thresholds(_budget(enable_notifications=False), Decimal("5000"))
        assert scheduler.sent == {}

    @pytest.mark.asyncio
    async def test_cancel_budget_forgets_its_alerts(self, scheduler):
        await scheduler.check_budget_thresholds(_budget(), Decimal("1100.00"))
        await scheduler.check_budget_thresholds(_budget(id="bud-1-x"), Decimal("800.00"))

        await scheduler.cancel_budget("bud-1")

        assert list(scheduler.sent) == ["budget-bud-1-x-threshold-75-2024-06-01"]

    @pytest.mark.asyncio
    async def test_rescheduling_keeps_raised_alerts(self, scheduler):
        """Test that an edited budget does not raise the same alert again."""
        budget = _budget()
        await scheduler.check_budget_thresholds(budget, Decimal("800.00"))
        await scheduler.schedule_budget(budget)
        await scheduler.check_budget_thresholds(budget, Decimal("800.00"))

        assert list(scheduler.sent) == ["budget-bud-1-threshold-75-2024-06-01"]

    @pytest.mark.asyncio
    async def test_daily_checks_until_period_end(self, scheduler):
        await scheduler.schedule_budget(_budget())
        # Jun 15 through Jul 1 inclusive
        assert len(scheduler.scheduled) == 17
        assert "budget-bud-1-check-2024-07-01" in scheduler.scheduled


class TestGoalAlerts:
    """Tests for goal reminders and milestones."""

    @pytest.mark.asyncio
    async def test_goal_reminders(self, scheduler):
        goal = Goal(
            id="g1",
            name="Trip",
            target_amount=Decimal("2000.00"),
            target_date=date(2024, 12, 31),
            enable_notifications=True,
        )
        await scheduler.schedule_goal(goal)
        assert set(scheduler.scheduled) == {"goal-g1-reminder", "goal-g1-target-date"}

    @pytest.mark.asyncio
    async def test_goal_completed(self, scheduler):
        goal = Goal(
            id="g1",
            name="Trip",
            target_amount=Decimal("2000.00"),
            target_date=date(2024, 12, 31),
            enable_notifications=True,
        )
        await scheduler.check_goal_milestones(goal, Decimal("2000.00"))
        assert "goal-g1-completed" in scheduler.sent
        assert "goal-g1-milestone-100" in scheduler.sent

        await scheduler.cancel_goal("g1")
        assert scheduler.sent == {}


class TestPlannedAndAccountReminders:
    """Tests for planned-transaction and account reminders."""

    @pytest.mark.asyncio
    async def test_planned_reminders(self, scheduler):
        planned = PlannedTransaction(
            id="p1",
            account_id="acc-1",
            category_id="salary",
            type=TransactionType.INCOME,
            amount=Decimal("50000.00"),
            description="Salary",
            scheduled_date=date(2024, 6, 20),
            notify_days_before=[2],
            notify_on_day=True,
            auto_create=True,
        )
        await scheduler.schedule_planned_transaction(planned)
        assert set(scheduler.scheduled) == {"planned-p1-reminder-2", "planned-p1-due"}
        assert "created automatically" in scheduler.scheduled["planned-p1-due"].body

    @pytest.mark.asyncio
    async def test_finished_planned_has_no_reminders(self, scheduler):
        planned = PlannedTransaction(
            id="p1",
            account_id="acc-1",
            category_id="salary",
            type=TransactionType.INCOME,
            amount=Decimal("50000.00"),
            scheduled_date=date(2024, 6, 20),
            notify_on_day=True,
            status=PlannedTransactionStatus.COMPLETED,
        )
        await scheduler.schedule_planned_transaction(planned)
        assert scheduler.scheduled == {}

    @pytest.mark.asyncio
    async def test_deposit_maturity_reminders(self, scheduler):
        account = Account(
            id="fd-1",
            name="FD",
            type=AccountType.FIXED_DEPOSIT,
            details={"maturityDate": "2024-07-01", "enableNotifications": True},
        )
        await scheduler.schedule_account(account)
        assert scheduler.scheduled["account-fd-1-end-date"].fire_at == datetime(2024, 6, 24, 9, 0)
        assert scheduler.scheduled["account-fd-1-end-date-today"].fire_at == datetime(2024, 7, 1, 9, 0)

    @pytest.mark.asyncio
    async def test_account_without_notifications(self, scheduler):
        account = Account(
            id="fd-1",
            name="FD",
            type=AccountType.FIXED_DEPOSIT,
            details={"maturityDate": "2024-07-01"},
        )
        await scheduler.schedule_account(account)
        assert scheduler.scheduled == {}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
