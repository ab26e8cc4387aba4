"""
Budget and goal progress.

Spending is the sum of expenses booked to the budget's category (or all
expenses for an overall budget) within the budget period. When a
transaction is split, only the splits booked to the category count.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from dailymate.models.finance import (
    Account,
    Budget,
    BudgetPeriod,
    Goal,
    Transaction,
    TransactionType,
)


_PERIOD_STEP = {
    BudgetPeriod.WEEKLY: relativedelta(days=7),
    BudgetPeriod.MONTHLY: relativedelta(months=1),
    BudgetPeriod.YEARLY: relativedelta(years=1),
}


def budget_end_date(budget: Budget) -> date:
    """Explicit end date, else one period after the start date."""
    if budget.end_date:
        return budget.end_date
    return budget.start_date + _PERIOD_STEP[budget.period]


def _amount_for_category(transaction: Transaction, category_id: Optional[str]) -> Decimal:
    if category_id is None:
        return transaction.amount
    if transaction.splits:
        return sum(
            (split.amount for split in transaction.splits if split.category_id == category_id),
            Decimal("0"),
        )
    return transaction.amount if transaction.category_id == category_id else Decimal("0")


def calculate_budget_spending(budget: Budget, transactions: list[Transaction]) -> Decimal:
    start = budget.start_date
    end = budget_end_date(budget)
    return sum(
        (
            _amount_for_category(tx, budget.category_id)
            for tx in transactions
            if tx.type == TransactionType.EXPENSE and start <= tx.date <= end
        ),
        Decimal("0"),
    )


def _percentage(part: Decimal, whole: Decimal) -> Decimal:
    return part * 100 / whole


def reached_thresholds(budget: Budget, spending: Decimal) -> list[int]:
    """Alert percentages the spending has reached, in ascending order."""
    used = _percentage(spending, budget.amount)
    return sorted(p for p in set(budget.notify_at_percentage) if used >= p)


def goal_progress(goal: Goal, accounts: list[Account]) -> Decimal:
    """
    Amount saved towards the goal.

    A linked account's balance takes precedence over ``current_amount``.
    """
    if goal.account_id:
        for account in accounts:
            if account.id == goal.account_id:
                return account.balance
    return goal.current_amount


def reached_goal_milestones(goal: Goal, current_amount: Decimal) -> list[int]:
    used = _percentage(current_amount, goal.target_amount)
    return sorted(p for p in set(goal.notify_at_percentage) if used >= p)
