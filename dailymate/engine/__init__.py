"""
Finance engine package.

Recurrence arithmetic, the bill state machine, the planned-transaction
processor and the balance reconciliation protocol.
"""

from dailymate.engine.recurrence import (
    format_recurrence,
    has_reached_end_date,
    is_due,
    is_planned_transaction_due,
    next_occurrence,
    planned_due_date,
    planned_has_reached_end_date,
    planned_status_text,
    upcoming_occurrences,
)
from dailymate.engine.bills import (
    BillError,
    build_bill_payment,
    calculate_next_due_date,
    cancel_bill,
    is_bill_due_for_auto_pay,
    is_cycle_paid,
    mark_bill_paid,
    recalculate_bill_status,
    reset_bill,
)
from dailymate.engine.planned import (
    PlannedBookkeepingError,
    PlannedTransactionProcessor,
    advance_planned,
    materialize,
)
from dailymate.engine.balances import (
    BalanceDrift,
    BalanceReconciler,
    apply_transaction_add,
    apply_transaction_delete,
    apply_transaction_update,
    compute_expected_balances,
    detect_balance_drift,
    transaction_effects,
)
from dailymate.engine.budgets import (
    budget_end_date,
    calculate_budget_spending,
    goal_progress,
    reached_goal_milestones,
    reached_thresholds,
)

__all__ = [
    # Recurrence
    "format_recurrence",
    "has_reached_end_date",
    "is_due",
    "is_planned_transaction_due",
    "next_occurrence",
    "planned_due_date",
    "planned_has_reached_end_date",
    "planned_status_text",
    "upcoming_occurrences",
    # Bills
    "BillError",
    "build_bill_payment",
    "calculate_next_due_date",
    "cancel_bill",
    "is_bill_due_for_auto_pay",
    "is_cycle_paid",
    "mark_bill_paid",
    "recalculate_bill_status",
    "reset_bill",
    # Planned transactions
    "PlannedBookkeepingError",
    "PlannedTransactionProcessor",
    "advance_planned",
    "materialize",
    # Balances
    "BalanceDrift",
    "BalanceReconciler",
    "apply_transaction_add",
    "apply_transaction_delete",
    "apply_transaction_update",
    "compute_expected_balances",
    "detect_balance_drift",
    "transaction_effects",
    # Budgets and goals
    "budget_end_date",
    "calculate_budget_spending",
    "goal_progress",
    "reached_goal_milestones",
    "reached_thresholds",
]
