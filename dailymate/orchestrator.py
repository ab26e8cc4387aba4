"""
Main Orchestrator for DailyMate

This module ties together all the components and defines the
end-to-end flows a front end calls:
1. Startup (materialize due planned transactions → apply their balances
   → auto-pay due bills → reconcile balances → load)
2. CRUD for the nine record collections
3. Bill payment

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every balance change goes through the BalanceReconciler
- Every mutation is audited
- Notifications are best-effort and never fail a mutation

After each mutation the whole state is reloaded from storage into a new,
immutable ``AppState`` snapshot; nothing is edited in place.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field

from dailymate.audit import AuditLogger, create_correlation_id
from dailymate.config import AppSettings, Settings, get_settings
from dailymate.engine.balances import BalanceDrift, BalanceReconciler
from dailymate.engine.bills import (
    build_bill_payment,
    is_bill_due_for_auto_pay,
    mark_bill_paid,
    recalculate_bill_status,
)
from dailymate.engine.budgets import (
    calculate_budget_spending,
    goal_progress,
)
from dailymate.engine.planned import PlannedBookkeepingError, PlannedTransactionProcessor
from dailymate.engine.recurrence import upcoming_occurrences
from dailymate.models.base import utc_now
from dailymate.models.finance import (
    DEFAULT_CATEGORIES,
    Account,
    Budget,
    Category,
    Contact,
    Goal,
    Label,
    Transaction,
)
from dailymate.models.schedule import Bill, PlannedTransaction
from dailymate.services.notifications import (
    InProcessNotificationScheduler,
    NotificationSchedulerInterface,
)
from dailymate.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    NotFoundError,
    StorageGateway,
    create_json_gateway,
    create_memory_gateway,
    create_sheets_gateway,
)


logger = structlog.get_logger(__name__)


class CategoryInUseError(Exception):
    """A category cannot be deleted while transactions reference it."""

    def __init__(self, category_id: str, transaction_count: int):
        super().__init__(
            f"Category {category_id} is used by {transaction_count} transaction(s)"
        )
        self.category_id = category_id
        self.transaction_count = transaction_count


class AppState(BaseModel):
    """Immutable snapshot of every collection, as last loaded from storage."""

    model_config = ConfigDict(frozen=True)

    accounts: tuple[Account, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    categories: tuple[Category, ...] = ()
    labels: tuple[Label, ...] = ()
    contacts: tuple[Contact, ...] = ()
    budgets: tuple[Budget, ...] = ()
    goals: tuple[Goal, ...] = ()
    planned_transactions: tuple[PlannedTransaction, ...] = ()
    bills: tuple[Bill, ...] = ()
    loaded_at: Optional[datetime] = None

    def account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def bill(self, bill_id: str) -> Optional[Bill]:
        return next((b for b in self.bills if b.id == bill_id), None)

    @property
    def total_balance(self) -> Decimal:
        return sum((account.balance for account in self.accounts), Decimal("0"))


class StartupReport(BaseModel):
    """What ``FinanceApp.startup`` did."""

    correlation_id: UUID
    created_transaction_ids: list[str] = Field(default_factory=list)
    paid_bill_ids: list[str] = Field(default_factory=list)
    balance_drifts: list[BalanceDrift] = Field(default_factory=list)


class FinanceApp:
    """
    Application state aggregator.

    Holds the latest ``AppState`` and sequences storage, the engine,
    notifications and audit logging for every user action.
    """

    def __init__(
        self,
        storage: StorageGateway,
        notifications: Optional[NotificationSchedulerInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self._storage = storage
        self._notifications = notifications
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or AppSettings()
        self._clock = clock or date.today
        self._processor = PlannedTransactionProcessor(storage, self._audit_logger)
        self._reconciler = BalanceReconciler(storage, self._audit_logger)
        self._state = AppState()

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def storage(self) -> StorageGateway:
        return self._storage

    def today(self) -> date:
        return self._clock()

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load(self, correlation_id: Optional[UUID] = None) -> AppState:
        """
        Read every collection into a fresh snapshot.

        Seeds the default categories into an empty store and recalculates
        every bill, persisting the ones whose due date or status changed.
        """
        categories = await self._storage.categories.get_all()
        if not categories:
            categories = [category.model_copy() for category in DEFAULT_CATEGORIES]
            await self._storage.categories.save_all(categories)
            logger.info("default_categories_seeded", count=len(categories))

        bills = await self._refresh_bills(correlation_id)

        self._state = AppState(
            accounts=tuple(await self._storage.accounts.get_all()),
            transactions=tuple(await self._storage.transactions.get_all()),
            categories=tuple(categories),
            labels=tuple(await self._storage.labels.get_all()),
            contacts=tuple(await self._storage.contacts.get_all()),
            budgets=tuple(await self._storage.budgets.get_all()),
            goals=tuple(await self._storage.goals.get_all()),
            planned_transactions=tuple(await self._storage.planned_transactions.get_all()),
            bills=tuple(bills),
            loaded_at=utc_now(),
        )
        return self._state

    async def _refresh_bills(self, correlation_id: Optional[UUID]) -> list[Bill]:
        bills = await self._storage.bills.get_all()
        refreshed = []
        for bill in bills:
            updated = recalculate_bill_status(bill, self.today())
            if updated is not bill:
                await self._storage.bills.update(updated)
                if updated.status != bill.status:
                    await self._audit_logger.log_bill_status_changed(
                        bill_id=bill.id,
                        old_status=bill.status.value,
                        new_status=updated.status.value,
                        correlation_id=correlation_id,
                    )
            refreshed.append(updated)
        return refreshed

    async def startup(self) -> StartupReport:
        """
        Run once per session, before the state is shown.

        Raises:
            PlannedBookkeepingError: If planned-transaction bookkeeping could
                not be written; balances of the created transactions are
                applied before it propagates
        """
        correlation_id = create_correlation_id()
        report = StartupReport(correlation_id=correlation_id)

        if self._settings.process_planned_on_startup:
            try:
                created = await self._processor.process_due_planned_transactions(
                    today=self.today(),
                    correlation_id=correlation_id,
                )
            except PlannedBookkeepingError as e:
                await self._reconciler.apply_existing(e.created_ids, correlation_id)
                await self._audit_logger.log_storage_error(
                    operation="planned_bookkeeping",
                    error_message=str(e),
                    details={"failed_ids": e.failed_ids},
                    correlation_id=correlation_id,
                )
                raise
            await self._reconciler.apply_existing(created, correlation_id)
            report.created_transaction_ids = created

        if self._settings.auto_pay_bills:
            report.paid_bill_ids = await self._pay_due_bills(correlation_id)

        if self._settings.reconcile_on_startup:
            report.balance_drifts = await self._reconciler.reconcile(
                repair=self._settings.repair_balance_drift,
                correlation_id=correlation_id,
            )

        await self.load(correlation_id)
        await self._check_budgets_and_goals()
        logger.info(
            "startup_completed",
            created=len(report.created_transaction_ids),
            paid_bills=len(report.paid_bill_ids),
            drifts=len(report.balance_drifts),
        )
        return report

    # =========================================================================
    # NOTIFICATIONS (best-effort)
    # =========================================================================

    async def _notify(
        self,
        operation: str,
        entity_id: Optional[str],
        call: Callable[[NotificationSchedulerInterface], Awaitable[None]],
    ) -> None:
        if self._notifications is None:
            return
        try:
            await call(self._notifications)
        except Exception as e:
            # Notification scheduling must never fail a data mutation
            logger.warning(
                "notification_failed",
                operation=operation,
                entity_id=entity_id,
                error=str(e),
            )
            await self._audit_logger.log_notification_failed(
                operation=operation,
                error_message=str(e),
                entity_id=entity_id,
            )

    async def _check_budgets_and_goals(self) -> None:
        if self._notifications is None:
            return
        transactions = list(self._state.transactions)
        accounts = list(self._state.accounts)
        for budget in self._state.budgets:
            spending = calculate_budget_spending(budget, transactions)
            await self._notify(
                "check_budget_thresholds",
                budget.id,
                lambda n, b=budget, s=spending: n.check_budget_thresholds(b, s),
            )
        for goal in self._state.goals:
            current = goal_progress(goal, accounts)
            await self._notify(
                "check_goal_milestones",
                goal.id,
                lambda n, g=goal, c=current: n.check_goal_milestones(g, c),
            )

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def add_account(self, account: Account) -> AppState:
        if account.opening_balance is None:
            account = account.model_copy(update={"opening_balance": account.balance})
        async with self._reconciler.lock:
            await self._storage.accounts.add(account)
        await self._audit_logger.log_entity_saved("account", account.id)
        await self._notify("schedule_account", account.id, lambda n: n.schedule_account(account))
        return await self.load()

    async def update_account(self, account: Account) -> AppState:
        """
        Replace an account.

        A manual balance edit moves the opening balance by the same amount,
        so the replayed transaction log still matches.

        Raises:
            NotFoundError: If the account does not exist
        """
        async with self._reconciler.lock:
            stored = await self._storage.accounts.get(account.id)
            if stored is None:
                raise NotFoundError(f"accounts: record {account.id} not found")
            changes = {}
            if stored.opening_balance is not None:
                changes["opening_balance"] = stored.opening_balance + (account.balance - stored.balance)
            account = account.touched(**changes)
            await self._storage.accounts.update(account)
        await self._audit_logger.log_entity_saved("account", account.id)
        await self._notify("schedule_account", account.id, lambda n: n.schedule_account(account))
        return await self.load()

    async def delete_account(self, account_id: str) -> AppState:
        """
        Delete an account and every transaction on either side of it.

        Deleting those transactions reverses their effect on the other
        account of a transfer.
        """
        correlation_id = create_correlation_id()
        related = [
            tx for tx in await self._storage.transactions.get_all()
            if account_id in tx.counterpart_accounts
        ]
        for tx in related:
            await self._reconciler.delete_transaction(tx.id, correlation_id)
            await self._audit_logger.log_transaction_deleted(tx.id, tx.amount, correlation_id)

        async with self._reconciler.lock:
            await self._storage.accounts.delete(account_id)
        await self._audit_logger.log_entity_deleted("account", account_id, correlation_id)
        await self._notify("cancel_account", account_id, lambda n: n.cancel_account(account_id))
        return await self.load()

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def add_transaction(self, transaction: Transaction) -> AppState:
        await self._reconciler.add_transaction(transaction)
        await self._audit_logger.log_transaction_added(
            transaction.id,
            transaction.type.value,
            transaction.amount,
        )
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def update_transaction(self, transaction: Transaction) -> AppState:
        """
        Raises:
            NotFoundError: If the transaction does not exist
        """
        previous = await self._storage.transactions.get(transaction.id)
        transaction = transaction.touched()
        await self._reconciler.update_transaction(transaction)
        await self._audit_logger.log_transaction_updated(
            transaction.id,
            previous.amount if previous else transaction.amount,
            transaction.amount,
        )
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def delete_transaction(self, transaction_id: str) -> AppState:
        """
        Raises:
            NotFoundError: If the transaction does not exist
        """
        deleted = await self._reconciler.delete_transaction(transaction_id)
        await self._audit_logger.log_transaction_deleted(transaction_id, deleted.amount)
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    # =========================================================================
    # CATEGORIES, LABELS, CONTACTS
    # =========================================================================

    async def add_category(self, category: Category) -> AppState:
        await self._storage.categories.add(category)
        await self._audit_logger.log_entity_saved("category", category.id)
        return await self.load()

    async def update_category(self, category: Category) -> AppState:
        await self._storage.categories.update(category)
        await self._audit_logger.log_entity_saved("category", category.id)
        return await self.load()

    async def delete_category(self, category_id: str) -> AppState:
        """
        Raises:
            CategoryInUseError: If any transaction (or split) uses the category
        """
        in_use = [
            tx for tx in await self._storage.transactions.get_all()
            if tx.category_id == category_id
            or any(split.category_id == category_id for split in tx.splits)
        ]
        if in_use:
            raise CategoryInUseError(category_id, len(in_use))
        await self._storage.categories.delete(category_id)
        await self._audit_logger.log_entity_deleted("category", category_id)
        return await self.load()

    async def add_label(self, label: Label) -> AppState:
        await self._storage.labels.add(label)
        await self._audit_logger.log_entity_saved("label", label.id)
        return await self.load()

    async def update_label(self, label: Label) -> AppState:
        await self._storage.labels.update(label.touched())
        await self._audit_logger.log_entity_saved("label", label.id)
        return await self.load()

    async def delete_label(self, label_id: str) -> AppState:
        await self._storage.labels.delete(label_id)
        await self._audit_logger.log_entity_deleted("label", label_id)
        return await self.load()

    async def add_contact(self, contact: Contact) -> AppState:
        await self._storage.contacts.add(contact)
        await self._audit_logger.log_entity_saved("contact", contact.id)
        return await self.load()

    async def update_contact(self, contact: Contact) -> AppState:
        await self._storage.contacts.update(contact.touched())
        await self._audit_logger.log_entity_saved("contact", contact.id)
        return await self.load()

    async def delete_contact(self, contact_id: str) -> AppState:
        await self._storage.contacts.delete(contact_id)
        await self._audit_logger.log_entity_deleted("contact", contact_id)
        return await self.load()

    # =========================================================================
    # BUDGETS & GOALS
    # =========================================================================

    def _with_budget_defaults(self, budget: Budget) -> Budget:
        if "notify_at_percentage" in budget.model_fields_set:
            return budget
        return budget.model_copy(
            update={"notify_at_percentage": list(self._settings.default_budget_thresholds)}
        )

    async def add_budget(self, budget: Budget) -> AppState:
        budget = self._with_budget_defaults(budget)
        await self._storage.budgets.add(budget)
        await self._audit_logger.log_entity_saved("budget", budget.id)
        await self._notify("schedule_budget", budget.id, lambda n: n.schedule_budget(budget))
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def update_budget(self, budget: Budget) -> AppState:
        budget = budget.touched()
        await self._storage.budgets.update(budget)
        await self._audit_logger.log_entity_saved("budget", budget.id)
        await self._notify("schedule_budget", budget.id, lambda n: n.schedule_budget(budget))
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def delete_budget(self, budget_id: str) -> AppState:
        await self._storage.budgets.delete(budget_id)
        await self._audit_logger.log_entity_deleted("budget", budget_id)
        await self._notify("cancel_budget", budget_id, lambda n: n.cancel_budget(budget_id))
        return await self.load()

    async def add_goal(self, goal: Goal) -> AppState:
        await self._storage.goals.add(goal)
        await self._audit_logger.log_entity_saved("goal", goal.id)
        await self._notify("schedule_goal", goal.id, lambda n: n.schedule_goal(goal))
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def update_goal(self, goal: Goal) -> AppState:
        goal = goal.touched()
        await self._storage.goals.update(goal)
        await self._audit_logger.log_entity_saved("goal", goal.id)
        await self._notify("schedule_goal", goal.id, lambda n: n.schedule_goal(goal))
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def delete_goal(self, goal_id: str) -> AppState:
        await self._storage.goals.delete(goal_id)
        await self._audit_logger.log_entity_deleted("goal", goal_id)
        await self._notify("cancel_goal", goal_id, lambda n: n.cancel_goal(goal_id))
        return await self.load()

    # =========================================================================
    # PLANNED TRANSACTIONS
    # =========================================================================

    async def add_planned_transaction(self, planned: PlannedTransaction) -> AppState:
        await self._storage.planned_transactions.add(planned)
        await self._audit_logger.log_entity_saved("planned_transaction", planned.id)
        await self._notify(
            "schedule_planned_transaction",
            planned.id,
            lambda n: n.schedule_planned_transaction(planned),
        )
        return await self.load()

    async def update_planned_transaction(self, planned: PlannedTransaction) -> AppState:
        planned = planned.touched()
        await self._storage.planned_transactions.update(planned)
        await self._audit_logger.log_entity_saved("planned_transaction", planned.id)
        await self._notify(
            "schedule_planned_transaction",
            planned.id,
            lambda n: n.schedule_planned_transaction(planned),
        )
        return await self.load()

    async def delete_planned_transaction(self, planned_id: str) -> AppState:
        await self._storage.planned_transactions.delete(planned_id)
        await self._audit_logger.log_entity_deleted("planned_transaction", planned_id)
        await self._notify(
            "cancel_planned_transaction",
            planned_id,
            lambda n: n.cancel_planned_transaction(planned_id),
        )
        return await self.load()

    async def process_planned_transactions(self) -> list[str]:
        """Materialize due planned transactions outside of startup."""
        correlation_id = create_correlation_id()
        created = await self._processor.process_due_planned_transactions(
            today=self.today(),
            correlation_id=correlation_id,
        )
        await self._reconciler.apply_existing(created, correlation_id)
        await self.load(correlation_id)
        return created

    def upcoming_planned(self, days: int = 30) -> list[tuple[date, PlannedTransaction]]:
        """Occurrences still to come within ``days`` days, soonest first."""
        until = self.today() + timedelta(days=days)
        upcoming = [
            (occurrence, planned)
            for planned in self._state.planned_transactions
            for occurrence in upcoming_occurrences(planned, until)
        ]
        upcoming.sort(key=lambda item: item[0])
        return upcoming

    # =========================================================================
    # BILLS
    # =========================================================================

    def _with_bill_defaults(self, bill: Bill) -> Bill:
        if "notify_days_before" in bill.model_fields_set:
            return bill
        return bill.model_copy(
            update={"notify_days_before": list(self._settings.default_bill_reminder_days)}
        )

    async def _schedule_bill(self, bill: Bill) -> None:
        await self._notify("schedule_bill", bill.id, lambda n: n.schedule_bill(bill))

    async def add_bill(self, bill: Bill) -> AppState:
        bill = recalculate_bill_status(self._with_bill_defaults(bill), self.today())
        await self._storage.bills.add(bill)
        await self._audit_logger.log_entity_saved("bill", bill.id)
        await self._schedule_bill(bill)
        return await self.load()

    async def update_bill(self, bill: Bill) -> AppState:
        bill = recalculate_bill_status(bill.touched(), self.today())
        await self._storage.bills.update(bill)
        await self._audit_logger.log_entity_saved("bill", bill.id)
        await self._schedule_bill(bill)
        return await self.load()

    async def delete_bill(self, bill_id: str) -> AppState:
        await self._notify("cancel_bill", bill_id, lambda n: n.cancel_bill(bill_id))
        await self._storage.bills.delete(bill_id)
        await self._audit_logger.log_entity_deleted("bill", bill_id)
        return await self.load()

    async def _pay(
        self,
        bill: Bill,
        record_transaction: bool,
        amount: Optional[Decimal],
        correlation_id: Optional[UUID],
    ) -> Bill:
        today = self.today()
        paid = mark_bill_paid(bill, today, amount)

        transaction_id = None
        if record_transaction:
            payment = build_bill_payment(bill, today, amount)
            await self._reconciler.add_transaction(payment, correlation_id)
            transaction_id = payment.id

        await self._storage.bills.update(paid)
        await self._audit_logger.log_bill_paid(
            bill_id=bill.id,
            amount=paid.last_paid_amount,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self._schedule_bill(recalculate_bill_status(paid, today))
        return paid

    async def pay_bill(
        self,
        bill_id: str,
        record_transaction: bool = True,
        amount: Optional[Decimal] = None,
    ) -> AppState:
        """
        Mark a bill paid, optionally recording the payment as an expense.

        Raises:
            NotFoundError: If the bill does not exist
            BillError: If the bill is cancelled
        """
        bill = await self._storage.bills.get(bill_id)
        if bill is None:
            raise NotFoundError(f"bills: record {bill_id} not found")
        await self._pay(bill, record_transaction, amount, create_correlation_id())
        state = await self.load()
        await self._check_budgets_and_goals()
        return state

    async def _pay_due_bills(self, correlation_id: Optional[UUID]) -> list[str]:
        paid = []
        for bill in await self._storage.bills.get_all():
            if is_bill_due_for_auto_pay(bill, self.today()):
                await self._pay(bill, True, None, correlation_id)
                paid.append(bill.id)
        return paid

    async def process_auto_pay_bills(self) -> list[str]:
        """Pay every due bill with auto-pay enabled; returns their ids."""
        paid = await self._pay_due_bills(create_correlation_id())
        await self.load()
        return paid

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def reconcile_balances(self, repair: bool = False) -> list[BalanceDrift]:
        drifts = await self._reconciler.reconcile(repair=repair, correlation_id=create_correlation_id())
        await self.load()
        return drifts


def _create_audit_storage(settings: Settings) -> Optional[AuditStorageInterface]:
    backend = settings.storage.backend
    if backend == "google_sheets":
        return GoogleSheetsAuditStorage(GoogleSheetsClient(settings.google_sheets))
    if backend == "memory":
        return InMemoryAuditStorage()
    # JSON backend: audit events go to the local structured log only
    return None


def create_storage(settings: Settings) -> StorageGateway:
    """Build the gateway for the configured backend."""
    storage_settings = settings.storage
    if storage_settings.backend == "google_sheets":
        return create_sheets_gateway(GoogleSheetsClient(settings.google_sheets))
    if storage_settings.backend == "memory":
        return create_memory_gateway()
    return create_json_gateway(storage_settings.data_dir)


def create_app(
    settings: Optional[Settings] = None,
    notifications: Optional[NotificationSchedulerInterface] = None,
) -> FinanceApp:
    """
    Factory function to create the application from configuration.

    Args:
        settings: Settings to use; the cached ``get_settings()`` by default
        notifications: Scheduler to use; an in-process one by default

    Returns:
        A FinanceApp. Call ``await app.startup()`` before using it.
    """
    settings = settings or get_settings()
    app_settings = settings.app

    audit_logger = AuditLogger(_create_audit_storage(settings))
    scheduler = notifications or InProcessNotificationScheduler(
        reminder_hour=app_settings.reminder_hour,
        currency_symbol=app_settings.currency_symbol,
    )

    return FinanceApp(
        storage=create_storage(settings),
        notifications=scheduler,
        audit_logger=audit_logger,
        settings=app_settings,
    )
