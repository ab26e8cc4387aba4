"""
Planned-Transaction Processor

Scans all planned transactions, materializes the due ones into concrete
Transactions and advances or terminates their recurrence.

CRITICAL: The processor only creates Transaction records. It does NOT touch
account balances; the caller applies them (``BalanceReconciler.apply_existing``)
with the returned ids.

DESIGN DECISION: Bookkeeping updates are collected during the scan and
written after it, so a failure partway through materialization never leaves
a template advanced past an occurrence that was not created. Invocations are
serialized by a lock owned by the processor; a second call waits for the
first one's bookkeeping to be written and then finds nothing due.
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from dailymate.audit import AuditLogger
from dailymate.engine.recurrence import (
    has_reached_end_date,
    is_planned_transaction_due,
    next_occurrence,
    planned_due_date,
    planned_has_reached_end_date,
)
from dailymate.models.finance import Transaction, TransactionStatus
from dailymate.models.schedule import (
    PlannedTransaction,
    PlannedTransactionStatus,
    Recurrence,
)
from dailymate.services.storage import StorageError, StorageGateway


logger = structlog.get_logger(__name__)


class PlannedBookkeepingError(StorageError):
    """
    Some planned-transaction updates could not be written after their
    occurrences were materialized.

    ``created_ids`` lists the transactions that were created, so the caller
    can still apply their balances.
    """

    def __init__(self, message: str, created_ids: list[str], failed_ids: list[str]):
        super().__init__(message)
        self.created_ids = created_ids
        self.failed_ids = failed_ids


def materialize(planned: PlannedTransaction, occurrence: date) -> Transaction:
    """Build the concrete transaction for one occurrence of a template."""
    return Transaction(
        account_id=planned.account_id,
        category_id=planned.category_id,
        type=planned.type,
        amount=planned.amount,
        description=planned.description,
        date=occurrence,
        time=planned.time,
        to_account_id=planned.to_account_id,
        labels=list(planned.labels),
        payee_ids=list(planned.payee_ids),
        item_name=planned.item_name,
        warranty_date=planned.warranty_date,
        status=TransactionStatus.COMPLETED,
    )


def advance_planned(planned: PlannedTransaction, materialized_on: date) -> PlannedTransaction:
    """
    Bookkeeping after an occurrence was materialized.

    One-time templates complete. Recurring ones move to the following
    occurrence, or are cancelled once that occurrence passes ``end_date``.
    """
    if planned.recurrence == Recurrence.NONE:
        return planned.touched(
            status=PlannedTransactionStatus.COMPLETED,
            last_created_date=materialized_on,
        )

    following = next_occurrence(planned.scheduled_date, planned.recurrence, materialized_on)
    if has_reached_end_date(following, planned.end_date, planned.recurrence):
        return planned.touched(
            status=PlannedTransactionStatus.CANCELLED,
            last_created_date=materialized_on,
        )
    return planned.touched(
        last_created_date=materialized_on,
        next_occurrence_date=following,
    )


class PlannedTransactionProcessor:
    """
    Materializes due planned transactions.

    Only PENDING templates with ``auto_create`` set are considered; completed,
    cancelled and skipped templates are never processed.
    """

    def __init__(
        self,
        storage: StorageGateway,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._lock = asyncio.Lock()

    async def process_due_planned_transactions(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[str]:
        """
        Materialize every due occurrence once.

        Returns:
            Ids of the created transactions. Per-record failures are logged
            and skipped, so the list may be shorter than the number of due
            templates.

        Raises:
            PlannedBookkeepingError: If some template updates could not be
                written after the scan
        """
        async with self._lock:
            return await self._process(today or date.today(), correlation_id)

    async def _process(self, today: date, correlation_id: Optional[UUID]) -> list[str]:
        planned_items = await self._storage.planned_transactions.get_all()
        created_ids: list[str] = []
        updated: list[PlannedTransaction] = []

        for planned in planned_items:
            if planned.status != PlannedTransactionStatus.PENDING or not planned.auto_create:
                continue
            if not is_planned_transaction_due(planned, today):
                continue

            if planned_has_reached_end_date(planned):
                updated.append(planned.touched(status=PlannedTransactionStatus.CANCELLED))
                continue

            occurrence = planned_due_date(planned)
            try:
                transaction = materialize(planned, occurrence)
                await self._storage.transactions.add(transaction)
            except Exception as e:
                # Best-effort batch: one bad template must not stop the scan
                logger.error(
                    "planned_materialization_failed",
                    planned_id=planned.id,
                    occurrence=occurrence.isoformat(),
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_planned_failed(
                        planned_id=planned.id,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                continue

            created_ids.append(transaction.id)
            updated.append(advance_planned(planned, occurrence))
            logger.info(
                "planned_transaction_materialized",
                planned_id=planned.id,
                transaction_id=transaction.id,
                occurrence=occurrence.isoformat(),
            )
            if self._audit_logger:
                await self._audit_logger.log_planned_materialized(
                    planned_id=planned.id,
                    transaction_id=transaction.id,
                    occurrence=occurrence.isoformat(),
                    correlation_id=correlation_id,
                )

        await self._write_bookkeeping(updated, created_ids, correlation_id)
        return created_ids

    async def _write_bookkeeping(
        self,
        updated: list[PlannedTransaction],
        created_ids: list[str],
        correlation_id: Optional[UUID],
    ) -> None:
        failed_ids = []
        for planned in updated:
            try:
                await self._storage.planned_transactions.update(planned)
            except StorageError as e:
                logger.error(
                    "planned_bookkeeping_failed",
                    planned_id=planned.id,
                    error=str(e),
                )
                failed_ids.append(planned.id)
                continue

            if planned.status != PlannedTransactionStatus.PENDING and self._audit_logger:
                await self._audit_logger.log_planned_finished(
                    planned_id=planned.id,
                    status=planned.status.value,
                    correlation_id=correlation_id,
                )

        if failed_ids:
            raise PlannedBookkeepingError(
                f"Failed to update {len(failed_ids)} planned transaction(s)",
                created_ids=created_ids,
                failed_ids=failed_ids,
            )
