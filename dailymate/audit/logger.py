"""
Audit Logger

DESIGN DECISION: Every change to money-bearing state is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when a balance drifts
3. User can see history of what the app did on their behalf

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from dailymate.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from dailymate.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (Google Sheets or memory) for persistence
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_added(
        self,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: str,
        old_amount: Decimal,
        new_amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            old_amount=str(old_amount),
            new_amount=str(new_amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balances_applied(
        self,
        transaction_id: str,
        deltas: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the per-account balance deltas of one transaction."""
        event = AuditEventBuilder.balances_applied(
            transaction_id=transaction_id,
            deltas={account_id: str(delta) for account_id, delta in deltas.items()},
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_planned_materialized(
        self,
        planned_id: str,
        transaction_id: str,
        occurrence: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.planned_materialized(
            planned_id=planned_id,
            transaction_id=transaction_id,
            occurrence=occurrence,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_planned_finished(
        self,
        planned_id: str,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a planned transaction reaching completed or cancelled."""
        event = AuditEventBuilder.planned_finished(
            planned_id=planned_id,
            status=status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_planned_failed(
        self,
        planned_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.planned_failed(
            planned_id=planned_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_status_changed(
        self,
        bill_id: str,
        old_status: str,
        new_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_status_changed(
            bill_id=bill_id,
            old_status=old_status,
            new_status=new_status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bill_paid(
        self,
        bill_id: str,
        amount: Decimal,
        transaction_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.bill_paid(
            bill_id=bill_id,
            amount=str(amount),
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_balance_drift(
        self,
        account_id: str,
        stored: Decimal,
        expected: Decimal,
        repaired: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a stored balance that disagrees with the transaction log."""
        event = AuditEventBuilder.balance_drift(
            account_id=account_id,
            stored=str(stored),
            expected=str(expected),
            repaired=repaired,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_saved(
        self,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entity_saved(
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_deleted(
        self,
        entity_type: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.entity_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_notification_failed(
        self,
        operation: str,
        error_message: str,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.notification_failed(
            operation=operation,
            error_message=error_message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., startup processing).
    Pass it through all subsequent operations.
    """
    return uuid4()
