"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep records in local JSON files, in Google Sheets, or in memory
2. Use in-memory storage for testing
3. Sync one backend into another without the core noticing

The interface is intentionally simple - we're not building a full ORM.
Each collection is a list of whole records; ``get_all`` and ``save_all``
are the only primitives a backend must provide. The per-record
operations are built on top of them and may be overridden when a backend
can do better.

No transactional guarantees are provided across collections.
"""

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar
from uuid import UUID

from dailymate.models.audit import AuditEvent
from dailymate.models.base import RecordModel
from dailymate.models.finance import (
    Account,
    Budget,
    Category,
    Contact,
    Goal,
    Label,
    Transaction,
)
from dailymate.models.schedule import Bill, PlannedTransaction


E = TypeVar("E", bound=RecordModel)


# Collection name -> record type, in load order
COLLECTIONS: dict[str, type[RecordModel]] = {
    "accounts": Account,
    "transactions": Transaction,
    "categories": Category,
    "labels": Label,
    "contacts": Contact,
    "budgets": Budget,
    "goals": Goal,
    "planned_transactions": PlannedTransaction,
    "bills": Bill,
}


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class EntityStorage(ABC, Generic[E]):
    """
    Abstract interface for one collection of records.

    Any storage implementation (JSON files, Google Sheets, etc.)
    must implement ``get_all`` and ``save_all``.
    """

    def __init__(self, name: str, model: type[E]):
        self.name = name
        self.model = model

    @abstractmethod
    async def get_all(self) -> list[E]:
        """
        Read every record of the collection.

        Returns:
            Records in stored order; an empty list for a new collection

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def save_all(self, items: list[E]) -> None:
        """
        Replace the whole collection.

        Raises:
            StorageError: If the write fails
        """
        pass

    async def get(self, entity_id: str) -> Optional[E]:
        """Return the record with ``entity_id``, or None."""
        for item in await self.get_all():
            if item.id == entity_id:
                return item
        return None

    async def add(self, item: E) -> None:
        """
        Append a new record.

        Raises:
            DuplicateError: If a record with the same id exists
        """
        items = await self.get_all()
        if any(existing.id == item.id for existing in items):
            raise DuplicateError(f"{self.name}: record {item.id} already exists")
        items.append(item)
        await self.save_all(items)

    async def update(self, item: E) -> None:
        """
        Replace a stored record by id (full-record replacement).

        Raises:
            NotFoundError: If no record has this id
        """
        items = await self.get_all()
        for index, existing in enumerate(items):
            if existing.id == item.id:
                items[index] = item
                await self.save_all(items)
                return
        raise NotFoundError(f"{self.name}: record {item.id} not found")

    async def delete(self, entity_id: str) -> None:
        """Remove a record. Deleting an unknown id is a no-op."""
        items = await self.get_all()
        remaining = [item for item in items if item.id != entity_id]
        if len(remaining) != len(items):
            await self.save_all(remaining)


class StorageGateway:
    """
    The nine collections the finance core reads and writes.

    Backends build one of these through their ``create_*_gateway`` factory.
    """

    def __init__(
        self,
        accounts: EntityStorage[Account],
        transactions: EntityStorage[Transaction],
        categories: EntityStorage[Category],
        labels: EntityStorage[Label],
        contacts: EntityStorage[Contact],
        budgets: EntityStorage[Budget],
        goals: EntityStorage[Goal],
        planned_transactions: EntityStorage[PlannedTransaction],
        bills: EntityStorage[Bill],
    ):
        self.accounts = accounts
        self.transactions = transactions
        self.categories = categories
        self.labels = labels
        self.contacts = contacts
        self.budgets = budgets
        self.goals = goals
        self.planned_transactions = planned_transactions
        self.bills = bills

    @classmethod
    def from_factory(cls, factory) -> "StorageGateway":
        """Build every collection with ``factory(name, model)``."""
        return cls(**{name: factory(name, model) for name, model in COLLECTIONS.items()})

    def collection(self, name: str) -> EntityStorage:
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return getattr(self, name)

    def collections(self) -> dict[str, EntityStorage]:
        return {name: getattr(self, name) for name in COLLECTIONS}


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one startup run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass
