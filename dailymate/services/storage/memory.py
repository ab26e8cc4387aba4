"""
In-Memory Storage

Used by tests and by the ``memory`` backend. Records are deep-copied on
the way in and on the way out, so a caller holding a record cannot change
what is stored without going through the interface.
"""

from typing import Optional
from uuid import UUID

from dailymate.models.audit import AuditEvent
from dailymate.models.finance import DEFAULT_CATEGORIES
from dailymate.services.storage.interface import (
    AuditStorageInterface,
    E,
    EntityStorage,
    StorageGateway,
)


class InMemoryEntityStorage(EntityStorage[E]):
    """One collection held in a Python list."""

    def __init__(self, name: str, model: type[E], items: Optional[list[E]] = None):
        super().__init__(name, model)
        self._items: list[E] = [item.model_copy(deep=True) for item in items or []]

    async def get_all(self) -> list[E]:
        return [item.model_copy(deep=True) for item in self._items]

    async def save_all(self, items: list[E]) -> None:
        self._items = [item.model_copy(deep=True) for item in items]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in memory."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]


def create_memory_gateway(seed_categories: bool = True) -> StorageGateway:
    """
    Build a gateway whose collections live in memory.

    Args:
        seed_categories: Start the categories collection with the defaults.
    """
    gateway = StorageGateway.from_factory(InMemoryEntityStorage)
    if seed_categories:
        gateway.categories = InMemoryEntityStorage(
            "categories",
            gateway.categories.model,
            DEFAULT_CATEGORIES,
        )
    return gateway
