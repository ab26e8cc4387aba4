"""
Services package.

Storage backends, the notification scheduler and the Google Sheets sync.
Import the scheduler and the sync from their own modules
(``dailymate.services.notifications``, ``dailymate.services.sync``); they
depend on the engine, which itself depends on storage.
"""

from dailymate.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    EntityStorage,
    NotFoundError,
    StorageError,
    StorageGateway,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "EntityStorage",
    "NotFoundError",
    "StorageError",
    "StorageGateway",
]
