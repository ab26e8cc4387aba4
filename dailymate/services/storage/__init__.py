"""
Storage Services Package

Provides the abstract collection interface and its backends: in-memory,
local JSON files and Google Sheets.
"""

from dailymate.services.storage.interface import (
    COLLECTIONS,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    EntityStorage,
    NotFoundError,
    StorageError,
    StorageGateway,
)
from dailymate.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntityStorage,
    create_memory_gateway,
)
from dailymate.services.storage.json_file import (
    JsonFileEntityStorage,
    create_json_gateway,
)
from dailymate.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntityStorage,
    create_sheets_gateway,
    model_to_row,
    row_to_model,
)

__all__ = [
    # Interfaces
    "COLLECTIONS",
    "AuditStorageInterface",
    "EntityStorage",
    "StorageGateway",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryEntityStorage",
    "create_memory_gateway",
    # JSON file implementation
    "JsonFileEntityStorage",
    "create_json_gateway",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntityStorage",
    "create_sheets_gateway",
    "model_to_row",
    "row_to_model",
]
