"""
Storage Services Package

Provides the abstract entry store interface and its implementations.
Google Sheets is the durable backend; the in-memory store backs tests
and runs without credentials.
"""

from nexus_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    EntryStoreInterface,
    NotFoundError,
    PersistenceError,
    StorageError,
)
from nexus_finance.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryEntryStore,
)
from nexus_finance.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "EntryStoreInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryEntryStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStore",
]
