"""Services package."""

from nexus_finance.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    EntryStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStore,
    InMemoryAuditStorage,
    InMemoryEntryStore,
    NotFoundError,
    PersistenceError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "EntryStoreInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStore",
    "InMemoryAuditStorage",
    "InMemoryEntryStore",
    "NotFoundError",
    "PersistenceError",
    "StorageError",
]
