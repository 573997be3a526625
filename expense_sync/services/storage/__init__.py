"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
- Local: SQLite, the on-device source of truth
- Remote: Google Sheets, plus an in-memory backend for tests and offline use
"""

from expense_sync.services.storage.interface import (
    DuplicateError,
    LocalStoreInterface,
    MalformedRemoteRecordError,
    NotFoundError,
    RemoteDocumentMissingError,
    RemoteStoreError,
    RemoteStoreInterface,
    RemoteTransientError,
    StorageError,
    Subscription,
    UnauthenticatedError,
)
from expense_sync.services.storage.sqlite_store import SQLiteExpenseStore
from expense_sync.services.storage.memory import (
    InMemoryBackend,
    InMemoryRemoteStore,
    InMemorySubscription,
)
from expense_sync.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    PollingSubscription,
)

__all__ = [
    # Interfaces
    "LocalStoreInterface",
    "RemoteStoreInterface",
    "Subscription",
    # Exceptions
    "DuplicateError",
    "MalformedRemoteRecordError",
    "NotFoundError",
    "RemoteDocumentMissingError",
    "RemoteStoreError",
    "RemoteTransientError",
    "StorageError",
    "UnauthenticatedError",
    # Local implementation
    "SQLiteExpenseStore",
    # In-memory remote
    "InMemoryBackend",
    "InMemoryRemoteStore",
    "InMemorySubscription",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "PollingSubscription",
]
