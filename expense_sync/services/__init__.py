"""Services package."""

from expense_sync.services.preferences import PaymentModeStore
from expense_sync.services.session import (
    AnonymousSessionProvider,
    SessionProvider,
    SignInError,
)
from expense_sync.services.storage import (
    DuplicateError,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    LocalStoreInterface,
    NotFoundError,
    RemoteStoreError,
    RemoteStoreInterface,
    SQLiteExpenseStore,
    StorageError,
)

__all__ = [
    # Preferences
    "PaymentModeStore",
    # Session
    "AnonymousSessionProvider",
    "SessionProvider",
    "SignInError",
    # Storage services
    "DuplicateError",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
    "LocalStoreInterface",
    "NotFoundError",
    "RemoteStoreError",
    "RemoteStoreInterface",
    "SQLiteExpenseStore",
    "StorageError",
]
