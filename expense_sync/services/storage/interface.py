"""
Abstract Storage Interfaces

DESIGN DECISION: The sync engine talks to both stores through abstract
interfaces. This allows us to:
1. Swap SQLite or Google Sheets for another backend later
2. Use in-memory stores for testing and multi-device simulation
3. Keep conflict resolution decoupled from storage details

The local store is synchronous: it is embedded and fast, and every write
must be visible to the very next read. The remote store is async: every
call may wait on the network for an arbitrary time.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from expense_sync.models.expense import (
    Expense,
    LocalExpenseRecord,
    MalformedRemoteRecordError,
    RemoteExpense,
)


SnapshotCallback = Callable[[list[RemoteExpense]], None]


class LocalStoreInterface(ABC):
    """
    Durable on-device table of expenses plus sync metadata.

    There is at most one record per expense id. Deletes are soft:
    the record stays with `is_removed` set.
    """

    @abstractmethod
    def insert(self, expense: Expense, dirty: bool = True) -> LocalExpenseRecord:
        """
        Create a new record with created_at/updated_at set to now.

        Raises:
            DuplicateError: If a record with this id already exists
        """

    @abstractmethod
    def update(self, expense_id: UUID, expense: Expense, dirty: bool = True) -> LocalExpenseRecord:
        """
        Replace the mutable fields of an existing, non-removed record.

        Raises:
            NotFoundError: If no active record has this id
        """

    @abstractmethod
    def soft_delete(self, expense_id: UUID, dirty: bool = True) -> bool:
        """
        Mark a record as removed.

        Returns:
            True if the record changed, False if it was already removed

        Raises:
            NotFoundError: If no record has this id
        """

    @abstractmethod
    def get(self, expense_id: UUID) -> Optional[LocalExpenseRecord]:
        """Fetch one record, removed or not."""

    @abstractmethod
    def query_active(self) -> list[LocalExpenseRecord]:
        """All non-removed records, newest expense date first."""

    @abstractmethod
    def query_pending(self) -> list[LocalExpenseRecord]:
        """Dirty, non-removed records awaiting upload."""

    @abstractmethod
    def query_pending_removals(self) -> list[LocalExpenseRecord]:
        """Dirty, removed records whose deletion still has to reach the remote."""

    @abstractmethod
    def count_pending(self) -> int:
        """Number of dirty records, removals included."""

    @abstractmethod
    def mark_synced(
        self,
        expense_id: UUID,
        remote_id: Optional[str],
        expected_updated_at: Optional[datetime] = None,
    ) -> bool:
        """
        Record a confirmed remote write.

        Sets remote_id and last_synced_at. The dirty flag is cleared only
        if the record's updated_at still equals `expected_updated_at`
        (when given), so an edit made while the upload was in flight
        stays pending.

        Returns:
            True if the dirty flag was cleared
        """

    @abstractmethod
    def apply_remote(
        self,
        expense: Expense,
        remote_id: str,
        created_at: datetime,
        updated_at: datetime,
        is_removed: bool = False,
    ) -> LocalExpenseRecord:
        """
        Write a remote version over the local one (or insert it), clean.

        The record adopts the remote timestamps, so an echo of the same
        document is never considered newer again.
        """


class Subscription(ABC):
    """Handle for a live remote feed."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop delivery. Safe to call more than once."""

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """True until cancelled."""


class RemoteStoreInterface(ABC):
    """
    Operations against the per-user remote document collection.

    Every operation raises UnauthenticatedError when no session is active.
    Network and server failures surface as RemoteTransientError.
    update and soft_delete raise RemoteDocumentMissingError when the
    addressed document is not in the current user's collection.
    """

    @abstractmethod
    async def create(self, expense: Expense) -> str:
        """
        Write a new document; the server stamps createdAt/updatedAt.

        Returns:
            The remote document id
        """

    @abstractmethod
    async def update(self, remote_id: str, expense: Expense) -> None:
        """Overwrite all mutable fields and refresh updatedAt."""

    @abstractmethod
    async def soft_delete(self, remote_id: str) -> None:
        """Set isRemoved and refresh updatedAt. Documents are never physically removed."""

    @abstractmethod
    async def fetch_all(self, include_removed: bool = False) -> list[RemoteExpense]:
        """
        All documents in the scoped collection.

        Malformed documents are skipped (and logged), never raised.
        """

    @abstractmethod
    def subscribe(self, on_change: SnapshotCallback) -> Subscription:
        """
        Open a live feed of the full non-removed document set.

        `on_change` receives the complete list on the initial snapshot and
        on every later change.
        """


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class RemoteStoreError(StorageError):
    """Base exception for remote store failures. Always recoverable by retry."""
    pass


class UnauthenticatedError(RemoteStoreError):
    """Remote operation attempted without an active session."""
    pass


class RemoteTransientError(RemoteStoreError):
    """Network, timeout or server failure talking to the remote store."""
    pass


class RemoteDocumentMissingError(RemoteStoreError):
    """The addressed remote document does not exist in the current collection."""
    pass


__all__ = [
    "DuplicateError",
    "LocalStoreInterface",
    "MalformedRemoteRecordError",
    "NotFoundError",
    "RemoteDocumentMissingError",
    "RemoteStoreError",
    "RemoteStoreInterface",
    "RemoteTransientError",
    "SnapshotCallback",
    "StorageError",
    "Subscription",
    "UnauthenticatedError",
]
