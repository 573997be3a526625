"""
In-Memory Remote Store

A process-local stand-in for the cloud document database.

DESIGN DECISION: The backend (documents + subscribers) is separate from
the client. Several clients, each with its own session provider, can
share one backend; that is how two devices syncing the same account
are simulated.

The backend behaves like the real service where the engine can observe it:
- collections are scoped per session user id
- the server stamps createdAt/updatedAt, strictly increasing
- documents are soft-deleted, never removed
- subscribers receive the full non-removed set after every write
"""

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from expense_sync.models.expense import (
    Expense,
    RemoteExpense,
    parse_remote_documents,
    utc_now,
)
from expense_sync.services.session import SessionProvider
from expense_sync.services.storage.interface import (
    RemoteDocumentMissingError,
    RemoteStoreInterface,
    RemoteTransientError,
    SnapshotCallback,
    Subscription,
    UnauthenticatedError,
)


logger = structlog.get_logger(__name__)


class InMemorySubscription(Subscription):
    """Live feed registration on an InMemoryBackend."""

    def __init__(self, backend: "InMemoryBackend", user_id: str, callback: SnapshotCallback):
        self._backend = backend
        self.user_id = user_id
        self.callback = callback
        self._active = True

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._backend._remove_subscription(self)

    @property
    def is_active(self) -> bool:
        return self._active


class InMemoryBackend:
    """Shared document storage: {user_id: {document_id: document}}."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[InMemorySubscription] = []
        self._last_timestamp: Optional[datetime] = None

    def server_timestamp(self) -> datetime:
        """Server clock, strictly increasing across writes."""
        with self._lock:
            now = self._clock()
            if self._last_timestamp is not None and now <= self._last_timestamp:
                now = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = now
            return now

    def collection(self, user_id: str) -> dict[str, dict[str, Any]]:
        with self._lock:
            return self._collections.setdefault(user_id, {})

    def put_document(self, user_id: str, document_id: str, document: dict[str, Any]) -> None:
        """Write a document verbatim and notify subscribers."""
        with self._lock:
            self.collection(user_id)[document_id] = dict(document)
        self.notify(user_id)

    def documents(self, user_id: str, include_removed: bool = False) -> list[RemoteExpense]:
        with self._lock:
            items = list(self.collection(user_id).items())
        parsed = parse_remote_documents(items)
        if include_removed:
            return parsed
        return [doc for doc in parsed if not doc.is_removed]

    def subscription_count(self, user_id: Optional[str] = None) -> int:
        with self._lock:
            return sum(
                1 for s in self._subscriptions if user_id is None or s.user_id == user_id
            )

    def add_subscription(self, user_id: str, callback: SnapshotCallback) -> InMemorySubscription:
        subscription = InMemorySubscription(self, user_id, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove_subscription(self, subscription: InMemorySubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def notify(self, user_id: str) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.user_id == user_id]
        if not targets:
            return
        snapshot = self.documents(user_id)
        for subscription in targets:
            self.deliver(subscription, snapshot)

    def deliver(self, subscription: InMemorySubscription, snapshot: list[RemoteExpense]) -> None:
        if not subscription.is_active:
            return
        try:
            subscription.callback(list(snapshot))
        except Exception as e:
            logger.error("subscription_callback_failed", user_id=subscription.user_id, error=str(e))


class InMemoryRemoteStore(RemoteStoreInterface):
    """
    Remote store client over an InMemoryBackend.

    Supports fault injection for tests: `fail_next(n)` makes the next n
    operations raise RemoteTransientError.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        backend: Optional[InMemoryBackend] = None,
    ):
        self._sessions = session_provider
        self.backend = backend or InMemoryBackend()
        self._failures_remaining = 0
        self.calls: list[str] = []

    def fail_next(self, count: int = 1) -> None:
        self._failures_remaining = count

    def _begin(self, operation: str) -> str:
        """Check session and injected failures; return the scoped user id."""
        session = self._sessions.current_session()
        if session is None:
            raise UnauthenticatedError(f"{operation}: no active session")
        self.calls.append(operation)
        if self._failures_remaining > 0:
            self._failures_remaining -= 1
            raise RemoteTransientError(f"{operation}: simulated network failure")
        return session.user_id

    async def create(self, expense: Expense) -> str:
        user_id = self._begin("create")
        document_id = uuid4().hex
        now = self.backend.server_timestamp()
        document = RemoteExpense.from_expense(
            expense, document_id, created_at=now, updated_at=now
        ).to_document()
        self.backend.put_document(user_id, document_id, document)
        return document_id

    async def update(self, remote_id: str, expense: Expense) -> None:
        user_id = self._begin("update")
        existing = self.backend.collection(user_id).get(remote_id)
        if existing is None:
            raise RemoteDocumentMissingError(f"update: document {remote_id} does not exist")
        now = self.backend.server_timestamp()
        document = RemoteExpense.from_expense(
            expense,
            remote_id,
            created_at=existing.get("createdAt") or now,
            updated_at=now,
            is_removed=bool(existing.get("isRemoved", False)),
        ).to_document()
        self.backend.put_document(user_id, remote_id, document)

    async def soft_delete(self, remote_id: str) -> None:
        user_id = self._begin("soft_delete")
        existing = self.backend.collection(user_id).get(remote_id)
        if existing is None:
            raise RemoteDocumentMissingError(f"soft_delete: document {remote_id} does not exist")
        document = dict(existing)
        document["isRemoved"] = True
        document["updatedAt"] = self.backend.server_timestamp()
        self.backend.put_document(user_id, remote_id, document)

    async def fetch_all(self, include_removed: bool = False) -> list[RemoteExpense]:
        user_id = self._begin("fetch_all")
        return self.backend.documents(user_id, include_removed=include_removed)

    def subscribe(self, on_change: SnapshotCallback) -> Subscription:
        session = self._sessions.current_session()
        if session is None:
            raise UnauthenticatedError("subscribe: no active session")
        subscription = self.backend.add_subscription(session.user_id, on_change)
        self.backend.deliver(subscription, self.backend.documents(session.user_id))
        return subscription
