"""
Sync Engine

Keeps the local store and the remote document store converging.

FLOW:
1. Bootstrap   - publish the local data immediately, no network needed
2. Mutations   - add/update/delete hit the local store first (dirty),
                 republish, then request an upload sweep
3. Upload      - the sweep pushes every dirty record; success clears the
                 dirty flag, failure leaves it for the next sweep
4. Download    - remote snapshots (live subscription or explicit fetch)
                 are merged by expense id, last-writer-wins on updatedAt
5. Publish     - the active list, status, last sync time and pending count
                 are observable values for the presentation layer

CONCURRENCY:
All state changes happen on the event loop that started the engine.
Remote calls are awaited in background tasks. At most one sweep task
exists at a time; triggers arriving while it runs make it loop once
more instead of starting a second one. There is at most one live
subscription, and it is cancelled on sign-out and on close.
"""

import asyncio
import functools
from datetime import datetime, timezone
from typing import Callable, Coroutine, Iterable, Optional, Union
from uuid import UUID

import structlog

from expense_sync.audit import SyncJournal, create_correlation_id
from expense_sync.models.audit import SyncEventBuilder, SyncEventType
from expense_sync.models.expense import (
    DEFAULT_PAYMENT_MODES,
    Expense,
    LocalExpenseRecord,
    MalformedRemoteRecordError,
    PaymentMode,
    RemoteExpense,
    utc_now,
)
from expense_sync.models.sync import Session, SyncState, SyncStatus
from expense_sync.queries.summary import ExpenseSummary
from expense_sync.services.session import SessionProvider
from expense_sync.services.storage.interface import (
    LocalStoreInterface,
    RemoteDocumentMissingError,
    RemoteStoreError,
    RemoteStoreInterface,
    Subscription,
    UnauthenticatedError,
)
from expense_sync.sync.observable import ObservableValue


logger = structlog.get_logger(__name__)

# Remote documents without an updatedAt never win a conflict
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SyncEngine:
    """
    One engine per session owner, with explicit store references.

    Presentation code calls `add_expense`, `update_expense`,
    `delete_expense` and `manual_sync`, and reads (or subscribes to)
    `expenses`, `status`, `last_sync_at` and `pending_changes`.
    """

    def __init__(
        self,
        local_store: LocalStoreInterface,
        remote_store: RemoteStoreInterface,
        session_provider: SessionProvider,
        journal: Optional[SyncJournal] = None,
        payment_modes: Optional[Callable[[], Iterable[PaymentMode]]] = None,
        auto_sign_in: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._local = local_store
        self._remote = remote_store
        self._sessions = session_provider
        self._journal = journal or SyncJournal()
        self._payment_modes = payment_modes or (lambda: DEFAULT_PAYMENT_MODES)
        self._auto_sign_in = auto_sign_in
        self._clock = clock

        # Published state
        self.expenses: ObservableValue[list[Expense]] = ObservableValue([])
        self.status: ObservableValue[SyncStatus] = ObservableValue(SyncStatus.idle())
        self.last_sync_at: ObservableValue[Optional[datetime]] = ObservableValue(None)
        self.pending_changes: ObservableValue[int] = ObservableValue(0)

        # Background work
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: set[asyncio.Task] = set()
        self._sweep_task: Optional[asyncio.Task] = None
        self._rerun_requested = False
        self._download_requested = False
        self._subscription: Optional[Subscription] = None
        # Bumped on every open and cancel; deliveries tagged with an older
        # generation belong to a dead subscription and are dropped
        self._subscription_generation = 0
        self._closed = False

        self._remove_session_listener = self._sessions.add_listener(self._on_session_changed)

        # Bootstrap: the user sees local data with zero network dependency
        self._publish()

    # ------------------------------------------------------------------
    # Read side
    @property
    def journal(self) -> SyncJournal:
        return self._journal

    @property
    def has_pending_changes(self) -> bool:
        return self.pending_changes.value > 0

    @property
    def is_authenticated(self) -> bool:
        return self._sessions.current_session() is not None

    @property
    def is_syncing(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def _publish(self) -> None:
        """Republish the feed from the local store (the single source of truth)."""
        self.expenses.set([record.expense for record in self._local.query_active()])
        self.pending_changes.set(self._local.count_pending())

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> None:
        """
        Bind to the running event loop and go online if possible.

        Without a session an anonymous sign-in is attempted; its failure
        only defers remote sync, local operation continues.
        """
        self._loop = asyncio.get_running_loop()
        session = self._sessions.current_session()
        if session is not None:
            self._activate(session)
        elif self._auto_sign_in:
            await self._sign_in()

    async def close(self) -> None:
        """Cancel the subscription and all background work."""
        self._closed = True
        self._remove_session_listener()
        self._cancel_subscription()
        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait until every background task of this engine has finished."""
        while True:
            # Let callbacks queued with call_soon_threadsafe spawn their tasks
            await asyncio.sleep(0)
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                await asyncio.sleep(0)
                if not any(not t.done() for t in self._tasks):
                    return
                continue
            await asyncio.gather(*pending, return_exceptions=True)

    async def _sign_in(self) -> Optional[Session]:
        try:
            return await self._sessions.sign_in_anonymously()
        except Exception as e:
            self._journal.record(SyncEventBuilder.sign_in_failed(str(e)))
            return None

    def _on_session_changed(self, session: Optional[Session]) -> None:
        """Session provider callback; may arrive from any thread."""
        if self._loop is None or self._closed:
            return
        self._loop.call_soon_threadsafe(self._handle_session_change, session)

    def _handle_session_change(self, session: Optional[Session]) -> None:
        if self._closed:
            return
        if session is None:
            self._journal.record(SyncEventBuilder.session_changed(False, None))
            self._cancel_subscription()
            self.status.set(SyncStatus.idle())
            return
        self._activate(session)

    def _activate(self, session: Session) -> None:
        """Session is active: (re)open the live feed and run a full cycle."""
        if self._closed:
            return
        self._journal.record(SyncEventBuilder.session_changed(True, session.user_id))
        self._open_subscription(session)
        self._download_requested = True
        self._ensure_sweep()

    # ------------------------------------------------------------------
    # Subscription
    def _open_subscription(self, session: Session) -> None:
        # Never let a stale registration keep delivering alongside the new one
        self._cancel_subscription()
        self._subscription_generation += 1
        on_snapshot = functools.partial(self._on_snapshot, self._subscription_generation)
        try:
            self._subscription = self._remote.subscribe(on_snapshot)
        except RemoteStoreError as e:
            logger.warning("subscription_failed", error=str(e))
            return
        self._journal.record(SyncEventBuilder.subscription_changed(True, session.user_id))

    def _cancel_subscription(self) -> None:
        self._subscription_generation += 1
        if self._subscription is None:
            return
        self._subscription.cancel()
        self._subscription = None
        self._journal.record(SyncEventBuilder.subscription_changed(False, None))

    def _on_snapshot(self, generation: int, snapshot: list[RemoteExpense]) -> None:
        """Subscription callback; the merge itself runs on the engine's loop."""
        if self._loop is None or self._closed:
            return
        self._loop.call_soon_threadsafe(self._spawn_merge, generation, snapshot)

    def _spawn_merge(self, generation: int, snapshot: list[RemoteExpense]) -> None:
        if self._closed or self._subscription is None:
            return
        if generation != self._subscription_generation:
            logger.debug("stale_snapshot_dropped", generation=generation)
            return
        self._spawn(self._merge_from_subscription(snapshot))

    async def _merge_from_subscription(self, snapshot: list[RemoteExpense]) -> None:
        self._merge(snapshot, create_correlation_id(), source="subscription")
        if self.is_syncing:
            return
        # An upload failure stays reported until a sweep retries it
        if self.status_is(SyncState.ERROR) and self.has_pending_changes:
            return
        self.status.set(SyncStatus.success())
        self.last_sync_at.set(self._clock())

    # ------------------------------------------------------------------
    # Mutations (local first, upload in the background)
    async def add_expense(self, expense: Expense) -> Expense:
        """
        Add a new expense.

        Raises:
            DuplicateError: If an expense with this id exists
        """
        record = self._local.insert(expense, dirty=True)
        self._journal.record(
            SyncEventBuilder.local_mutation(SyncEventType.EXPENSE_ADDED, expense.id, expense.title)
        )
        self._publish()
        self.request_sweep()
        return record.expense

    async def update_expense(self, expense: Expense) -> Expense:
        """
        Replace an existing expense's fields.

        Raises:
            NotFoundError: If no active expense has this id
        """
        record = self._local.update(expense.id, expense, dirty=True)
        self._journal.record(
            SyncEventBuilder.local_mutation(SyncEventType.EXPENSE_UPDATED, expense.id, expense.title)
        )
        self._publish()
        self.request_sweep()
        return record.expense

    async def delete_expense(self, expense: Union[Expense, UUID]) -> bool:
        """
        Soft-delete an expense. Deleting twice is a no-op.

        Returns:
            True if the expense was removed by this call

        Raises:
            NotFoundError: If the id is unknown
        """
        expense_id = expense.id if isinstance(expense, Expense) else expense
        changed = self._local.soft_delete(expense_id, dirty=True)
        if not changed:
            return False
        title = expense.title if isinstance(expense, Expense) else str(expense_id)
        self._journal.record(
            SyncEventBuilder.local_mutation(SyncEventType.EXPENSE_DELETED, expense_id, title)
        )
        self._publish()
        self.request_sweep()
        return True

    async def manual_sync(self) -> SyncStatus:
        """
        Run a full cycle now: download and merge, then upload pending changes.

        Without a session (and no way to get one) this returns immediately;
        local data is unaffected.
        """
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if not self.is_authenticated:
            if not self._auto_sign_in or await self._sign_in() is None:
                return self.status.value
        self._download_requested = True
        task = self._ensure_sweep()
        if task is not None:
            await asyncio.shield(task)
        return self.status.value

    # ------------------------------------------------------------------
    # Sweep scheduling
    def request_sweep(self) -> None:
        """Ask for an upload sweep. Deferred silently while unauthenticated."""
        if not self.is_authenticated:
            return
        self._ensure_sweep()

    def _ensure_sweep(self) -> Optional[asyncio.Task]:
        if self._closed:
            return None
        if self.is_syncing:
            self._rerun_requested = True
            return self._sweep_task
        self._sweep_task = self._spawn(self._sweep_loop())
        return self._sweep_task

    async def _sweep_loop(self) -> None:
        while True:
            self._rerun_requested = False
            download = self._download_requested
            self._download_requested = False
            await self._run_cycle(download)
            if self._closed or not (self._rerun_requested or self._download_requested):
                break

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("sync_task_failed", error=str(exc), exc_info=exc)
            if not self._closed:
                self.status.set(SyncStatus.error(str(exc)))

    # ------------------------------------------------------------------
    # One sync cycle
    async def _run_cycle(self, download: bool) -> None:
        correlation_id = create_correlation_id()
        self.status.set(SyncStatus.syncing())
        errors: list[str] = []
        deferred = False

        if download:
            try:
                snapshot = await self._remote.fetch_all(include_removed=True)
            except UnauthenticatedError:
                deferred = True
            except RemoteStoreError as e:
                errors.append(str(e))
                self._journal.record(SyncEventBuilder.fetch_failed(str(e), correlation_id))
            else:
                self._merge(snapshot, correlation_id, source="fetch")

        if not deferred:
            failures, deferred = await self._upload_pending(correlation_id)
            errors.extend(failures)

        self._publish()
        if errors:
            self.status.set(SyncStatus.error(errors[0]))
        elif deferred:
            self.status.set(SyncStatus.idle())
        else:
            self.status.set(SyncStatus.success())
            self.last_sync_at.set(self._clock())

    async def _upload_pending(self, correlation_id: UUID) -> tuple[list[str], bool]:
        """
        Push every dirty record.

        Returns:
            (error messages, deferred) - deferred is True if the session
            went away mid-sweep
        """
        pending = self._local.query_pending()
        removals = self._local.query_pending_removals()
        self._journal.record(
            SyncEventBuilder.sweep_started(len(pending) + len(removals), correlation_id)
        )

        failures: list[str] = []
        uploaded = 0
        deferred = False

        for record in pending:
            operation = "update" if record.remote_id else "create"
            try:
                remote_id = await self._push(record, correlation_id)
            except UnauthenticatedError as e:
                deferred = True
                self._journal.record(SyncEventBuilder.upload_deferred(str(e), correlation_id))
                break
            except RemoteStoreError as e:
                failures.append(str(e))
                self._journal.record(
                    SyncEventBuilder.upload_failed(record.id, operation, str(e), correlation_id)
                )
                continue
            self._local.mark_synced(record.id, remote_id, expected_updated_at=record.updated_at)
            uploaded += 1
            self._journal.record(
                SyncEventBuilder.upload_succeeded(record.id, remote_id, operation, correlation_id)
            )

        for record in removals:
            if deferred:
                break
            if record.remote_id is None:
                # Never reached the remote: nothing to delete there
                self._local.mark_synced(record.id, None, expected_updated_at=record.updated_at)
                continue
            try:
                await self._remote.soft_delete(record.remote_id)
            except RemoteDocumentMissingError:
                # Gone remotely already: the removal has nothing left to do
                self._local.mark_synced(record.id, None, expected_updated_at=record.updated_at)
                continue
            except UnauthenticatedError as e:
                deferred = True
                self._journal.record(SyncEventBuilder.upload_deferred(str(e), correlation_id))
                break
            except RemoteStoreError as e:
                failures.append(str(e))
                self._journal.record(
                    SyncEventBuilder.upload_failed(record.id, "delete", str(e), correlation_id)
                )
                continue
            self._local.mark_synced(record.id, record.remote_id, expected_updated_at=record.updated_at)
            uploaded += 1
            self._journal.record(
                SyncEventBuilder.upload_succeeded(record.id, record.remote_id, "delete", correlation_id)
            )

        self._journal.record(
            SyncEventBuilder.sweep_completed(uploaded, len(failures), deferred, correlation_id)
        )
        self.pending_changes.set(self._local.count_pending())
        return failures, deferred

    async def _push(self, record: LocalExpenseRecord, correlation_id: UUID) -> str:
        """Create or update the remote document; returns its id."""
        if record.remote_id:
            try:
                await self._remote.update(record.remote_id, record.expense)
                return record.remote_id
            except RemoteDocumentMissingError:
                logger.info(
                    "remote_document_missing",
                    expense_id=str(record.id),
                    remote_id=record.remote_id,
                    correlation_id=str(correlation_id),
                )
        return await self._remote.create(record.expense)

    # ------------------------------------------------------------------
    # Merge (last-writer-wins on updatedAt)
    def _merge(self, snapshot: list[RemoteExpense], correlation_id: UUID, source: str) -> int:
        """
        Reconcile a remote snapshot into the local store.

        Returns:
            Number of remote versions applied locally
        """
        self._journal.record(
            SyncEventBuilder.snapshot_received(len(snapshot), source, correlation_id)
        )
        catalog = list(self._payment_modes())
        applied = 0
        for remote in snapshot:
            try:
                if self._merge_one(remote, catalog, correlation_id):
                    applied += 1
            except MalformedRemoteRecordError as e:
                self._journal.record(
                    SyncEventBuilder.record_malformed(e.document_id, e.reason, correlation_id)
                )
        self._publish()
        return applied

    def _merge_one(
        self,
        remote: RemoteExpense,
        catalog: list[PaymentMode],
        correlation_id: UUID,
    ) -> bool:
        expense = remote.to_expense(catalog)
        remote_updated = remote.updated_at or EPOCH
        local = self._local.get(remote.id)

        if local is None:
            if remote.is_removed:
                return False
            self._local.apply_remote(
                expense,
                remote.document_id,
                created_at=remote.created_at or remote_updated,
                updated_at=remote_updated,
            )
            self._journal.record(
                SyncEventBuilder.merge_applied(expense.id, remote.document_id, "inserted", correlation_id)
            )
            return True

        if remote_updated > local.updated_at:
            self._local.apply_remote(
                expense,
                remote.document_id,
                created_at=local.created_at,
                updated_at=remote_updated,
                is_removed=remote.is_removed,
            )
            action = "removed" if remote.is_removed else "overwritten"
            self._journal.record(
                SyncEventBuilder.merge_applied(expense.id, remote.document_id, action, correlation_id)
            )
            return True

        self._journal.record(
            SyncEventBuilder.merge_skipped(expense.id, remote.document_id, correlation_id)
        )
        return False

    # ------------------------------------------------------------------
    # Convenience for presentation
    def current_status(self) -> SyncStatus:
        return self.status.value

    def status_is(self, state: SyncState) -> bool:
        return self.status.value.state == state

    def summary(self) -> ExpenseSummary:
        """Totals over the currently published feed."""
        return ExpenseSummary(self.expenses.value)
