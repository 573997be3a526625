"""
Tests for the SyncEngine

Covers the local-first write path, the upload sweep, last-writer-wins
merging, subscription lifecycle and multi-device convergence.
All remote traffic goes to the in-memory backend.
"""

import asyncio
from datetime import timedelta

import pytest

from expense_sync.models.audit import SyncEventType
from expense_sync.models.expense import ExpenseCategory, PaymentMode, RemoteExpense
from expense_sync.models.sync import SyncState
from expense_sync.services.session import AnonymousSessionProvider, SignInError
from expense_sync.services.storage import (
    DuplicateError,
    InMemoryRemoteStore,
    NotFoundError,
)
from expense_sync.sync import SyncEngine


class GatedRemoteStore(InMemoryRemoteStore):
    """Holds every create until `gate` is set, and counts overlapping calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0

    async def create(self, expense):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
            return await super().create(expense)
        finally:
            self.in_flight -= 1


class RecordingRemoteStore(InMemoryRemoteStore):
    """Keeps every snapshot callback handed to subscribe."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.callbacks = []

    def subscribe(self, on_change):
        self.callbacks.append(on_change)
        return super().subscribe(on_change)


class FailingSessionProvider(AnonymousSessionProvider):
    async def sign_in_anonymously(self):
        raise SignInError("auth service unreachable")


async def started(device):
    await device.engine.start()
    await device.engine.drain()
    return device


def remote_docs(backend, user_id="user-1", include_removed=False):
    return backend.documents(user_id, include_removed=include_removed)


class TestBootstrap:
    """The feed is available before any network activity."""

    def test_publishes_existing_local_data_on_construction(self, device_factory, local_store, make_expense):
        """Records already in the local store appear immediately."""
        local_store.insert(make_expense("Rent", "800.00"), dirty=False)
        local_store.insert(make_expense("Groceries", "52.25"), dirty=True)

        device = device_factory(local=local_store)

        titles = sorted(e.title for e in device.engine.expenses.value)
        assert titles == ["Groceries", "Rent"]
        assert device.engine.pending_changes.value == 1
        assert device.engine.has_pending_changes is True
        assert device.remote.calls == []

    def test_initial_status_is_idle(self, device_factory):
        device = device_factory()
        assert device.engine.status.value.state == SyncState.IDLE
        assert device.engine.status.value.display_text == "Ready"
        assert device.engine.last_sync_at.value is None

    def test_removed_records_are_not_published(self, device_factory, local_store, make_expense):
        expense = make_expense()
        local_store.insert(expense)
        local_store.soft_delete(expense.id)

        device = device_factory(local=local_store)

        assert device.engine.expenses.value == []


class TestLocalFirstWrites:
    """Mutations hit the local store and the feed before any upload."""

    @pytest.mark.asyncio
    async def test_add_publishes_before_upload(self, device_factory, make_expense):
        """The feed contains the new expense even when the remote is failing."""
        device = await started(device_factory())
        device.remote.fail_next(10)
        seen = []
        device.engine.expenses.subscribe(seen.append, emit_current=False)

        expense = make_expense()
        await device.engine.add_expense(expense)

        assert [e.id for e in device.engine.expenses.value] == [expense.id]
        assert seen and seen[-1][0].id == expense.id
        assert device.local.get(expense.id).needs_sync is True

    @pytest.mark.asyncio
    async def test_add_duplicate_id_raises(self, device_factory, make_expense):
        device = await started(device_factory(auto_sign_in=False))
        expense = make_expense()
        await device.engine.add_expense(expense)

        with pytest.raises(DuplicateError):
            await device.engine.add_expense(expense)

    @pytest.mark.asyncio
    async def test_update_unknown_expense_raises(self, device_factory, make_expense):
        device = await started(device_factory(auto_sign_in=False))

        with pytest.raises(NotFoundError):
            await device.engine.update_expense(make_expense())

    @pytest.mark.asyncio
    async def test_delete_twice_is_a_noop(self, device_factory, make_expense):
        """The second delete changes nothing and requests no upload."""
        device = await started(device_factory(auto_sign_in=False))
        expense = make_expense()
        await device.engine.add_expense(expense)

        assert await device.engine.delete_expense(expense) is True
        updated_at = device.local.get(expense.id).updated_at
        assert await device.engine.delete_expense(expense.id) is False
        assert device.local.get(expense.id).updated_at == updated_at
        assert device.engine.expenses.value == []

    @pytest.mark.asyncio
    async def test_offline_changes_stay_pending(self, device_factory, make_expense):
        """Without a session nothing is uploaded and the status is not an error."""
        device = await started(device_factory(auto_sign_in=False))

        await device.engine.add_expense(make_expense())
        await device.engine.drain()

        assert device.engine.pending_changes.value == 1
        assert device.engine.status.value.state == SyncState.IDLE
        assert device.remote.calls == []


class TestUploadSweep:
    """Dirty records are pushed and cleaned only after confirmation."""

    @pytest.mark.asyncio
    async def test_online_add_is_uploaded_and_cleaned(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense()

        await device.engine.add_expense(expense)
        await device.engine.drain()

        docs = remote_docs(backend)
        assert [d.id for d in docs] == [expense.id]
        record = device.local.get(expense.id)
        assert record.needs_sync is False
        assert record.remote_id == docs[0].document_id
        assert record.last_synced_at is not None
        assert device.engine.pending_changes.value == 0
        assert device.engine.status.value.state == SyncState.SUCCESS
        assert device.engine.last_sync_at.value is not None

    @pytest.mark.asyncio
    async def test_offline_add_uploads_after_sign_in(self, device_factory, backend, make_expense):
        """Pending work is swept as soon as a session becomes active."""
        device = await started(device_factory(auto_sign_in=False))
        expense = make_expense()
        await device.engine.add_expense(expense)
        assert remote_docs(backend) == []

        await device.sessions.sign_in_anonymously()
        await device.engine.drain()

        assert [d.id for d in remote_docs(backend)] == [expense.id]
        assert device.engine.pending_changes.value == 0

    @pytest.mark.asyncio
    async def test_failed_upload_keeps_record_dirty(self, device_factory, backend, make_expense):
        """A transient failure surfaces as an error status and is retried on the next trigger."""
        device = await started(device_factory())
        device.remote.fail_next(1)
        expense = make_expense()

        await device.engine.add_expense(expense)
        await device.engine.drain()

        assert device.engine.status.value.state == SyncState.ERROR
        assert "simulated network failure" in device.engine.status.value.message
        assert device.local.get(expense.id).needs_sync is True
        assert device.engine.pending_changes.value == 1
        assert len(device.journal.events_of_type(SyncEventType.UPLOAD_FAILED)) == 1

        status = await device.engine.manual_sync()

        assert status.state == SyncState.SUCCESS
        assert [d.id for d in remote_docs(backend)] == [expense.id]
        assert device.engine.pending_changes.value == 0

    @pytest.mark.asyncio
    async def test_update_is_pushed_to_existing_document(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.drain()

        await device.engine.update_expense(expense.model_copy(update={"title": "Flat white"}))
        await device.engine.drain()

        docs = remote_docs(backend)
        assert len(docs) == 1
        assert docs[0].title == "Flat white"
        assert device.remote.calls.count("create") == 1
        assert device.remote.calls.count("update") == 1

    @pytest.mark.asyncio
    async def test_delete_propagates_as_tombstone(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.drain()

        await device.engine.delete_expense(expense)
        await device.engine.drain()

        assert remote_docs(backend) == []
        tombstones = remote_docs(backend, include_removed=True)
        assert len(tombstones) == 1 and tombstones[0].is_removed is True
        record = device.local.get(expense.id)
        assert record.is_removed is True
        assert record.needs_sync is False
        assert device.engine.expenses.value == []

    @pytest.mark.asyncio
    async def test_delete_of_never_uploaded_record_skips_remote(self, device_factory, backend, make_expense):
        """A record created and removed offline never reaches the remote store."""
        device = await started(device_factory(auto_sign_in=False))
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.delete_expense(expense)

        await device.sessions.sign_in_anonymously()
        await device.engine.drain()

        assert remote_docs(backend, include_removed=True) == []
        assert "create" not in device.remote.calls
        assert device.engine.pending_changes.value == 0
    @pytest.mark.asyncio
    async def test_update_of_vanished_document_recreates_it(self, device_factory, backend, make_expense):
        """A remote id that no longer resolves is replaced by a fresh document."""
        device = await started(device_factory())
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.drain()
        old_id = device.local.get(expense.id).remote_id
        backend.collection("user-1").pop(old_id)

        await device.engine.update_expense(expense.model_copy(update={"title": "Flat white"}))
        await device.engine.drain()

        record = device.local.get(expense.id)
        assert record.needs_sync is False
        assert record.remote_id != old_id
        assert [d.title for d in remote_docs(backend)] == ["Flat white"]
        assert device.engine.status.value.state == SyncState.SUCCESS

    @pytest.mark.asyncio
    async def test_delete_of_vanished_document_completes(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.drain()
        backend.collection("user-1").pop(device.local.get(expense.id).remote_id)

        await device.engine.delete_expense(expense)
        await device.engine.drain()

        assert device.engine.pending_changes.value == 0
        assert device.engine.status.value.state == SyncState.SUCCESS
        assert remote_docs(backend, include_removed=True) == []


class TestSingleFlight:
    """At most one sweep is in flight; triggers during a sweep queue one rerun."""

    @pytest.mark.asyncio
    async def test_concurrent_triggers_do_not_overlap(self, device_factory, backend, make_expense):
        device = await started(device_factory(remote_cls=GatedRemoteStore))
        first, second, third = make_expense("One"), make_expense("Two"), make_expense("Three")

        await device.engine.add_expense(first)
        # Let the sweep start and block inside create
        for _ in range(3):
            await asyncio.sleep(0)
        assert device.remote.in_flight == 1

        await device.engine.add_expense(second)
        await device.engine.add_expense(third)
        assert device.remote.in_flight == 1

        device.remote.gate.set()
        await device.engine.drain()

        assert device.remote.max_in_flight == 1
        assert device.remote.calls.count("create") == 3
        assert sorted(d.title for d in remote_docs(backend)) == ["One", "Three", "Two"]
        assert device.engine.pending_changes.value == 0

    @pytest.mark.asyncio
    async def test_edit_during_upload_is_not_lost(self, device_factory, backend, make_expense):
        """A change made while its upload is in flight stays dirty and is pushed next."""
        device = await started(device_factory(remote_cls=GatedRemoteStore))
        expense = make_expense()
        await device.engine.add_expense(expense)
        for _ in range(3):
            await asyncio.sleep(0)

        await device.engine.update_expense(expense.model_copy(update={"title": "Espresso"}))
        device.remote.gate.set()
        await device.engine.drain()

        docs = remote_docs(backend)
        assert len(docs) == 1
        assert docs[0].title == "Espresso"
        assert device.engine.expenses.value[0].title == "Espresso"
        assert device.engine.pending_changes.value == 0


class TestMerge:
    """Remote snapshots are merged by id, last writer wins on updatedAt."""

    @pytest.mark.asyncio
    async def test_unknown_remote_record_is_inserted_clean(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense("Taxi", "18.75", category=ExpenseCategory.TRANSPORTATION)
        now = backend.server_timestamp()
        document = RemoteExpense.from_expense(expense, "doc-1", created_at=now, updated_at=now).to_document()

        backend.put_document("user-1", "doc-1", document)
        await device.engine.drain()

        record = device.local.get(expense.id)
        assert record is not None
        assert record.needs_sync is False
        assert record.remote_id == "doc-1"
        assert record.updated_at == now
        assert [e.title for e in device.engine.expenses.value] == ["Taxi"]

    @pytest.mark.asyncio
    async def test_stale_remote_does_not_overwrite_newer_local(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.drain()
        record = device.local.get(expense.id)

        stale = RemoteExpense.from_expense(
            expense.model_copy(update={"title": "Stale"}),
            record.remote_id,
            created_at=record.created_at,
            updated_at=record.updated_at - timedelta(hours=1),
        ).to_document()
        backend.put_document("user-1", record.remote_id, stale)
        await device.engine.drain()

        assert device.local.get(expense.id).expense.title == "Coffee"
        assert device.journal.events_of_type(SyncEventType.MERGE_SKIPPED)

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_local(self, device_factory, backend, make_expense):
        """Remote wins only when strictly newer; a tie leaves the local version."""
        device = await started(device_factory())
        expense = make_expense()
        await device.engine.add_expense(expense)
        await device.engine.drain()
        record = device.local.get(expense.id)

        tied = RemoteExpense.from_expense(
            expense.model_copy(update={"title": "Tied"}),
            record.remote_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        ).to_document()
        backend.put_document("user-1", record.remote_id, tied)
        await device.engine.drain()

        assert device.local.get(expense.id).expense.title == "Coffee"
        assert device.local.get(expense.id).updated_at == record.updated_at

    @pytest.mark.asyncio
    async def test_newer_remote_overwrites_dirty_local(self, device_factory, backend, make_expense):
        """Remote wins when strictly newer, even over unsynced local edits."""
        device = await started(device_factory(auto_sign_in=False))
        expense = make_expense()
        await device.engine.add_expense(expense)
        local_updated = device.local.get(expense.id).updated_at

        newer = RemoteExpense.from_expense(
            expense.model_copy(update={"title": "From another device"}),
            "doc-9",
            created_at=local_updated,
            updated_at=local_updated + timedelta(minutes=5),
        ).to_document()
        backend.put_document("user-1", "doc-9", newer)

        await device.sessions.sign_in_anonymously()
        await device.engine.drain()

        record = device.local.get(expense.id)
        assert record.expense.title == "From another device"
        assert record.needs_sync is False
        assert record.updated_at == local_updated + timedelta(minutes=5)
        assert remote_docs(backend)[0].title == "From another device"

    @pytest.mark.asyncio
    async def test_malformed_record_is_skipped_others_merge(self, device_factory, backend, make_expense):
        """One bad document never blocks the rest of the snapshot."""
        device = await started(device_factory())
        good = make_expense("Good")
        now = backend.server_timestamp()
        backend.put_document(
            "user-1", "good",
            RemoteExpense.from_expense(good, "good", created_at=now, updated_at=now).to_document(),
        )
        # Parses as a document but violates domain rules
        bad = RemoteExpense.from_expense(make_expense("Bad"), "bad", created_at=now, updated_at=now).to_document()
        bad["amount"] = -5.0
        backend.put_document("user-1", "bad", bad)
        # Does not even parse
        backend.put_document("user-1", "garbage", {"title": "no id"})

        await device.engine.manual_sync()

        assert [e.title for e in device.engine.expenses.value] == ["Good"]
        malformed = device.journal.events_of_type(SyncEventType.RECORD_MALFORMED)
        assert malformed and all(e.remote_id == "bad" for e in malformed)
        assert device.engine.status.value.state == SyncState.SUCCESS

    @pytest.mark.asyncio
    async def test_missing_optional_fields_use_defaults(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        expense = make_expense()
        backend.put_document("user-1", "old-client", {
            "id": str(expense.id),
            "title": "Old client",
            "amount": 12.25,
            "category": "Groceries",
            "date": expense.date,
            "updatedAt": backend.server_timestamp(),
        })
        await device.engine.drain()

        merged = device.local.get(expense.id).expense
        assert merged.category == ExpenseCategory.OTHER
        assert merged.notes is None
        assert merged.is_lent_money is False
        assert merged.payment_mode.name == "Cash"

    @pytest.mark.asyncio
    async def test_remote_tombstone_removes_local_on_fetch(self, device_factory, backend, make_expense):
        """Explicit sync sees removed documents too, so deletions converge."""
        a = await started(device_factory())
        b = await started(device_factory())
        expense = make_expense()
        await a.engine.add_expense(expense)
        await a.engine.drain()
        await b.engine.drain()
        assert [e.id for e in b.engine.expenses.value] == [expense.id]

        b.sessions.sign_out()
        await b.engine.drain()
        await a.engine.delete_expense(expense)
        await a.engine.drain()
        assert [e.id for e in b.engine.expenses.value] == [expense.id]

        await b.sessions.sign_in_anonymously()
        await b.engine.drain()

        assert b.engine.expenses.value == []
        assert b.local.get(expense.id).is_removed is True
    @pytest.mark.asyncio
    async def test_long_text_fields_are_merged(self, device_factory, backend, make_expense):
        device = await started(device_factory())
        long_title = make_expense("T" * 250, notes="N" * 5000)
        long_mode = make_expense("Card", payment_mode=PaymentMode(name="P" * 120))
        now = backend.server_timestamp()
        for doc_id, expense in (("long-title", long_title), ("long-mode", long_mode)):
            document = RemoteExpense.from_expense(expense, doc_id, created_at=now, updated_at=now).to_document()
            backend.put_document("user-1", doc_id, document)
        await device.engine.drain()

        merged = {e.id: e for e in device.engine.expenses.value}
        assert merged[long_title.id].title == "T" * 250
        assert merged[long_title.id].notes == "N" * 5000
        assert merged[long_mode.id].payment_mode.name == "P" * 120
        assert device.journal.events_of_type(SyncEventType.RECORD_MALFORMED) == []


class TestSubscriptionLifecycle:
    """There is at most one live subscription, tied to the session."""

    @pytest.mark.asyncio
    async def test_sign_out_cancels_subscription(self, device_factory, backend):
        device = await started(device_factory())
        assert backend.subscription_count("user-1") == 1

        device.sessions.sign_out()
        await device.engine.drain()

        assert backend.subscription_count("user-1") == 0
        assert device.engine.status.value.state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_repeated_sign_in_keeps_one_subscription(self, device_factory, backend):
        device = await started(device_factory())

        for _ in range(3):
            device.sessions.sign_out()
            await device.sessions.sign_in_anonymously()
        await device.engine.drain()

        assert backend.subscription_count("user-1") == 1

    @pytest.mark.asyncio
    async def test_close_cancels_subscription(self, device_factory, backend):
        device = await started(device_factory())

        await device.engine.close()

        assert backend.subscription_count() == 0

    @pytest.mark.asyncio
    async def test_sign_in_failure_does_not_block_local_use(self, backend, local_store, make_expense):
        sessions = FailingSessionProvider(user_id="user-1")
        engine = SyncEngine(local_store, InMemoryRemoteStore(sessions, backend=backend), sessions)
        await engine.start()
        await engine.add_expense(make_expense())
        await engine.drain()

        assert len(engine.expenses.value) == 1
        assert engine.pending_changes.value == 1
        assert engine.journal.events_of_type(SyncEventType.SIGN_IN_FAILED)
        assert engine.status.value.state == SyncState.IDLE
    @pytest.mark.asyncio
    async def test_late_snapshot_from_cancelled_subscription_is_dropped(self, device_factory, backend, make_expense):
        device = await started(device_factory(remote_cls=RecordingRemoteStore))
        first_callback = device.remote.callbacks[0]

        device.sessions.sign_out()
        await device.sessions.sign_in_anonymously()
        await device.engine.drain()
        assert len(device.remote.callbacks) == 2

        stray = make_expense("From the old feed")
        now = backend.server_timestamp()
        first_callback([RemoteExpense.from_expense(stray, "stray", created_at=now, updated_at=now)])
        await device.engine.drain()

        assert device.local.get(stray.id) is None
        assert device.engine.expenses.value == []


class TestTwoDevices:
    """Two engines over one account converge."""

    @pytest.mark.asyncio
    async def test_add_on_one_device_appears_on_the_other(self, device_factory, make_expense):
        a = await started(device_factory())
        b = await started(device_factory())
        expense = make_expense("Dinner", "40.00", notes="Birthday")

        await a.engine.add_expense(expense)
        await a.engine.drain()
        await b.engine.drain()

        assert b.engine.expenses.value == a.engine.expenses.value
        assert b.engine.expenses.value[0].notes == "Birthday"
        assert b.engine.pending_changes.value == 0

    @pytest.mark.asyncio
    async def test_conflicting_offline_edits_converge_to_later_writer(self, device_factory, backend, make_expense):
        """The device whose edit is older adopts the other device's value."""
        a = await started(device_factory())
        b = await started(device_factory())
        expense = make_expense()
        await a.engine.add_expense(expense)
        await a.engine.drain()
        await b.engine.drain()

        a.sessions.sign_out()
        b.sessions.sign_out()
        await a.engine.drain()
        await b.engine.drain()

        await b.engine.update_expense(expense.model_copy(update={"title": "Edited on B"}))
        await a.engine.update_expense(expense.model_copy(update={"title": "Edited on A"}))

        await a.sessions.sign_in_anonymously()
        await a.engine.drain()
        await b.sessions.sign_in_anonymously()
        await b.engine.drain()
        await a.engine.drain()

        assert a.engine.expenses.value[0].title == "Edited on A"
        assert b.engine.expenses.value[0].title == "Edited on A"
        assert remote_docs(backend)[0].title == "Edited on A"
        assert a.engine.pending_changes.value == 0
        assert b.engine.pending_changes.value == 0

    @pytest.mark.asyncio
    async def test_users_do_not_see_each_other(self, device_factory, make_expense):
        a = await started(device_factory(user_id="alice"))
        b = await started(device_factory(user_id="bob"))

        await a.engine.add_expense(make_expense())
        await a.engine.drain()
        await b.engine.drain()

        assert b.engine.expenses.value == []


class TestStatus:
    """Status transitions are published."""

    @pytest.mark.asyncio
    async def test_sync_cycle_publishes_syncing_then_success(self, device_factory, make_expense):
        device = await started(device_factory())
        states = []
        device.engine.status.subscribe(lambda s: states.append(s.state), emit_current=False)

        await device.engine.add_expense(make_expense())
        await device.engine.drain()

        assert SyncState.SYNCING in states
        assert states[-1] == SyncState.SUCCESS

    @pytest.mark.asyncio
    async def test_manual_sync_without_session_is_a_noop(self, device_factory):
        device = await started(device_factory(auto_sign_in=False))

        status = await device.engine.manual_sync()

        assert status.state == SyncState.IDLE
        assert device.remote.calls == []

    @pytest.mark.asyncio
    async def test_summary_reflects_published_feed(self, device_factory, make_expense):
        device = await started(device_factory(auto_sign_in=False))
        await device.engine.add_expense(make_expense("A", "10.00"))
        removed = make_expense("B", "5.00")
        await device.engine.add_expense(removed)
        await device.engine.delete_expense(removed)

        summary = device.engine.summary()

        assert str(summary.total) == "10.00"

    @pytest.mark.asyncio
    async def test_status_rests_at_outcome_after_cycle(self, device_factory, make_expense):
        device = await started(device_factory())

        await device.engine.add_expense(make_expense())
        await device.engine.drain()

        assert device.engine.is_syncing is False
        assert device.engine.status.value.state == SyncState.SUCCESS
        assert device.engine.status.value.display_text == "Synced"

    @pytest.mark.asyncio
    async def test_foreign_snapshot_does_not_hide_upload_failure(self, device_factory, make_expense):
        """Another device's write reaching us leaves an unretried failure reported."""
        a = await started(device_factory())
        b = await started(device_factory())
        a.remote.fail_next(5)
        await a.engine.add_expense(make_expense("Mine"))
        await a.engine.drain()
        assert a.engine.status.value.state == SyncState.ERROR

        await b.engine.add_expense(make_expense("Theirs"))
        await b.engine.drain()
        await a.engine.drain()

        assert sorted(e.title for e in a.engine.expenses.value) == ["Mine", "Theirs"]
        assert a.engine.pending_changes.value == 1
        assert a.engine.status.value.state == SyncState.ERROR


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
