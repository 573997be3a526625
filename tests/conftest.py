"""
Shared fixtures for Expense Sync tests.

No test talks to a real network: remote stores are the in-memory backend
or fake gspread worksheets. Every store shares one ticking clock so that
timestamps are strictly ordered by call order.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import NamedTuple, Optional

import pytest

from expense_sync.audit import SyncJournal
from expense_sync.models.expense import Expense, ExpenseCategory
from expense_sync.services.session import AnonymousSessionProvider
from expense_sync.services.storage import (
    InMemoryBackend,
    InMemoryRemoteStore,
    SQLiteExpenseStore,
)
from expense_sync.sync import SyncEngine


class TickingClock:
    """Returns a later time on every call."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


class Device(NamedTuple):
    engine: SyncEngine
    local: SQLiteExpenseStore
    remote: InMemoryRemoteStore
    sessions: AnonymousSessionProvider
    journal: SyncJournal


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def backend(clock):
    return InMemoryBackend(clock=clock)


@pytest.fixture
def local_store(clock):
    store = SQLiteExpenseStore(":memory:", clock=clock)
    yield store
    store.close()


@pytest.fixture
def make_expense():
    """Factory for valid expenses; amounts are exact in binary floating point."""

    def _make(title: str = "Coffee", amount: str = "4.50", **overrides) -> Expense:
        fields = {
            "title": title,
            "amount": Decimal(amount),
            "category": ExpenseCategory.FOOD,
            "date": datetime(2024, 1, 15, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Expense(**fields)

    return _make


@pytest.fixture
def device_factory(backend, clock):
    """
    Build independent engines ("devices") over one shared remote backend.

    Devices built with the same user_id address the same remote collection.
    """
    created: list[SQLiteExpenseStore] = []

    def _build(
        user_id: str = "user-1",
        auto_sign_in: bool = True,
        remote_cls: type = InMemoryRemoteStore,
        local: Optional[SQLiteExpenseStore] = None,
    ) -> Device:
        local = local or SQLiteExpenseStore(":memory:", clock=clock)
        created.append(local)
        sessions = AnonymousSessionProvider(user_id=user_id)
        remote = remote_cls(sessions, backend=backend)
        journal = SyncJournal()
        engine = SyncEngine(
            local,
            remote,
            sessions,
            journal=journal,
            auto_sign_in=auto_sign_in,
            clock=clock,
        )
        return Device(engine, local, remote, sessions, journal)

    yield _build

    for store in created:
        store.close()
