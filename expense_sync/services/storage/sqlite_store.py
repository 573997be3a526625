"""
SQLite Local Store

The on-device source of truth. One table holds every expense together
with its sync metadata; soft-deleted rows stay in the table with
`is_removed = 1`.

DESIGN DECISION: A single connection guarded by a lock, committed on
every write. Reads issued after a write (from any caller in the process)
always see that write, and ':memory:' databases behave like files.

Timestamps are stored as ISO-8601 UTC strings with microseconds, so
they sort lexically in the same order as chronologically.
"""

import sqlite3
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Optional, Union
from uuid import UUID

import structlog

from expense_sync.models.expense import (
    Expense,
    ExpenseCategory,
    LocalExpenseRecord,
    PaymentMode,
    ensure_utc,
    utc_now,
)
from expense_sync.services.storage.interface import (
    DuplicateError,
    LocalStoreInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)

EXPENSES_DDL = """
CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    amount TEXT NOT NULL,
    category TEXT NOT NULL,
    date TEXT NOT NULL,
    notes TEXT,
    is_lent_money INTEGER NOT NULL DEFAULT 0,
    lent_to_person_name TEXT,
    is_repaid INTEGER NOT NULL DEFAULT 0,
    repaid_date TEXT,
    payment_mode_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_removed INTEGER NOT NULL DEFAULT 0,
    remote_id TEXT,
    last_synced_at TEXT,
    needs_sync INTEGER NOT NULL DEFAULT 0
);
"""

INDEXES_DDL = [
    "CREATE INDEX IF NOT EXISTS idx_expenses_active_date ON expenses(is_removed, date DESC);",
    "CREATE INDEX IF NOT EXISTS idx_expenses_needs_sync ON expenses(needs_sync);",
]

# Mutable domain columns, in the order _expense_values() produces them
DOMAIN_COLUMNS = [
    "title",
    "amount",
    "category",
    "date",
    "notes",
    "is_lent_money",
    "lent_to_person_name",
    "is_repaid",
    "repaid_date",
    "payment_mode_json",
]


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteExpenseStore(LocalStoreInterface):
    """SQLite implementation of the local store."""

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_path = str(db_path)
        self._clock = clock
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock, self._conn:
            self._conn.execute(EXPENSES_DDL)
            for ddl in INDEXES_DDL:
                self._conn.execute(ddl)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Row conversion
    def _expense_values(self, expense: Expense) -> list:
        return [
            expense.title,
            str(expense.amount),
            expense.category.value,
            _ts(expense.date),
            expense.notes,
            int(expense.is_lent_money),
            expense.lent_to_person_name,
            int(expense.is_repaid),
            _ts(expense.repaid_date),
            expense.payment_mode.model_dump_json(),
        ]

    def _row_to_record(self, row: sqlite3.Row) -> LocalExpenseRecord:
        expense = Expense(
            id=UUID(row["id"]),
            title=row["title"],
            amount=Decimal(row["amount"]),
            category=ExpenseCategory(row["category"]),
            date=_parse_ts(row["date"]),
            notes=row["notes"],
            is_lent_money=bool(row["is_lent_money"]),
            lent_to_person_name=row["lent_to_person_name"],
            is_repaid=bool(row["is_repaid"]),
            repaid_date=_parse_ts(row["repaid_date"]),
            payment_mode=PaymentMode.model_validate_json(row["payment_mode_json"]),
        )
        return LocalExpenseRecord(
            expense=expense,
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            is_removed=bool(row["is_removed"]),
            remote_id=row["remote_id"],
            last_synced_at=_parse_ts(row["last_synced_at"]),
            needs_sync=bool(row["needs_sync"]),
        )

    def _fetch(self, where: str, params: tuple = ()) -> list[LocalExpenseRecord]:
        with self._lock:
            cur = self._conn.execute(
                f"SELECT * FROM expenses WHERE {where} ORDER BY date DESC, created_at DESC",
                params,
            )
            return [self._row_to_record(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Mutations
    def insert(self, expense: Expense, dirty: bool = True) -> LocalExpenseRecord:
        now = _ts(self._clock())
        columns = ["id", *DOMAIN_COLUMNS, "created_at", "updated_at", "is_removed", "needs_sync"]
        values = [str(expense.id), *self._expense_values(expense), now, now, 0, int(dirty)]
        placeholders = ", ".join("?" for _ in columns)
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        f"INSERT INTO expenses ({', '.join(columns)}) VALUES ({placeholders})",
                        values,
                    )
            except sqlite3.IntegrityError:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            logger.debug("local_insert", expense_id=str(expense.id), dirty=dirty)
            return self.get(expense.id)

    def update(self, expense_id: UUID, expense: Expense, dirty: bool = True) -> LocalExpenseRecord:
        assignments = ", ".join(f"{col} = ?" for col in DOMAIN_COLUMNS)
        values = [*self._expense_values(expense), _ts(self._clock()), int(dirty), str(expense_id)]
        with self._lock:
            with self._conn:
                cur = self._conn.execute(
                    f"UPDATE expenses SET {assignments}, updated_at = ?, needs_sync = ? "
                    "WHERE id = ? AND is_removed = 0",
                    values,
                )
            if cur.rowcount == 0:
                raise NotFoundError(f"Expense not found: {expense_id}")
            logger.debug("local_update", expense_id=str(expense_id), dirty=dirty)
            return self.get(expense_id)

    def soft_delete(self, expense_id: UUID, dirty: bool = True) -> bool:
        with self._lock:
            existing = self.get(expense_id)
            if existing is None:
                raise NotFoundError(f"Expense not found: {expense_id}")
            if existing.is_removed:
                return False
            with self._conn:
                self._conn.execute(
                    "UPDATE expenses SET is_removed = 1, updated_at = ?, needs_sync = ? WHERE id = ?",
                    (_ts(self._clock()), int(dirty), str(expense_id)),
                )
            logger.debug("local_soft_delete", expense_id=str(expense_id), dirty=dirty)
            return True

    def mark_synced(
        self,
        expense_id: UUID,
        remote_id: Optional[str],
        expected_updated_at: Optional[datetime] = None,
    ) -> bool:
        now = _ts(self._clock())
        with self._lock:
            with self._conn:
                if expected_updated_at is None:
                    cur = self._conn.execute(
                        "UPDATE expenses SET remote_id = ?, last_synced_at = ?, needs_sync = 0 "
                        "WHERE id = ?",
                        (remote_id, now, str(expense_id)),
                    )
                    return cur.rowcount > 0
                cur = self._conn.execute(
                    "UPDATE expenses SET remote_id = ?, last_synced_at = ?, needs_sync = 0 "
                    "WHERE id = ? AND updated_at = ?",
                    (remote_id, now, str(expense_id), _ts(expected_updated_at)),
                )
                if cur.rowcount > 0:
                    return True
                # Changed while the upload was in flight: remember the remote
                # id but keep the record dirty for the next sweep.
                self._conn.execute(
                    "UPDATE expenses SET remote_id = ?, last_synced_at = ? WHERE id = ?",
                    (remote_id, now, str(expense_id)),
                )
                return False

    def apply_remote(
        self,
        expense: Expense,
        remote_id: str,
        created_at: datetime,
        updated_at: datetime,
        is_removed: bool = False,
    ) -> LocalExpenseRecord:
        now = _ts(self._clock())
        columns = [
            "id", *DOMAIN_COLUMNS, "created_at", "updated_at",
            "is_removed", "remote_id", "last_synced_at", "needs_sync",
        ]
        values = [
            str(expense.id), *self._expense_values(expense), _ts(created_at), _ts(updated_at),
            int(is_removed), remote_id, now, 0,
        ]
        placeholders = ", ".join("?" for _ in columns)
        # created_at is kept from the first local write
        overwrite = ", ".join(
            f"{col} = excluded.{col}" for col in columns if col not in ("id", "created_at")
        )
        with self._lock:
            with self._conn:
                self._conn.execute(
                    f"INSERT INTO expenses ({', '.join(columns)}) VALUES ({placeholders}) "
                    f"ON CONFLICT(id) DO UPDATE SET {overwrite}",
                    values,
                )
            logger.debug("local_apply_remote", expense_id=str(expense.id), remote_id=remote_id)
            return self.get(expense.id)

    # ------------------------------------------------------------------
    # Queries
    def get(self, expense_id: UUID) -> Optional[LocalExpenseRecord]:
        records = self._fetch("id = ?", (str(expense_id),))
        return records[0] if records else None

    def query_active(self) -> list[LocalExpenseRecord]:
        return self._fetch("is_removed = 0")

    def query_pending(self) -> list[LocalExpenseRecord]:
        return self._fetch("needs_sync = 1 AND is_removed = 0")

    def query_pending_removals(self) -> list[LocalExpenseRecord]:
        return self._fetch("needs_sync = 1 AND is_removed = 1")

    def count_pending(self) -> int:
        with self._lock:
            cur = self._conn.execute("SELECT COUNT(*) FROM expenses WHERE needs_sync = 1")
            return int(cur.fetchone()[0])
