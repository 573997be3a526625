"""
Data Models Package

This package contains all Pydantic models used by Expense Sync.
All data crossing a store boundary must conform to these schemas.
"""

from expense_sync.models.expense import (
    CASH,
    DEFAULT_PAYMENT_MODES,
    Expense,
    ExpenseCategory,
    LocalExpenseRecord,
    MalformedRemoteRecordError,
    PaymentMode,
    RemoteExpense,
    ensure_utc,
    parse_remote_documents,
    resolve_payment_mode,
    utc_now,
)
from expense_sync.models.sync import Session, SyncState, SyncStatus
from expense_sync.models.audit import (
    SyncEvent,
    SyncEventBuilder,
    SyncEventSeverity,
    SyncEventType,
)

__all__ = [
    # Expense models
    "CASH",
    "DEFAULT_PAYMENT_MODES",
    "Expense",
    "ExpenseCategory",
    "LocalExpenseRecord",
    "MalformedRemoteRecordError",
    "PaymentMode",
    "RemoteExpense",
    "ensure_utc",
    "parse_remote_documents",
    "resolve_payment_mode",
    "utc_now",
    # Sync state
    "Session",
    "SyncState",
    "SyncStatus",
    # Journal models
    "SyncEvent",
    "SyncEventBuilder",
    "SyncEventSeverity",
    "SyncEventType",
]
