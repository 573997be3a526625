"""Sync engine package."""

from expense_sync.sync.engine import SyncEngine
from expense_sync.sync.observable import ObservableValue

__all__ = ["ObservableValue", "SyncEngine"]
