"""Sync journal package."""

from expense_sync.audit.logger import SyncJournal, create_correlation_id

__all__ = ["SyncJournal", "create_correlation_id"]
