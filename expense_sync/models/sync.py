"""
Sync State Models

The status signal the engine publishes, and the session that gates
remote access.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from expense_sync.models.expense import utc_now


class SyncState(str, Enum):
    """Phase of the current (or last) sync cycle."""
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncStatus(BaseModel):
    """
    Published sync health.

    A cycle moves IDLE -> SYNCING -> SUCCESS | ERROR. Once the cycle is
    over the engine is idle again (`SyncEngine.is_syncing` is False) but
    the status keeps the outcome, so an upload failure stays visible until
    a later cycle succeeds. The IDLE state itself means no cycle has run
    for the current session, or remote sync is deferred without one.

    `message` is only set for the ERROR state.
    """
    model_config = ConfigDict(frozen=True)

    state: SyncState = SyncState.IDLE
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> "SyncStatus":
        return cls(state=SyncState.IDLE)

    @classmethod
    def syncing(cls) -> "SyncStatus":
        return cls(state=SyncState.SYNCING)

    @classmethod
    def success(cls) -> "SyncStatus":
        return cls(state=SyncState.SUCCESS)

    @classmethod
    def error(cls, message: str) -> "SyncStatus":
        return cls(state=SyncState.ERROR, message=message)

    @property
    def display_text(self) -> str:
        if self.state == SyncState.SYNCING:
            return "Syncing..."
        if self.state == SyncState.SUCCESS:
            return "Synced"
        if self.state == SyncState.ERROR:
            return f"Error: {self.message}"
        return "Ready"


class Session(BaseModel):
    """An opaque, user-scoped session. Remote collections are keyed by user_id."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    is_anonymous: bool = True
    signed_in_at: datetime = Field(default_factory=utc_now)
