"""
Sync Journal Models

Every step the sync engine takes is recorded as a SyncEvent:
uploads, merges, skipped documents, subscription changes.
This provides:
1. Traceability of why a record ended up in the state it is in
2. Debugging information when a device does not converge
3. A feed for "last sync" style status screens

DESIGN DECISION: Events of one sync cycle share a correlation ID,
so a whole sweep (or a whole snapshot merge) can be reconstructed.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from expense_sync.models.expense import utc_now


class SyncEventType(str, Enum):
    """Types of events the engine journals."""
    # Local mutations
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Upload path
    SWEEP_STARTED = "sweep_started"
    SWEEP_COMPLETED = "sweep_completed"
    UPLOAD_SUCCEEDED = "upload_succeeded"
    UPLOAD_FAILED = "upload_failed"
    UPLOAD_DEFERRED = "upload_deferred"

    # Download path
    SNAPSHOT_RECEIVED = "snapshot_received"
    MERGE_APPLIED = "merge_applied"
    MERGE_SKIPPED = "merge_skipped"
    RECORD_MALFORMED = "record_malformed"
    FETCH_FAILED = "fetch_failed"

    # Subscription and session
    SUBSCRIPTION_OPENED = "subscription_opened"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SESSION_ACTIVATED = "session_activated"
    SESSION_ENDED = "session_ended"
    SIGN_IN_FAILED = "sign_in_failed"


class SyncEventSeverity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SyncEvent(BaseModel):
    """A single journal entry."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)

    event_type: SyncEventType
    severity: SyncEventSeverity = SyncEventSeverity.INFO

    # The expense this event is about, if any
    expense_id: Optional[UUID] = None
    remote_id: Optional[str] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by all events of one sweep or one snapshot merge"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Flatten for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "expense_id": str(self.expense_id) if self.expense_id else None,
            "remote_id": self.remote_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class SyncEventBuilder:
    """
    Helper class to build journal events with common patterns.

    Usage:
        event = SyncEventBuilder.upload_succeeded(expense_id, remote_id, "create", cid)
    """

    @staticmethod
    def local_mutation(event_type: SyncEventType, expense_id: UUID, title: str) -> SyncEvent:
        return SyncEvent(
            event_type=event_type,
            expense_id=expense_id,
            description=f"{event_type.value.replace('_', ' ').capitalize()}: {title}",
        )

    @staticmethod
    def sweep_started(pending: int, correlation_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SWEEP_STARTED,
            correlation_id=correlation_id,
            description=f"Upload sweep started with {pending} pending changes",
            details={"pending": pending},
        )

    @staticmethod
    def sweep_completed(
        uploaded: int,
        failed: int,
        deferred: bool,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SWEEP_COMPLETED,
            severity=SyncEventSeverity.WARNING if failed else SyncEventSeverity.INFO,
            correlation_id=correlation_id,
            description=f"Upload sweep finished: {uploaded} uploaded, {failed} failed",
            details={"uploaded": uploaded, "failed": failed, "deferred": deferred},
        )

    @staticmethod
    def upload_succeeded(
        expense_id: UUID,
        remote_id: str,
        operation: str,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.UPLOAD_SUCCEEDED,
            expense_id=expense_id,
            remote_id=remote_id,
            correlation_id=correlation_id,
            description=f"Remote {operation} confirmed",
            details={"operation": operation},
        )

    @staticmethod
    def upload_failed(
        expense_id: UUID,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.UPLOAD_FAILED,
            severity=SyncEventSeverity.WARNING,
            expense_id=expense_id,
            correlation_id=correlation_id,
            description=f"Remote {operation} failed, kept for next sweep",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def upload_deferred(reason: str, correlation_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.UPLOAD_DEFERRED,
            correlation_id=correlation_id,
            description="Uploads deferred until a session is active",
            details={"reason": reason},
        )

    @staticmethod
    def snapshot_received(count: int, source: str, correlation_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SNAPSHOT_RECEIVED,
            correlation_id=correlation_id,
            description=f"Received {count} remote documents from {source}",
            details={"count": count, "source": source},
        )

    @staticmethod
    def merge_applied(
        expense_id: UUID,
        remote_id: str,
        action: str,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.MERGE_APPLIED,
            expense_id=expense_id,
            remote_id=remote_id,
            correlation_id=correlation_id,
            description=f"Remote version applied locally ({action})",
            details={"action": action},
        )

    @staticmethod
    def merge_skipped(expense_id: UUID, remote_id: str, correlation_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.MERGE_SKIPPED,
            severity=SyncEventSeverity.DEBUG,
            expense_id=expense_id,
            remote_id=remote_id,
            correlation_id=correlation_id,
            description="Local version is newer or equal, remote ignored",
        )

    @staticmethod
    def record_malformed(
        remote_id: Optional[str],
        reason: str,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.RECORD_MALFORMED,
            severity=SyncEventSeverity.WARNING,
            remote_id=remote_id,
            correlation_id=correlation_id,
            description="Remote document skipped: does not parse as an expense",
            error_message=reason[:500],
        )

    @staticmethod
    def fetch_failed(error_message: str, correlation_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.FETCH_FAILED,
            severity=SyncEventSeverity.WARNING,
            correlation_id=correlation_id,
            description="Fetching remote documents failed",
            error_message=error_message,
        )

    @staticmethod
    def subscription_changed(opened: bool, user_id: Optional[str]) -> SyncEvent:
        return SyncEvent(
            event_type=(
                SyncEventType.SUBSCRIPTION_OPENED
                if opened
                else SyncEventType.SUBSCRIPTION_CANCELLED
            ),
            description="Live subscription opened" if opened else "Live subscription cancelled",
            details={"user_id": user_id},
        )

    @staticmethod
    def session_changed(active: bool, user_id: Optional[str]) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SESSION_ACTIVATED if active else SyncEventType.SESSION_ENDED,
            description="Session became active" if active else "Session ended",
            details={"user_id": user_id},
        )

    @staticmethod
    def sign_in_failed(error_message: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SIGN_IN_FAILED,
            severity=SyncEventSeverity.WARNING,
            description="Anonymous sign-in failed, remote sync deferred",
            error_message=error_message,
        )
