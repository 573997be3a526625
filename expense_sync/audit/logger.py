"""
Sync Journal

DESIGN DECISION: Every step of the sync engine is journaled.
This provides:
1. Traceability of how a record reached its current state
2. Debugging capability when devices do not converge
3. A recent-activity feed for sync status screens

The journal:
- Writes every event to the structured log at the event's severity
- Keeps a bounded ring of recent events in memory
- Never raises: a journaling problem must not break syncing
"""

from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_sync.models.audit import SyncEvent, SyncEventSeverity, SyncEventType


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class SyncJournal:
    """
    Central sync event journal.

    Logs events to:
    1. Structured local log (for debugging)
    2. An in-memory ring (for status screens and tests)
    """

    def __init__(self, max_events: int = 500):
        self._events: deque[SyncEvent] = deque(maxlen=max_events)
        self._logger = structlog.get_logger("expense_sync.journal")

    def record(self, event: SyncEvent) -> None:
        """Journal one event."""
        try:
            log_dict = event.to_log_dict()
            if event.severity == SyncEventSeverity.ERROR:
                self._logger.error("sync_event", **log_dict)
            elif event.severity == SyncEventSeverity.WARNING:
                self._logger.warning("sync_event", **log_dict)
            elif event.severity == SyncEventSeverity.DEBUG:
                self._logger.debug("sync_event", **log_dict)
            else:
                self._logger.info("sync_event", **log_dict)
        except Exception as e:
            self._logger.error("journal_log_failed", error=str(e))
        self._events.append(event)

    def recent_events(self, limit: int = 100) -> list[SyncEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._events))[:limit]

    def events_of_type(self, event_type: SyncEventType) -> list[SyncEvent]:
        """All retained events of one type, oldest first."""
        return [e for e in self._events if e.event_type == event_type]

    def events_for_expense(self, expense_id: UUID) -> list[SyncEvent]:
        return [e for e in self._events if e.expense_id == expense_id]

    def events_by_correlation_id(self, correlation_id: UUID) -> list[SyncEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def clear(self) -> None:
        self._events.clear()


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for one sync cycle.

    Pass it to every event of that sweep or merge.
    """
    return uuid4()
