"""
Application Wiring for Expense Sync

This module builds the object graph from settings:
local store -> session provider -> remote store -> journal -> engine.

DESIGN DECISION: Every collaborator is passed in explicitly. There are
no module-level singletons besides the cached settings, so tests (and a
second simulated device) can build as many independent engines as they
need.
"""

import logging
from pathlib import Path
from typing import NamedTuple, Optional

import structlog

from expense_sync.audit import SyncJournal
from expense_sync.config import Settings, get_settings
from expense_sync.importing import CSVImporter
from expense_sync.services.preferences import PaymentModeStore
from expense_sync.services.session import AnonymousSessionProvider
from expense_sync.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    RemoteStoreInterface,
    SQLiteExpenseStore,
)
from expense_sync.sync import SyncEngine


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    engine: SyncEngine
    local_store: SQLiteExpenseStore
    remote_store: RemoteStoreInterface
    session_provider: AnonymousSessionProvider
    payment_modes: PaymentModeStore
    journal: SyncJournal
    importer: CSVImporter


def _build_remote_store(
    settings: Settings,
    session_provider: AnonymousSessionProvider,
) -> RemoteStoreInterface:
    try:
        sheets_settings = settings.google_sheets
        client = GoogleSheetsClient(sheets_settings)
        return GoogleSheetsRemoteStore(
            session_provider,
            client=client,
            poll_interval_seconds=sheets_settings.poll_interval_seconds,
        )
    except Exception as e:
        # Remote not configured - the app still works, data stays on this device
        logger.warning("remote_store_not_configured", error=str(e))
        return InMemoryRemoteStore(session_provider)


def create_app_components(
    settings: Optional[Settings] = None,
    use_remote: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from (defaults to the cached settings)
        use_remote: Whether to connect the Google Sheets remote store.
                    Set to False to run against a process-local remote.

    Returns:
        AppComponents with an engine that has not been started yet
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.app.debug_mode else logging.INFO,
        format="%(message)s",
    )

    local_store = SQLiteExpenseStore(Path(settings.local.database_path))
    payment_modes = PaymentModeStore(settings.local.preferences_path)
    session_provider = AnonymousSessionProvider(session_path=settings.sync.session_path)

    if use_remote:
        remote_store = _build_remote_store(settings, session_provider)
    else:
        remote_store = InMemoryRemoteStore(session_provider)

    journal = SyncJournal(max_events=settings.sync.journal_size)
    engine = SyncEngine(
        local_store,
        remote_store,
        session_provider,
        journal=journal,
        payment_modes=lambda: payment_modes.payment_modes,
        auto_sign_in=settings.sync.auto_sign_in,
    )

    return AppComponents(
        engine=engine,
        local_store=local_store,
        remote_store=remote_store,
        session_provider=session_provider,
        payment_modes=payment_modes,
        journal=journal,
        importer=CSVImporter(payment_modes.payment_modes),
    )
