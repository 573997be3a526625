"""
Google Sheets Remote Store

DESIGN DECISION: Google Sheets is used as the cloud document store because:
1. Users can look at (and back up) their synced data directly
2. No server to run - a service account and one spreadsheet are enough
3. It already holds the household's other finance sheets

MAPPING:
- One worksheet per user scope: <collection_prefix><user_id>
- One row per document, keyed by the documentId column
- Wire fields are columns; timestamps are ISO-8601 UTC strings
- "Server" timestamps are stamped by this client at write time (UTC)

TRADEOFFS:
- No push notifications: the live subscription polls the worksheet
- No transactions: each write touches exactly one row
- Limited queries: the whole worksheet is read and filtered in Python
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_sync.config import GoogleSheetsSettings, get_settings
from expense_sync.models.expense import (
    Expense,
    RemoteExpense,
    parse_remote_documents,
    utc_now,
)
from expense_sync.services.session import SessionProvider
from expense_sync.services.storage.interface import (
    RemoteDocumentMissingError,
    RemoteStoreError,
    RemoteStoreInterface,
    RemoteTransientError,
    SnapshotCallback,
    Subscription,
    UnauthenticatedError,
)


logger = structlog.get_logger(__name__)

# Column layout of every collection worksheet
DOCUMENT_COLUMNS = [
    "documentId",
    "id",
    "title",
    "amount",
    "category",
    "date",
    "notes",
    "createdAt",
    "updatedAt",
    "isRemoved",
    "isLentMoney",
    "lentToPersonName",
    "isRepaid",
    "repaidDate",
    "paymentModeName",
]

BOOLEAN_COLUMNS = {"isRemoved", "isLentMoney", "isRepaid"}


def document_to_row(document_id: str, document: dict[str, Any]) -> list[str]:
    """Serialize a wire document into a worksheet row."""
    row = []
    for column in DOCUMENT_COLUMNS:
        if column == "documentId":
            row.append(document_id)
            continue
        value = document.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("TRUE" if value else "FALSE")
        elif isinstance(value, datetime):
            row.append(value.isoformat())
        elif isinstance(value, (float, Decimal)):
            row.append(str(value))
        else:
            row.append(str(value))
    return row


def row_to_document(row: list[str]) -> tuple[str, dict[str, Any]]:
    """
    Parse a worksheet row into (document_id, document).

    Empty cells are left out so the wire model's defaults apply.
    """
    document: dict[str, Any] = {}
    document_id = row[0] if row else ""
    for index, column in enumerate(DOCUMENT_COLUMNS[1:], start=1):
        value = row[index] if index < len(row) else ""
        if value == "":
            continue
        if column in BOOLEAN_COLUMNS:
            document[column] = value.strip().lower() == "true"
        else:
            document[column] = value
    return document_id, document


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise RemoteTransientError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteTransientError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise RemoteTransientError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, user_id: str) -> gspread.Worksheet:
        """Get or create the worksheet holding one user's documents."""
        spreadsheet = self.get_spreadsheet()
        title = f"{self._settings.collection_prefix}{user_id}"
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        return sheet


class PollingSubscription(Subscription):
    """Live feed emulated by re-reading the worksheet on an interval."""

    def __init__(self, task: "asyncio.Task[None]"):
        self._task = task
        self._active = True

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._task.cancel()

    @property
    def is_active(self) -> bool:
        return self._active and not self._task.done()


class GoogleSheetsRemoteStore(RemoteStoreInterface):
    """
    Google Sheets implementation of the remote store.

    gspread is blocking, so every call runs in a worker thread and the
    event loop never waits on the network.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        client: Optional[GoogleSheetsClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._sessions = session_provider
        self._client = client or GoogleSheetsClient()
        self._poll_interval = poll_interval_seconds or self._client.settings.poll_interval_seconds

    def _user_id(self, operation: str) -> str:
        session = self._sessions.current_session()
        if session is None:
            raise UnauthenticatedError(f"{operation}: no active session")
        return session.user_id

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self, user_id: str) -> list[list[str]]:
        sheet = self._client.get_collection_sheet(user_id)
        return sheet.get_all_values()[1:]  # Skip header

    def _find_row(self, user_id: str, document_id: str) -> tuple[int, list[str]]:
        """Return (1-based sheet row number, row) for a document."""
        for idx, row in enumerate(self._read_rows(user_id), start=2):  # Row 1 is header
            if row and row[0] == document_id:
                return idx, row
        raise RemoteDocumentMissingError(f"Document not found: {document_id}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, user_id: str, row: list[str]) -> None:
        sheet = self._client.get_collection_sheet(user_id)
        sheet.append_row(row, value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_row(self, user_id: str, row_number: int, row: list[str]) -> None:
        sheet = self._client.get_collection_sheet(user_id)
        sheet.update(range_name=f"A{row_number}", values=[row], value_input_option="RAW")

    def _create_sync(self, user_id: str, expense: Expense) -> str:
        document_id = uuid4().hex
        now = utc_now()
        document = RemoteExpense.from_expense(
            expense, document_id, created_at=now, updated_at=now
        ).to_document()
        self._append_row(user_id, document_to_row(document_id, document))
        return document_id

    def _update_sync(self, user_id: str, remote_id: str, expense: Expense) -> None:
        row_number, row = self._find_row(user_id, remote_id)
        _, existing = row_to_document(row)
        now = utc_now()
        document = RemoteExpense.from_expense(
            expense,
            remote_id,
            created_at=now,
            updated_at=now,
            is_removed=bool(existing.get("isRemoved", False)),
        ).to_document()
        # Keep the original creation stamp
        document["createdAt"] = existing.get("createdAt") or now
        self._write_row(user_id, row_number, document_to_row(remote_id, document))

    def _soft_delete_sync(self, user_id: str, remote_id: str) -> None:
        row_number, row = self._find_row(user_id, remote_id)
        _, document = row_to_document(row)
        document["isRemoved"] = True
        document["updatedAt"] = utc_now()
        self._write_row(user_id, row_number, document_to_row(remote_id, document))

    def _fetch_sync(self, user_id: str, include_removed: bool) -> list[RemoteExpense]:
        rows = [row for row in self._read_rows(user_id) if row and row[0]]
        parsed = parse_remote_documents(row_to_document(row) for row in rows)
        if include_removed:
            return parsed
        return [doc for doc in parsed if not doc.is_removed]

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteTransientError(f"{operation} failed: {e}") from e

    # ------------------------------------------------------------------
    # RemoteStoreInterface
    async def create(self, expense: Expense) -> str:
        user_id = self._user_id("create")
        return await self._run("create", self._create_sync, user_id, expense)

    async def update(self, remote_id: str, expense: Expense) -> None:
        user_id = self._user_id("update")
        await self._run("update", self._update_sync, user_id, remote_id, expense)

    async def soft_delete(self, remote_id: str) -> None:
        user_id = self._user_id("soft_delete")
        await self._run("soft_delete", self._soft_delete_sync, user_id, remote_id)

    async def fetch_all(self, include_removed: bool = False) -> list[RemoteExpense]:
        user_id = self._user_id("fetch_all")
        return await self._run("fetch_all", self._fetch_sync, user_id, include_removed)

    def subscribe(self, on_change: SnapshotCallback) -> Subscription:
        user_id = self._user_id("subscribe")
        task = asyncio.get_running_loop().create_task(self._poll(user_id, on_change))
        return PollingSubscription(task)

    async def _poll(self, user_id: str, on_change: SnapshotCallback) -> None:
        """Deliver the full document set whenever the worksheet content changes."""
        last_fingerprint: Optional[tuple] = None
        while True:
            try:
                snapshot = await self._run("poll", self._fetch_sync, user_id, False)
                fingerprint = tuple(
                    sorted((doc.document_id, str(doc.updated_at)) for doc in snapshot)
                )
                if fingerprint != last_fingerprint:
                    last_fingerprint = fingerprint
                    on_change(snapshot)
            except RemoteTransientError as e:
                logger.warning("subscription_poll_failed", user_id=user_id, error=str(e))
            except Exception as e:
                logger.error("subscription_callback_failed", user_id=user_id, error=str(e))
            await asyncio.sleep(self._poll_interval)
