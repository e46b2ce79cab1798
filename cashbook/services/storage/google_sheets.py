"""
Google Sheets Audit Storage

DESIGN DECISION: The audit trail can be mirrored to a Google Sheet because:
1. Business owners can read the trail directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for the ledger itself (no conditional updates)
- Append-only use fits the audit trail exactly
- Limited query capabilities (we filter in Python)
"""

import asyncio
import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from cashbook.config import GoogleSheetsSettings, get_settings
from cashbook.errors import StorageError
from cashbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from cashbook.services.storage.interface import AuditStorageInterface


logger = structlog.get_logger(__name__)

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "actor_id",
    "entity_type",
    "entity_id",
    "description",
    "details_json",
    "error_message",
]


class SheetsConnectionError(StorageError):
    """Could not connect to Google Sheets."""
    pass


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
                raise SheetsConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise SheetsConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise SheetsConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.audit_sheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.audit_sheet_name,
                rows=5000,
                cols=len(AUDIT_COLUMNS),
            )
            sheet.append_row(AUDIT_COLUMNS)
        return sheet


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only, one event per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            actor_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_row(self, row: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(row, value_input_option="RAW")

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, json.JSONDecodeError):
                logger.warning("audit_row_unreadable", event_id=row[0])
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event; failures are logged, not raised."""
        try:
            await asyncio.to_thread(self._append_row, event.to_sheets_row())
            return True
        except Exception as e:
            logger.error(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = await asyncio.to_thread(self._read_events)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        matching = [
            e for e in events
            if e.entity_type == entity_type and e.entity_id == str(entity_id)
        ]
        matching.sort(key=lambda e: e.timestamp)
        return matching

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = await asyncio.to_thread(self._read_events)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
