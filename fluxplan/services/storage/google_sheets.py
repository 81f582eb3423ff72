"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the remote backend because:
1. The user can inspect their ledger directly in a spreadsheet
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- No transactions: a settlement is two independent writes
- No concurrency control: upsert-by-id is last write wins
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet, one record per row, with the
model's field names as the header row.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from fluxplan.config import GoogleSheetsSettings, get_settings
from fluxplan.models.audit import AuditEvent, AuditEventType, AuditSeverity
from fluxplan.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RecordStore,
    RecordT,
    StorageError,
)


logger = structlog.get_logger(__name__)

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet whose first row holds the column names."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[title] = sheet
        return sheet


def _to_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class GoogleSheetsRecordStore(RecordStore[RecordT]):
    """
    Google Sheets implementation of one record collection.

    Cells are written as plain strings and parsed back through the
    pydantic model, so enums, dates and numbers round-trip through their
    JSON representation. Empty cells mean "use the field default".
    """

    def __init__(
        self,
        model_cls: type[RecordT],
        sheet_name: str,
        client: Optional[GoogleSheetsClient] = None,
    ):
        self._model_cls = model_cls
        self._sheet_name = sheet_name
        # id first: rows are located by their first cell
        self._columns = ["id"] + [
            name for name in model_cls.model_fields if name != "id"
        ]
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._sheet_name, self._columns)

    def _record_to_row(self, record: RecordT) -> list[str]:
        data = record.model_dump(mode="json")
        return [_to_cell(data.get(column)) for column in self._columns]

    def _row_to_record(self, row: list) -> RecordT:
        data = {
            column: value
            for column, value in zip(self._columns, row)
            if value != ""
        }
        return self._model_cls.model_validate(data)

    def _find_row_index(self, all_rows: list[list], record_id: str) -> Optional[int]:
        # Row 1 is the header, so data starts at sheet row 2
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == record_id:
                return idx
        return None

    async def list(self) -> list[RecordT]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list {self._sheet_name}: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                records.append(self._row_to_record(row))
            except ValueError as e:
                logger.warning(
                    "malformed_row_skipped",
                    sheet=self._sheet_name,
                    record_id=row[0],
                    error=str(e),
                )
        return records

    async def get(self, record_id: str) -> Optional[RecordT]:
        try:
            all_rows = self._sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read {self._sheet_name}: {e}")

        idx = self._find_row_index(all_rows, record_id)
        if idx is None:
            return None
        try:
            return self._row_to_record(all_rows[idx - 1])
        except ValueError as e:
            raise StorageError(
                f"Malformed row {record_id} in {self._sheet_name}: {e}"
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert(self, record: RecordT) -> bool:
        try:
            sheet = self._sheet()
            row = self._record_to_row(record)
            idx = self._find_row_index(sheet.get_all_values(), record.id)
            if idx is None:
                sheet.append_row(row, value_input_option="RAW")
            else:
                sheet.update(range_name=f"A{idx}", values=[row], raw=True)
            return True
        except Exception as e:
            raise StorageError(f"Failed to upsert into {self._sheet_name}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def delete(self, record_id: str) -> bool:
        try:
            sheet = self._sheet()
            idx = self._find_row_index(sheet.get_all_values(), record_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete from {self._sheet_name}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name, AUDIT_COLUMNS
        )

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
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
