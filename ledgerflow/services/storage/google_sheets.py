"""
Google Sheets Storage Implementation

Each record kind lives in its own worksheet, one row per record, keyed
by the id in column A. A further worksheet holds the audit trail.

DESIGN DECISION: Sheets backs the store so an owner can open their
ledger in a spreadsheet and edit or export it without any tooling.

TRADEOFFS:
- Every read pulls the whole worksheet; ordering, owner filtering and
  cursor pagination happen in Python (`paginate`)
- Sheets has no change feed. Subscribers are fed in-process: after each
  write made through this store the affected owner's rows are reloaded
  and re-published. Hand edits in the sheet surface on the next write
  or the next subscribe.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ledgerflow.config import GoogleSheetsSettings, get_settings
from ledgerflow.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledgerflow.models.record import Record, RecordKind, RecordPage
from ledgerflow.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ErrorCallback,
    NotFoundError,
    RecordStoreInterface,
    SnapshotCallback,
    StorageError,
    Subscription,
    paginate,
)
from ledgerflow.services.storage.subscriptions import SubscriptionHub


logger = structlog.get_logger(__name__)


# Header row of every record worksheet
RECORD_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "amount",
    "date",
    "notes",
    "company",
    "created_at",
    "recurrence",
    "recurrence_group_id",
]

# Header row of the audit worksheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(value: Any) -> str:
    """Render a document value as a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


# Quota and 5xx responses are retried; anything else fails fast
_sheets_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


@_sheets_retry
def _append_with_retry(sheet: gspread.Worksheet, row: list[str]) -> None:
    sheet.append_row(row, value_input_option="RAW")


class GoogleSheetsClient:
    """
    Authenticated handle on the configured spreadsheet.

    Worksheets are created with their header row on first use.
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

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_kind_sheet(self, kind: RecordKind) -> gspread.Worksheet:
        """Get or create the worksheet holding one record kind."""
        titles = {
            RecordKind.INCOME: self._settings.incomes_sheet_name,
            RecordKind.EXPENSE: self._settings.expenses_sheet_name,
            RecordKind.BILL: self._settings.bills_sheet_name,
        }
        return self._get_or_create(titles[kind], RECORD_COLUMNS, rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    One worksheet per kind, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._hub = SubscriptionHub()

    def _row_to_document(self, row: list) -> dict[str, str]:
        """Map a spreadsheet row onto column names (missing cells become '')."""
        padded = list(row) + [""] * (len(RECORD_COLUMNS) - len(row))
        return dict(zip(RECORD_COLUMNS, padded))

    def _document_to_row(self, doc_id: str, document: dict[str, Any]) -> list[str]:
        """Convert a document to a spreadsheet row."""
        values = dict(document, id=doc_id)
        return [_cell(values.get(column)) for column in RECORD_COLUMNS]

    def _rows(self, kind: RecordKind) -> list[list]:
        # Skip header
        return self._client.get_kind_sheet(kind).get_all_values()[1:]

    def _load(self, kind: RecordKind, owner_id: str) -> list[Record]:
        records = []
        for row in self._rows(kind):
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                record = Record.from_document(kind, row[0], self._row_to_document(row))
            except Exception:
                continue  # Skip malformed rows
            if record.owner_id == owner_id:
                records.append(record)
        return records

    def _find_row(self, sheet: gspread.Worksheet, owner_id: str, record_id: str) -> int:
        """1-based row index of one of `owner_id`'s records."""
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # Row 1 is header
            if row and row[0] == record_id:
                if self._row_to_document(row)["owner_id"] != owner_id:
                    break
                return idx
        raise NotFoundError(f"Record not found: {record_id}")

    def _publish(self, kind: RecordKind, owner_id: str) -> None:
        if not self._hub.subscribers(kind, owner_id):
            return
        try:
            records = self._load(kind, owner_id)
        except Exception as e:
            self._hub.fail(kind, owner_id, StorageError(f"Failed to reload {kind.value}: {e}"))
            return
        self._hub.publish(kind, owner_id, records)

    async def subscribe(
        self,
        kind: RecordKind,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = self._hub.add(kind, owner_id, on_snapshot, on_error)
        try:
            records = self._load(kind, owner_id)
        except Exception as e:
            self._hub.fail(kind, owner_id, StorageError(f"Failed to load {kind.value}: {e}"))
        else:
            self._hub.deliver(subscription, records)
        return subscription

    async def fetch_page(
        self,
        kind: RecordKind,
        owner_id: str,
        cursor: Optional[Any],
        page_size: int,
    ) -> RecordPage:
        try:
            records = self._load(kind, owner_id)
        except Exception as e:
            raise StorageError(f"Failed to fetch {kind.value} page: {e}")
        return paginate(records, cursor, page_size)

    async def insert(
        self,
        kind: RecordKind,
        owner_id: str,
        data: dict[str, Any],
    ) -> str:
        doc_id = uuid4().hex
        try:
            sheet = self._client.get_kind_sheet(kind)
            row = self._document_to_row(doc_id, dict(data, owner_id=owner_id))
            _append_with_retry(sheet, row)
        except Exception as e:
            raise StorageError(f"Failed to save {kind.value}: {e}")
        self._publish(kind, owner_id)
        return doc_id

    async def update_fields(
        self,
        kind: RecordKind,
        owner_id: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        unknown = [name for name in fields if name not in RECORD_COLUMNS]
        if unknown:
            raise StorageError(f"Unknown columns: {', '.join(unknown)}")

        try:
            sheet = self._client.get_kind_sheet(kind)
            idx = self._find_row(sheet, owner_id, record_id)

            # Update only the supplied cells
            for name, value in fields.items():
                sheet.update_cell(idx, RECORD_COLUMNS.index(name) + 1, _cell(value))
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {kind.value}: {e}")

        self._publish(kind, owner_id)

    async def delete(self, kind: RecordKind, owner_id: str, record_id: str) -> bool:
        try:
            sheet = self._client.get_kind_sheet(kind)
            sheet.delete_rows(self._find_row(sheet, owner_id, record_id))
        except NotFoundError:
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete {kind.value}: {e}")

        self._publish(kind, owner_id)
        return True


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """Append-only audit trail kept in its own worksheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        cells = dict(zip(AUDIT_COLUMNS, list(row) + [""] * (len(AUDIT_COLUMNS) - len(row))))

        timestamp = datetime.fromisoformat(cells["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        return AuditEvent(
            event_id=UUID(cells["event_id"]),
            timestamp=timestamp,
            event_type=AuditEventType(cells["event_type"]),
            severity=AuditSeverity(cells["severity"]),
            owner_id=cells["owner_id"] or None,
            entity_type=cells["entity_type"] or None,
            entity_id=cells["entity_id"] or None,
            correlation_id=UUID(cells["correlation_id"]) if cells["correlation_id"] else None,
            description=cells["description"],
            details=json.loads(cells["details_json"]) if cells["details_json"] else {},
            error_message=cells["error_message"] or None,
            is_user_action=cells["is_user_action"].lower() == "true",
        )

    def _query(
        self,
        matches: Callable[[AuditEvent], bool],
        newest_first: bool = False,
    ) -> list[AuditEvent]:
        """Parse every audit row, keep the matching events and order them by time."""
        try:
            rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read audit trail: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                event = self._row_to_event(row)
            except (ValueError, KeyError):
                logger.debug("audit_row_skipped", event_id=row[0])
                continue
            if matches(event):
                events.append(event)

        events.sort(key=lambda e: e.timestamp, reverse=newest_first)
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            _append_with_retry(self._client.get_audit_sheet(), event.to_sheets_row())
        except Exception as e:
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return self._query(lambda e: e.correlation_id == correlation_id)

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return self._query(
            lambda e: e.entity_type == entity_type and e.entity_id == entity_id
        )

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return self._query(lambda e: True, newest_first=True)[:limit]
