"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend (and as the
remote end of the sync) because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- A collection is rewritten as a whole on every save

Each collection lives in its own worksheet. The first row holds the
camelCase field names; nested values (lists, account details, splits) are
stored as JSON in a single cell.
"""

import json
import types
from typing import Annotated, Any, Optional, Union, get_args, get_origin
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from dailymate.config import GoogleSheetsSettings, get_settings
from dailymate.models.audit import AuditEvent, AuditEventType, AuditSeverity
from dailymate.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    E,
    EntityStorage,
    StorageError,
    StorageGateway,
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


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _is_structured(annotation: Any) -> bool:
    """True if values of this annotation are lists, dicts or nested models."""
    origin = get_origin(annotation)
    if origin in (list, dict, tuple, set):
        return True
    if origin in (Union, Annotated, types.UnionType):
        return any(_is_structured(arg) for arg in get_args(annotation))
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def model_columns(model: type[BaseModel]) -> list[str]:
    """Header row for a record type: one camelCase column per field."""
    return [field.alias or name for name, field in model.model_fields.items()]


def structured_columns(model: type[BaseModel]) -> set[str]:
    return {
        field.alias or name
        for name, field in model.model_fields.items()
        if _is_structured(field.annotation)
    }


def model_to_row(item: BaseModel, columns: list[str]) -> list[str]:
    """Convert a record to a spreadsheet row laid out by ``columns``."""
    record = item.model_dump(mode="json", by_alias=True)
    row = []
    for column in columns:
        value = record.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, (dict, list)):
            row.append(json.dumps(value, ensure_ascii=False))
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        else:
            row.append(str(value))
    return row


def row_to_model(model: type[E], header: list[str], row: list[str]) -> E:
    """
    Convert a spreadsheet row back to a record.

    Empty cells are treated as missing so the model's defaults apply.

    Raises:
        ValueError: If a JSON cell or the record itself is invalid
    """
    structured = structured_columns(model)
    data: dict[str, Any] = {}
    for column, cell in zip(header, row):
        if cell == "" or not column:
            continue
        data[column] = json.loads(cell) if column in structured else cell
    return model.model_validate(data)


# =============================================================================
# CLIENT
# =============================================================================

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
            except FileNotFoundError as e:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet whose first row is ``columns``."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", title=title)
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


# =============================================================================
# ENTITY STORAGE
# =============================================================================

class GoogleSheetsEntityStorage(EntityStorage[E]):
    """
    Google Sheets implementation of one record collection.

    Rows are read through the header actually present in the sheet, so
    columns may be reordered by hand without breaking reads.
    """

    def __init__(
        self,
        name: str,
        model: type[E],
        client: Optional[GoogleSheetsClient] = None,
        title: Optional[str] = None,
    ):
        super().__init__(name, model)
        self._client = client or GoogleSheetsClient()
        self.title = title or self._client.settings.sheet_name(name)
        self.columns = model_columns(model)

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self.title, self.columns)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def get_all(self) -> list[E]:
        try:
            all_rows = self._sheet().get_all_values()
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to read {self.title}: {e}") from e

        if not all_rows:
            return []

        header = all_rows[0]
        items = []
        for index, row in enumerate(all_rows[1:], start=2):
            if not any(row):  # Skip empty rows
                continue
            try:
                items.append(row_to_model(self.model, header, row))
            except ValueError as e:
                logger.warning(
                    "malformed_row_skipped",
                    sheet=self.title,
                    row=index,
                    error=str(e),
                )
        return items

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_all(self, items: list[E]) -> None:
        values = [self.columns] + [model_to_row(item, self.columns) for item in items]
        try:
            sheet = self._sheet()
            sheet.clear()
            sheet.update(range_name="A1", values=values, value_input_option="RAW")
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to write {self.title}: {e}") from e

        logger.debug("worksheet_saved", sheet=self.title, count=len(items))


def create_sheets_gateway(client: Optional[GoogleSheetsClient] = None) -> StorageGateway:
    """Build a gateway with one worksheet per collection."""
    client = client or GoogleSheetsClient()
    return StorageGateway.from_factory(
        lambda name, model: GoogleSheetsEntityStorage(name, model, client)
    )


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
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
            timestamp=safe_get(1),
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

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("malformed_audit_row_skipped", error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
