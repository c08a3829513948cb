"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is an optional backend because:
1. Users can inspect their conversations and audit trail directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- One row per conversation, with the financial state as a JSON cell.
  Sheets caps a cell at 50,000 characters, so very large conversations
  cannot be stored here and the local backend should be used instead.
- No transactions: a save overwrites the rows in place and then clears
  any rows left over from a larger previous save.
"""

import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from prompt_finance.config import GoogleSheetsSettings, get_settings
from prompt_finance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from prompt_finance.models.finance import (
    AppState,
    Conversation,
    ConversationStatus,
    FinancialState,
)
from prompt_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StateStorageInterface,
    StorageError,
)

logger = structlog.get_logger(__name__)

MAX_CELL_CHARACTERS = 50_000

# Column mappings for Conversations sheet
CONVERSATION_COLUMNS = [
    "id",
    "name",
    "status",
    "created_at",
    "is_active",
    "financial_data_json",
]

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


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


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
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_conversations_sheet(self) -> gspread.Worksheet:
        """Get or create the Conversations worksheet."""
        return self._get_or_create_sheet(
            self._settings.conversations_sheet_name,
            CONVERSATION_COLUMNS,
            rows=200,
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsStateStorage(StateStorageInterface):
    """
    Google Sheets implementation of state storage.

    Conversations are stored one per row; the conversation's FinancialState
    is JSON-serialized into the last column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _conversation_to_row(self, conversation: Conversation, state: AppState) -> list:
        financial = state.financial_data.get(str(conversation.id), FinancialState())
        blob = financial.model_dump_json()
        if len(blob) > MAX_CELL_CHARACTERS:
            raise StorageError(
                f"Conversation '{conversation.name}' is too large for a Sheets cell "
                f"({len(blob)} characters)"
            )
        return [
            str(conversation.id),
            conversation.name,
            conversation.status.value,
            conversation.created_at.isoformat(),
            str(conversation.id == state.active_conversation_id),
            blob,
        ]

    async def load_state(self) -> Optional[AppState]:
        try:
            sheet = self._client.get_conversations_sheet()
            rows = sheet.get_all_values()[1:]  # Skip header
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read conversations: {e}")

        conversations = []
        financial_data = {}
        active_id = None
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                conversation = Conversation(
                    id=UUID(_safe_get(row, 0)),
                    name=_safe_get(row, 1),
                    status=ConversationStatus(_safe_get(row, 2, ConversationStatus.ACTIVE.value)),
                    created_at=datetime.fromisoformat(_safe_get(row, 3)),
                )
                blob = _safe_get(row, 5)
                financial = FinancialState.model_validate_json(blob) if blob else FinancialState()
            except ValueError as e:
                raise StorageError(f"Malformed conversation row {row[0]}: {e}")

            conversations.append(conversation)
            financial_data[str(conversation.id)] = financial
            if _safe_get(row, 4).lower() == "true":
                active_id = conversation.id

        if not conversations:
            return None
        return AppState(
            conversations=conversations,
            active_conversation_id=active_id or conversations[0].id,
            financial_data=financial_data,
        )

    async def save_state(self, state: AppState) -> bool:
        """Rewrite the Conversations sheet from the given state."""
        rows = [self._conversation_to_row(c, state) for c in state.conversations]
        await self._write_rows(rows)
        return True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _write_rows(self, rows: list[list]) -> None:
        # Rows are overwritten in place, so a failed write never leaves the sheet empty
        values = [CONVERSATION_COLUMNS] + rows
        try:
            sheet = self._client.get_conversations_sheet()
            previous = len(sheet.get_all_values())
            sheet.update(values=values, range_name="A1", value_input_option="RAW")
            if previous > len(values):
                stale = (
                    f"{rowcol_to_a1(len(values) + 1, 1)}:"
                    f"{rowcol_to_a1(previous, len(CONVERSATION_COLUMNS))}"
                )
                sheet.batch_clear([stale])
        except Exception as e:
            raise StorageError(f"Failed to save conversations: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue  # Skip malformed rows
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
