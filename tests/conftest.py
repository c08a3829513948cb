"""
Shared fixtures and fakes.

No test talks to Gemini or Google Sheets: the agents get a FakeModel and the
Sheets storages get a FakeSheetsClient.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import pytest

from prompt_finance.audit import AuditLogger
from prompt_finance.models.audit import AuditEvent
from prompt_finance.models.finance import AppState
from prompt_finance.services.storage import (
    AuditStorageInterface,
    StateStorageInterface,
    StorageError,
)
from prompt_finance.state import FinanceStore


class FakeResponse:
    def __init__(self, text: str):
        self.text = text


class FakeModel:
    """
    Stands in for genai.GenerativeModel.

    Replies are returned in order; the last one repeats. An Exception
    instance in the list is raised instead of returned.
    """

    def __init__(self, *replies):
        self.replies = list(replies) or [""]
        self.calls: list = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


class InMemoryStateStorage(StateStorageInterface):
    def __init__(self, state: Optional[AppState] = None, fail_saves: bool = False):
        self.state = state
        self.fail_saves = fail_saves
        self.save_count = 0

    async def load_state(self) -> Optional[AppState]:
        if self.state is None:
            return None
        return self.state.model_copy(deep=True)

    async def save_state(self, state: AppState) -> bool:
        if self.fail_saves:
            raise StorageError("disk full")
        self.save_count += 1
        self.state = state.model_copy(deep=True)
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        return [e for e in self.events if e.entity_type == entity_type and e.entity_id == entity_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


class FakeWorksheet:
    def __init__(self, rows: Optional[list[list[str]]] = None, fail_writes: bool = False):
        self.rows = [list(r) for r in rows or []]
        self.fail_writes = fail_writes
        self.update_count = 0

    def get_all_values(self) -> list[list[str]]:
        return [list(r) for r in self.rows]

    def update(self, values=None, range_name=None, value_input_option=None):
        if self.fail_writes:
            raise RuntimeError("quota exceeded")
        self.update_count += 1
        for index, row in enumerate(values):
            cells = [str(cell) for cell in row]
            if index < len(self.rows):
                self.rows[index] = cells
            else:
                self.rows.append(cells)

    def batch_clear(self, ranges):
        # Cleared trailing rows disappear from get_all_values, as in gspread
        for cell_range in ranges:
            first_row = int("".join(ch for ch in cell_range.split(":")[0] if ch.isdigit()))
            self.rows = self.rows[:first_row - 1]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])


class FakeSheetsClient:
    """Same surface as GoogleSheetsClient, backed by two FakeWorksheets."""

    def __init__(self, conversations: Optional[FakeWorksheet] = None, audit: Optional[FakeWorksheet] = None):
        self.conversations = conversations or FakeWorksheet()
        self.audit = audit or FakeWorksheet()

    def get_conversations_sheet(self):
        return self.conversations

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 15, 12, 0)


@pytest.fixture
def store() -> FinanceStore:
    return FinanceStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def state_storage() -> InMemoryStateStorage:
    return InMemoryStateStorage()
