"""
Abstract Storage Interface

DESIGN DECISION: Persistence sits behind an abstract interface so that:
1. A local JSON file works out of the box with nothing configured
2. Google Sheets can be switched on through configuration
3. Tests run against an in-memory implementation

The whole AppState is loaded and saved as one unit. The store mutates it in
memory and the orchestrator persists after each successful command.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from prompt_finance.models.audit import AuditEvent
from prompt_finance.models.finance import AppState


class StateStorageInterface(ABC):
    """
    Abstract interface for application state persistence.

    Any storage implementation (local file, Google Sheets, a database)
    must implement these methods.
    """

    @abstractmethod
    async def load_state(self) -> Optional[AppState]:
        """
        Load the persisted application state.

        Returns:
            The stored state, or None when nothing has been saved yet

        Raises:
            StorageError: If the stored data cannot be read
        """
        pass

    @abstractmethod
    async def save_state(self, state: AppState) -> bool:
        """
        Persist the full application state, replacing what was stored.

        Args:
            state: Every conversation and its financial data

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - no updates or deletes.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for one user action, oldest first.

        Args:
            correlation_id: The correlation ID shared by the events

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'conversation', 'report')
            entity_id: ID of the entity

        Returns:
            List of events for this entity
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent events, newest first.

        Args:
            limit: Maximum events to return
        """
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Raised when a requested entity doesn't exist."""
    pass


class DuplicateError(StorageError):
    """Raised when trying to create a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Raised when the storage backend cannot be reached."""
    pass
