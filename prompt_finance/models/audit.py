"""
Audit Models for Prompt Finance

Every command typed into the command bar, and every state change it causes,
is logged. This gives:
1. Traceability from raw text to the mutation it produced
2. Visibility into when the AI fallback was trusted instead of the grammar
3. Debugging information when persistence or an external service fails

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Command bar
    COMMAND_RECEIVED = "command_received"
    COMMAND_PARSED = "command_parsed"
    COMMAND_EXECUTED = "command_executed"
    COMMAND_FAILED = "command_failed"
    AI_FALLBACK_USED = "ai_fallback_used"

    # Simulation mode
    SIMULATION_STARTED = "simulation_started"
    SIMULATION_COMMITTED = "simulation_committed"
    SIMULATION_CANCELLED = "simulation_cancelled"

    # Conversations
    CONVERSATION_CREATED = "conversation_created"
    CONVERSATION_DELETED = "conversation_deleted"

    # Planning and reporting
    BUDGET_PLAN_GENERATED = "budget_plan_generated"
    REPORT_GENERATED = "report_generated"
    RECEIPT_SCANNED = "receipt_scanned"
    INSIGHT_REQUESTED = "insight_requested"

    # Persistence
    STATE_SAVED = "state_saved"
    SAVE_FAILED = "save_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'command', 'conversation', 'report')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events caused by one command share this id
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    stack_trace: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.command_received("12.50 lunch", correlation_id)
        event = AuditEventBuilder.simulation_started(conversation_id, correlation_id)
    """

    @staticmethod
    def command_received(
        text: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_RECEIVED,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Command received ({len(text)} chars)",
            details={"text": text[:200]},
            is_user_action=True,
        )

    @staticmethod
    def command_parsed(
        action: str,
        source: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_PARSED,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Command parsed as {action} by {source}",
            details={"action": action, "source": source},
        )

    @staticmethod
    def ai_fallback_used(
        text: str,
        action: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Grammar did not match; AI fallback returned {action}",
            details={"text": text[:200], "action": action},
        )

    @staticmethod
    def command_executed(
        action: str,
        message: str,
        simulated: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_EXECUTED,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"{action}: {message}"[:500],
            details={"action": action, "simulated": simulated},
            is_user_action=True,
        )

    @staticmethod
    def command_failed(
        action: str,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="command",
            correlation_id=correlation_id,
            description=f"Command {action} not applied",
            error_message=reason,
            details={"action": action},
        )

    @staticmethod
    def simulation_event(
        event_type: AuditEventType,
        conversation_id: UUID,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        verb = event_type.value.replace("simulation_", "")
        return AuditEvent(
            event_type=event_type,
            entity_type="conversation",
            entity_id=conversation_id,
            correlation_id=correlation_id,
            description=f"Simulation {verb}",
            is_user_action=True,
        )

    @staticmethod
    def conversation_event(
        event_type: AuditEventType,
        conversation_id: UUID,
        name: str
    ) -> AuditEvent:
        verb = event_type.value.replace("conversation_", "")
        return AuditEvent(
            event_type=event_type,
            entity_type="conversation",
            entity_id=conversation_id,
            description=f"Conversation {verb}: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def budget_plan_generated(
        method: str,
        line_count: int,
        income: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_PLAN_GENERATED,
            entity_type="budget_plan",
            correlation_id=correlation_id,
            description=f"Budget plan generated with {method}: {line_count} lines",
            details={"method": method, "line_count": line_count, "income": income},
        )

    @staticmethod
    def report_generated(
        report_id: str,
        narrated: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Monthly report {report_id} generated",
            details={"report_id": report_id, "narrated": narrated},
        )

    @staticmethod
    def receipt_scanned(
        file_size: int,
        recognized: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SCANNED,
            severity=AuditSeverity.INFO if recognized else AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt scanned" if recognized else "Receipt could not be read",
            details={"file_size_bytes": file_size, "recognized": recognized},
            is_user_action=True,
        )

    @staticmethod
    def insight_requested(
        question_length: int,
        answered: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHT_REQUESTED,
            entity_type="insight",
            correlation_id=correlation_id,
            description="Coach question answered" if answered else "Coach question not answered",
            details={"question_length": question_length, "answered": answered},
            is_user_action=True,
        )

    @staticmethod
    def state_saved(
        conversation_count: int,
        backend: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="state",
            correlation_id=correlation_id,
            description=f"State saved to {backend}",
            details={"conversation_count": conversation_count, "backend": backend},
        )

    @staticmethod
    def save_failed(
        backend: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="state",
            correlation_id=correlation_id,
            description=f"Could not save state to {backend}",
            error_message=error_message,
            details={"backend": backend},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
