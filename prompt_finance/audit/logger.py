"""
Audit Logger

DESIGN DECISION: Every command and every state transition it causes is
logged, so a balance can always be traced back to the text that moved it.

The audit logger:
- Is async so it can share the event loop with storage writes
- Gracefully handles failures (a broken audit sheet never blocks a command)
- Supports correlation IDs to trace all events of one command
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from prompt_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from prompt_finance.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Set the stdlib root level that structlog's level filter reads."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store such as Google Sheets (when configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("prompt_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_command_received(self, text: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.command_received(text, correlation_id))

    async def log_command_parsed(
        self,
        action: str,
        source: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.command_parsed(action, source, correlation_id))

    async def log_ai_fallback(
        self,
        text: str,
        action: str,
        correlation_id: UUID,
    ) -> None:
        """Log that the AI, not the grammar, produced the command."""
        await self.log(AuditEventBuilder.ai_fallback_used(text, action, correlation_id))

    async def log_command_executed(
        self,
        action: str,
        message: str,
        simulated: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            AuditEventBuilder.command_executed(action, message, simulated, correlation_id)
        )

    async def log_command_failed(
        self,
        action: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.command_failed(action, reason, correlation_id))

    async def log_simulation(
        self,
        event_type: AuditEventType,
        conversation_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.simulation_event(event_type, conversation_id, correlation_id)
        )

    async def log_conversation(
        self,
        event_type: AuditEventType,
        conversation_id: UUID,
        name: str,
    ) -> None:
        await self.log(AuditEventBuilder.conversation_event(event_type, conversation_id, name))

    async def log_budget_plan_generated(
        self,
        method: str,
        line_count: int,
        income: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.budget_plan_generated(method, line_count, income, correlation_id)
        )

    async def log_report_generated(
        self,
        report_id: str,
        narrated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.report_generated(report_id, narrated, correlation_id))

    async def log_receipt_scanned(
        self,
        file_size: int,
        recognized: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scanned(file_size, recognized, correlation_id))

    async def log_insight_requested(
        self,
        question_length: int,
        answered: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.insight_requested(question_length, answered, correlation_id)
        )

    async def log_state_saved(
        self,
        conversation_count: int,
        backend: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.state_saved(conversation_count, backend, correlation_id)
        )

    async def log_save_failed(
        self,
        backend: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(backend, error_message, correlation_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (one command-bar submission).
    Pass it through all subsequent operations.
    """
    return uuid4()
