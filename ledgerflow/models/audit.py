"""
Audit Models for Ledgerflow

An AuditEvent describes one session transition, ledger write or failed
request. Events carry the session id as correlation id and are rendered
either as a structured log dict or as a fixed-width sheet row.

DESIGN DECISION: The trail is append-only. Nothing here edits or removes
an event once written.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"

    # Ledger writes
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    VALIDATION_FAILED = "validation_failed"
    WRITE_FAILED = "write_failed"

    # Feed
    PAGE_FETCH_FAILED = "page_fetch_failed"

    # System events
    SYSTEM_ERROR = "system_error"


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

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    owner_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'income', 'expense', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Session the event happened in"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            self.entity_id or "",
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
        event = AuditEventBuilder.record_created(owner_id, "income", record_id, session_id)
        event = AuditEventBuilder.session_started(owner_id, session_id)
    """

    @staticmethod
    def session_started(owner_id: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_STARTED,
            owner_id=owner_id,
            entity_type="session",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description="Ledger session started",
            is_user_action=True,
        )

    @staticmethod
    def session_ended(
        owner_id: str,
        correlation_id: UUID,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_ENDED,
            owner_id=owner_id,
            entity_type="session",
            entity_id=str(correlation_id),
            correlation_id=correlation_id,
            description=f"Ledger session ended ({reason})",
            details={"reason": reason},
        )

    @staticmethod
    def record_created(
        owner_id: str,
        kind: str,
        record_id: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            owner_id=owner_id,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} created: {amount}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def record_updated(
        owner_id: str,
        kind: str,
        record_id: str,
        fields: list[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            owner_id=owner_id,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} updated: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def record_deleted(
        owner_id: str,
        kind: str,
        record_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            owner_id=owner_id,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        owner_id: str,
        kind: str,
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=kind,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} rejected with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
            is_user_action=True,
        )

    @staticmethod
    def write_failed(
        owner_id: str,
        kind: str,
        operation: str,
        error_message: str,
        record_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type=kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} failed for {kind}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def page_fetch_failed(
        owner_id: str,
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAGE_FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type=kind,
            correlation_id=correlation_id,
            description=f"Could not load more {kind} records",
            error_message=error_message,
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
