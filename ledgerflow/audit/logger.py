"""
Audit Logger

Session transitions and ledger writes leave a trail. Each event goes to
the structured local log and, when an audit store is configured, to the
persisted trail the owner can browse.

A session's id doubles as the correlation id, so one login's activity
can be pulled back out with a single query.

Persisting is best effort: a broken audit store is logged and reported
through the return value of `AuditLogger.log`, never raised into the
ledger operation that produced the event.
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgerflow.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledgerflow.services.storage import AuditStorageInterface


_SEVERITY_METHODS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


def configure_logging(level: str = "INFO") -> None:
    """
    Set up structlog to render JSON lines on stdout.

    Called once by `create_app_components`; library users who bring
    their own logging setup can skip it.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Records ledger activity for one process.

    Without a storage backend the logger is local-only, which is what
    tests and the in-memory fallback use.
    """

    def __init__(self, storage: Optional[AuditStorageInterface] = None):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def persistent(self) -> bool:
        return self._storage is not None

    async def log(self, event: AuditEvent) -> bool:
        """
        Emit `event` locally, then persist it.

        Returns False only when a configured store failed to take the
        event.
        """
        emit = getattr(self._logger, _SEVERITY_METHODS[event.severity])
        emit("audit_event", **event.to_log_dict())

        if self._storage is None:
            return True

        try:
            return await self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    # Session lifecycle

    async def log_session_started(self, owner_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.session_started(owner_id, correlation_id))

    async def log_session_ended(self, owner_id: str, correlation_id: UUID, reason: str) -> None:
        await self.log(AuditEventBuilder.session_ended(owner_id, correlation_id, reason))

    # Writes

    async def log_record_created(
        self,
        owner_id: str,
        kind: str,
        record_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_created(
            owner_id, kind, record_id, amount, correlation_id=correlation_id,
        ))

    async def log_record_updated(
        self,
        owner_id: str,
        kind: str,
        record_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """`fields` lists the changed field names, never their values."""
        await self.log(AuditEventBuilder.record_updated(
            owner_id, kind, record_id, fields, correlation_id=correlation_id,
        ))

    async def log_record_deleted(
        self,
        owner_id: str,
        kind: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            owner_id, kind, record_id, correlation_id=correlation_id,
        ))

    # Failures

    async def log_validation_failed(
        self,
        owner_id: str,
        kind: str,
        operation: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            owner_id, kind, operation, issues, correlation_id=correlation_id,
        ))

    async def log_write_failed(
        self,
        owner_id: str,
        kind: str,
        operation: str,
        error_message: str,
        record_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.write_failed(
            owner_id,
            kind,
            operation,
            error_message,
            record_id=record_id,
            correlation_id=correlation_id,
        ))

    async def log_fetch_failed(
        self,
        owner_id: str,
        kind: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.page_fetch_failed(
            owner_id, kind, error_message, correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(
            error_type, error_message, details=details, correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """New id shared by every event of one ledger session."""
    return uuid4()
