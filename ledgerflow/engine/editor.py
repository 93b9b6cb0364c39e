"""
Ledger Editor

Applies create/update/delete operations to individual records in the
external store.

DESIGN DECISION: Fire-and-forget relative to local state.
The editor NEVER mutates the snapshot maps or the merged feed. A write
becomes visible only through the next subscription emission or page
fetch, so a local optimistic copy can never race the authoritative one.

Delete confirmation is the caller's concern; `delete` is unconditional.
"""

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from ledgerflow.audit import AuditLogger
from ledgerflow.engine.errors import SessionClosedError, ValidationError
from ledgerflow.models.ledger import ValidationResult
from ledgerflow.models.record import RecordKind
from ledgerflow.services.storage import RecordStoreInterface
from ledgerflow.validation import RecordValidator


logger = structlog.get_logger(__name__)


class LedgerEditor:
    """Owner-scoped write operations with validation and auditing."""

    def __init__(
        self,
        store: RecordStoreInterface,
        owner_id: str,
        validator: Optional[RecordValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        correlation_id: Optional[UUID] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._owner_id = owner_id
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._validator = validator or RecordValidator(clock=self._clock)
        self._audit_logger = audit_logger
        self._correlation_id = correlation_id
        self._closed = False
        self._log = logger.bind(owner_id=owner_id)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"Editor for {self._owner_id} is closed")

    async def _reject(self, kind: RecordKind, operation: str, result: ValidationResult) -> None:
        self._log.info(
            "validation_failed",
            kind=kind.value,
            operation=operation,
            errors=result.error_count,
        )
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                owner_id=self._owner_id,
                kind=kind.value,
                operation=operation,
                issues=[i.model_dump() for i in result.issues if i.severity == "error"],
                correlation_id=self._correlation_id,
            )
        raise ValidationError(result)

    async def _write_failed(
        self,
        kind: RecordKind,
        operation: str,
        error: Exception,
        record_id: Optional[str] = None,
    ) -> None:
        self._log.error(
            "write_failed",
            kind=kind.value,
            operation=operation,
            record_id=record_id,
            error=str(error),
        )
        if self._audit_logger:
            await self._audit_logger.log_write_failed(
                owner_id=self._owner_id,
                kind=kind.value,
                operation=operation,
                error_message=str(error),
                record_id=record_id,
                correlation_id=self._correlation_id,
            )

    async def create(self, kind: RecordKind, fields: Mapping[str, Any]) -> str:
        """
        Validate and insert a new record for the current owner.

        Args:
            kind: Kind of the new record (fixed for its lifetime)
            fields: name, amount, and optionally date, notes, company
                    (plus recurrence / recurrence_group_id for bills)

        Returns:
            The new record's id

        Raises:
            ValidationError: Input is invalid; nothing was written
        """
        self._ensure_open()
        result = self._validator.validate_new(kind, fields)
        if not result.is_valid:
            await self._reject(kind, "create", result)

        document = dict(result.values)
        document["created_at"] = self._clock()
        if kind == RecordKind.BILL and "recurrence_group_id" not in document:
            document["recurrence_group_id"] = uuid4().hex

        try:
            record_id = await self._store.insert(kind, self._owner_id, document)
        except Exception as e:
            await self._write_failed(kind, "create", e)
            raise

        self._log.info("record_created", kind=kind.value, record_id=record_id)
        if self._audit_logger:
            await self._audit_logger.log_record_created(
                owner_id=self._owner_id,
                kind=kind.value,
                record_id=record_id,
                amount=str(document["amount"]),
                correlation_id=self._correlation_id,
            )
        return record_id

    async def update(
        self,
        record_id: str,
        kind: RecordKind,
        fields: Mapping[str, Any],
    ) -> None:
        """
        Write only the supplied fields.

        Raises:
            ValidationError: A field is invalid, immutable or unknown
            NotFoundError: The owner has no such record
        """
        self._ensure_open()
        result = self._validator.validate_changes(kind, fields)
        if not result.is_valid:
            await self._reject(kind, "update", result)

        changes = dict(result.values)
        if not changes:
            self._log.debug("empty_update_skipped", kind=kind.value, record_id=record_id)
            return

        try:
            await self._store.update_fields(kind, self._owner_id, record_id, changes)
        except Exception as e:
            await self._write_failed(kind, "update", e, record_id)
            raise

        self._log.info(
            "record_updated",
            kind=kind.value,
            record_id=record_id,
            fields=sorted(changes),
        )
        if self._audit_logger:
            await self._audit_logger.log_record_updated(
                owner_id=self._owner_id,
                kind=kind.value,
                record_id=record_id,
                fields=sorted(changes),
                correlation_id=self._correlation_id,
            )

    async def delete(self, record_id: str, kind: RecordKind) -> bool:
        """
        Delete one of the owner's records unconditionally.

        Returns:
            False if the owner has no such record (another owner's
            record counts as missing)
        """
        self._ensure_open()
        try:
            deleted = await self._store.delete(kind, self._owner_id, record_id)
        except Exception as e:
            await self._write_failed(kind, "delete", e, record_id)
            raise

        if not deleted:
            self._log.info("record_already_gone", kind=kind.value, record_id=record_id)
            return False

        self._log.info("record_deleted", kind=kind.value, record_id=record_id)
        if self._audit_logger:
            await self._audit_logger.log_record_deleted(
                owner_id=self._owner_id,
                kind=kind.value,
                record_id=record_id,
                correlation_id=self._correlation_id,
            )
        return True
