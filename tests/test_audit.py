"""Tests for the audit logger."""

import asyncio
from uuid import uuid4

import pytest

from ledgerflow.audit import AuditLogger, create_correlation_id
from ledgerflow.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from ledgerflow.services.storage import InMemoryAuditStorage


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("sheet unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_local_only_logging_succeeds(self):
        logger = AuditLogger()
        assert not logger.persistent
        correlation_id = create_correlation_id()
        asyncio.run(logger.log_session_started("alice", correlation_id))

    def test_events_persisted(self, audit_storage):
        logger = AuditLogger(audit_storage)
        correlation_id = uuid4()

        async def scenario():
            await logger.log_record_created("alice", "income", "i1", "1000", correlation_id)
            await logger.log_record_updated("alice", "income", "i1", ["amount"], correlation_id)
            await logger.log_record_deleted("alice", "income", "i1", correlation_id)
            return await audit_storage.get_events_by_entity("income", "i1")

        events = asyncio.run(scenario())
        assert [e.event_type for e in events] == [
            AuditEventType.RECORD_CREATED,
            AuditEventType.RECORD_UPDATED,
            AuditEventType.RECORD_DELETED,
        ]
        assert events[1].details["fields"] == ["amount"]

    def test_failures_are_error_severity(self, audit_storage):
        logger = AuditLogger(audit_storage)

        async def scenario():
            await logger.log_fetch_failed("alice", "expense", "timeout")
            await logger.log_error("RuntimeError", "boom", details={"where": "test"})
            return await audit_storage.get_recent_events()

        events = asyncio.run(scenario())
        assert {e.severity for e in events} == {AuditSeverity.ERROR}

    def test_storage_failure_does_not_raise(self):
        logger = AuditLogger(FailingAuditStorage())
        stored = asyncio.run(logger.log(AuditEventBuilder.session_started("alice", uuid4())))
        assert stored is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
