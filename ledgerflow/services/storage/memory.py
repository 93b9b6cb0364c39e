"""
In-Memory Storage Implementation

Stands in for the managed backend in tests and local development.

Documents are kept as RAW dicts, exactly as a document database would
hand them over, so malformed data (string amounts, missing dates,
legacy owner keys) can be seeded and exercised.
"""

from typing import Any, Optional
from uuid import UUID, uuid4

from ledgerflow.models.audit import AuditEvent
from ledgerflow.models.record import Record, RecordKind, RecordPage
from ledgerflow.services.storage.interface import (
    AuditStorageInterface,
    ErrorCallback,
    NotFoundError,
    RecordStoreInterface,
    SnapshotCallback,
    Subscription,
    paginate,
)
from ledgerflow.services.storage.subscriptions import SubscriptionHub


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dict-backed record store with live subscriptions.

    Every write re-publishes the full current set of the affected
    (kind, owner) to its subscribers.
    """

    def __init__(self):
        self._documents: dict[RecordKind, dict[str, dict[str, Any]]] = {
            kind: {} for kind in RecordKind
        }
        self._hub = SubscriptionHub()

    def seed(self, kind: RecordKind, doc_id: str, data: dict[str, Any]) -> None:
        """Place a raw document without notifying subscribers."""
        self._documents[kind][doc_id] = dict(data)

    def documents(self, kind: RecordKind) -> dict[str, dict[str, Any]]:
        return {doc_id: dict(data) for doc_id, data in self._documents[kind].items()}

    def subscriber_count(self, kind: RecordKind, owner_id: str) -> int:
        return len(self._hub.subscribers(kind, owner_id))

    def _records(self, kind: RecordKind, owner_id: str) -> list[Record]:
        records = (
            Record.from_document(kind, doc_id, data)
            for doc_id, data in self._documents[kind].items()
        )
        return [r for r in records if r.owner_id == owner_id]

    def _publish(self, kind: RecordKind, owner_id: str) -> None:
        self._hub.publish(kind, owner_id, self._records(kind, owner_id))

    async def subscribe(
        self,
        kind: RecordKind,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = self._hub.add(kind, owner_id, on_snapshot, on_error)
        self._hub.deliver(subscription, self._records(kind, owner_id))
        return subscription

    async def fetch_page(
        self,
        kind: RecordKind,
        owner_id: str,
        cursor: Optional[Any],
        page_size: int,
    ) -> RecordPage:
        return paginate(self._records(kind, owner_id), cursor, page_size)

    async def insert(
        self,
        kind: RecordKind,
        owner_id: str,
        data: dict[str, Any],
    ) -> str:
        doc_id = uuid4().hex
        document = dict(data)
        document["owner_id"] = owner_id
        self._documents[kind][doc_id] = document
        self._publish(kind, owner_id)
        return doc_id

    def _owned(self, kind: RecordKind, owner_id: str, record_id: str) -> Optional[dict[str, Any]]:
        document = self._documents[kind].get(record_id)
        if document is None:
            return None
        if Record.from_document(kind, record_id, document).owner_id != owner_id:
            return None
        return document

    async def update_fields(
        self,
        kind: RecordKind,
        owner_id: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        document = self._owned(kind, owner_id, record_id)
        if document is None:
            raise NotFoundError(f"{kind.value} not found: {record_id}")
        document.update(fields)
        self._publish(kind, owner_id)

    async def delete(self, kind: RecordKind, owner_id: str, record_id: str) -> bool:
        if self._owned(kind, owner_id, record_id) is None:
            return False
        del self._documents[kind][record_id]
        self._publish(kind, owner_id)
        return True

    def break_stream(self, kind: RecordKind, owner_id: str, error: Exception) -> None:
        """Deliver a stream failure to every live subscriber of (kind, owner)."""
        self._hub.fail(kind, owner_id, error)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
