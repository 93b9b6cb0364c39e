"""
Abstract Storage Interface

DESIGN DECISION: The record store is an EXTERNAL collaborator.
The engine only ever talks to it through this interface, which allows us to:
1. Run against a managed backend in production
2. Use in-memory storage for testing and local development
3. Keep aggregation and pagination decoupled from the backend

The store supplies three primitives:
- live subscription: full current record set per emission, until unsubscribed
- page fetch: most-recent-first pages with an opaque continuation cursor
- writes: insert / update_fields / delete
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any, Optional
from uuid import UUID

from ledgerflow.models.audit import AuditEvent
from ledgerflow.models.record import (
    PageCursor,
    Record,
    RecordKind,
    RecordPage,
    SnapshotBatch,
    sort_feed,
)


SnapshotCallback = Callable[[SnapshotBatch], None]
ErrorCallback = Callable[[RecordKind, Exception], None]


class Subscription:
    """
    Handle for one live subscription.

    Once unsubscribed, nothing more is delivered through it - including
    emissions that were already scheduled.
    """

    def __init__(
        self,
        kind: RecordKind,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        release: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.kind = kind
        self.owner_id = owner_id
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, batch: SnapshotBatch) -> None:
        if self._active:
            self._on_snapshot(batch)

    def fail(self, error: Exception) -> None:
        if self._active and self._on_error is not None:
            self._on_error(self.kind, error)

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._release is not None:
            self._release(self)


class RecordStoreInterface(ABC):
    """
    Abstract interface for the record store collaborator.

    Any storage implementation must implement these methods.
    All queries are scoped to exactly one owner.
    """

    @abstractmethod
    async def subscribe(
        self,
        kind: RecordKind,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Start a live subscription to one kind for one owner.

        Every emission carries the COMPLETE current record set, not a diff.
        The first emission follows shortly after subscribing.

        Args:
            kind: Record kind to watch
            owner_id: Owner to scope to
            on_snapshot: Called with each SnapshotBatch
            on_error: Called with (kind, exception) if the stream fails

        Returns:
            Handle used to unsubscribe
        """
        pass

    @abstractmethod
    async def fetch_page(
        self,
        kind: RecordKind,
        owner_id: str,
        cursor: Optional[Any],
        page_size: int,
    ) -> RecordPage:
        """
        Fetch up to `page_size` records ordered by date descending.

        Args:
            kind: Record kind
            owner_id: Owner to scope to
            cursor: Continuation from a previous page, or None for the newest
            page_size: Maximum number of records

        Returns:
            The page, starting strictly after `cursor`

        Raises:
            StorageError: If the fetch fails
        """
        pass

    @abstractmethod
    async def insert(
        self,
        kind: RecordKind,
        owner_id: str,
        data: dict[str, Any],
    ) -> str:
        """
        Insert a new record.

        Returns:
            The new record's id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_fields(
        self,
        kind: RecordKind,
        owner_id: str,
        record_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Overwrite only the given fields of one of `owner_id`'s records.

        Raises:
            NotFoundError: If the record doesn't exist or belongs to
                          another owner
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, kind: RecordKind, owner_id: str, record_id: str) -> bool:
        """
        Delete one of `owner_id`'s records.

        Returns:
            True if a record was deleted, False if `owner_id` has no such record
        """
        pass


class AuditStorageInterface(ABC):
    """Where audit events are persisted. Events are only ever appended."""

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Persist one event.

        Implementations report failure through the return value so a
        broken trail never interrupts a ledger operation.
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for one session, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific record, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


def paginate(
    records: Iterable[Record],
    cursor: Optional[PageCursor],
    page_size: int,
) -> RecordPage:
    """
    Cut one most-recent-first page out of a kind's full record set.

    Ordering is date descending, then id ascending; records without a
    date are not part of the ordered feed. The page starts strictly
    after `cursor`.
    """
    ordered = sort_feed(records)

    if cursor is not None:
        ordered = [
            r for r in ordered
            if r.date < cursor.date or (r.date == cursor.date and r.id > cursor.id)
        ]

    page = ordered[:page_size]
    return RecordPage(
        records=tuple(page),
        next_cursor=PageCursor.after(page[-1]) if page else None,
    )


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
