"""
Merge Paginator

Merges two independently cursor-paginated, most-recent-first feeds
(incomes and expenses) into ONE globally date-ordered, incrementally
loadable transaction list.

DESIGN DECISION: Full re-sort instead of append.
The kinds are paginated INDEPENDENTLY, so a page boundary in one kind
can land chronologically ahead of or behind records already loaded from
the other. Appending would break global ordering; re-sorting the whole
accumulated list (O(n log n), n = records loaded so far) cannot.

GUARANTEES:
- One load at a time: a second `load_more` while one is in flight is
  rejected with PaginationInProgressError
- All-or-nothing: if any kind's fetch fails, no cursor, exhausted flag
  or entry changes - retrying is safe
- No duplicates: entries are keyed by (kind, id)
- Live snapshots win over pages: a record deleted or edited while its
  page was in flight is dropped or replaced when the page lands
- After `close()`, late results are discarded
"""

import asyncio
from collections.abc import Callable, Iterable
from typing import Optional
from uuid import UUID

import structlog

from ledgerflow.audit import AuditLogger
from ledgerflow.engine.errors import (
    FetchError,
    PaginationInProgressError,
    SessionClosedError,
)
from ledgerflow.models.ledger import FeedPage, KindCursor
from ledgerflow.models.record import Record, RecordKind, RecordPage, sort_feed
from ledgerflow.services.storage import RecordStoreInterface


logger = structlog.get_logger(__name__)

FeedListener = Callable[[FeedPage], None]


class MergePaginator:
    """
    Per-owner merged feed over independently paginated kinds.

    Usage:
        paginator = MergePaginator(store, owner_id, page_size=5)
        page = await paginator.load_more()
        page = await paginator.load_more()   # next 5 per kind, re-sorted
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        owner_id: str,
        kinds: Iterable[RecordKind] = (RecordKind.INCOME, RecordKind.EXPENSE),
        page_size: int = 5,
        audit_logger: Optional[AuditLogger] = None,
        correlation_id: Optional[UUID] = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self._store = store
        self._owner_id = owner_id
        self._kinds = tuple(kinds)
        self._page_size = page_size
        self._audit_logger = audit_logger
        self._correlation_id = correlation_id

        self._cursors = {kind: KindCursor(kind=kind) for kind in self._kinds}
        self._entries: dict[tuple[RecordKind, str], Record] = {}
        self._ordered: list[Record] = []

        # Latest live view per kind, and ids that have since left it
        self._live: dict[RecordKind, dict[str, Record]] = {}
        self._removed: dict[RecordKind, set[str]] = {kind: set() for kind in self._kinds}

        self._loading = False
        self._inflight: Optional[asyncio.Future] = None
        self._generation = 0
        self._closed = False
        self._listeners: list[FeedListener] = []
        self._log = logger.bind(owner_id=owner_id)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def entries(self) -> tuple[Record, ...]:
        return tuple(self._ordered)

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def exhausted(self) -> bool:
        return all(c.exhausted for c in self._cursors.values())

    def cursor(self, kind: RecordKind) -> KindCursor:
        return self._cursors[kind].model_copy()

    def on_update(self, listener: FeedListener) -> None:
        self._listeners.append(listener)

    def page(self) -> FeedPage:
        return FeedPage(
            owner_id=self._owner_id,
            entries=tuple(self._ordered),
            cursors={kind: c.model_copy() for kind, c in self._cursors.items()},
        )

    def _emit(self) -> FeedPage:
        page = self.page()
        for listener in self._listeners:
            listener(page)
        return page

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def load_more(self, page_size: Optional[int] = None) -> FeedPage:
        """
        Fetch the next page of every non-exhausted kind and merge.

        Args:
            page_size: Records to request PER KIND (defaults to the
                      paginator's page size)

        Returns:
            The full merged feed, newest first

        Raises:
            PaginationInProgressError: Another load is still running
            FetchError: A kind's page request failed (state unchanged)
            SessionClosedError: The paginator was closed
        """
        if self._closed:
            raise SessionClosedError(f"Feed for {self._owner_id} is closed")
        if self._loading:
            raise PaginationInProgressError(
                f"A load is already in progress for {self._owner_id}"
            )

        size = self._page_size if page_size is None else page_size
        if size < 1:
            raise ValueError("page_size must be at least 1")

        pending = [kind for kind, c in self._cursors.items() if not c.exhausted]
        if not pending:
            return self.page()

        self._loading = True
        generation = self._generation
        try:
            self._inflight = asyncio.gather(
                *(
                    self._store.fetch_page(
                        kind,
                        self._owner_id,
                        self._cursors[kind].cursor,
                        size,
                    )
                    for kind in pending
                ),
                return_exceptions=True,
            )
            try:
                results = await self._inflight
            except asyncio.CancelledError:
                if not self._is_current(generation):
                    self._log.debug("feed_fetch_cancelled")
                    return self.page()
                raise

            if not self._is_current(generation):
                self._log.debug("stale_page_dropped", generation=generation)
                return self.page()

            for kind, result in zip(pending, results):
                if isinstance(result, BaseException):
                    await self._report_failure(kind, result)
                    raise FetchError(kind, result) from result

            return self._apply(dict(zip(pending, results)), size)
        finally:
            self._loading = False
            self._inflight = None

    async def _report_failure(self, kind: RecordKind, error: BaseException) -> None:
        self._log.warning("feed_fetch_failed", kind=kind.value, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_fetch_failed(
                owner_id=self._owner_id,
                kind=kind.value,
                error_message=str(error),
                correlation_id=self._correlation_id,
            )

    def _apply(self, pages: dict[RecordKind, RecordPage], size: int) -> FeedPage:
        for kind, page in pages.items():
            state = self._cursors[kind]
            state.fetched += len(page.records)
            if len(page.records) < size:
                state.exhausted = True
            else:
                state.cursor = page.next_cursor

            live = self._live.get(kind, {})
            for record in page.records:
                if record.id in self._removed[kind]:
                    continue
                record = live.get(record.id, record)
                if record.date is None or record.owner_id != self._owner_id:
                    continue
                self._entries[(kind, record.id)] = record

        self._ordered = sort_feed(self._entries.values())
        self._log.debug(
            "feed_page_merged",
            size=len(self._ordered),
            exhausted={k.value: c.exhausted for k, c in self._cursors.items()},
        )
        return self._emit()

    def reconcile(self, kind: RecordKind, records: Iterable[Record]) -> Optional[FeedPage]:
        """
        Bring already-loaded entries of `kind` in line with a full snapshot.

        Loaded records that no longer exist are dropped; loaded records that
        changed are replaced. Records not loaded yet stay unloaded - they
        arrive through pagination. The snapshot is also kept so a page still
        in flight is checked against it when it lands.
        """
        if self._closed or kind not in self._cursors:
            return None

        current = {r.id: r for r in records if r.owner_id == self._owner_id}
        previous = self._live.get(kind)
        if previous is not None:
            self._removed[kind].update(previous.keys() - current.keys())
        self._removed[kind].difference_update(current)
        self._live[kind] = current

        changed = False
        for key in [k for k in self._entries if k[0] == kind]:
            fresh = current.get(key[1])
            if fresh is None or fresh.date is None:
                del self._entries[key]
                changed = True
            elif fresh != self._entries[key]:
                self._entries[key] = fresh
                changed = True

        if not changed:
            return None
        self._ordered = sort_feed(self._entries.values())
        return self._emit()

    def bind(self, snapshot_store) -> None:
        """Reconcile on every batch a LedgerSnapshotStore applies."""
        snapshot_store.on_batch(self.reconcile)

    def reset(self) -> None:
        """Forget everything loaded; the next load starts from the newest record."""
        self._generation += 1
        if self._inflight is not None:
            self._inflight.cancel()
        self._cursors = {kind: KindCursor(kind=kind) for kind in self._kinds}
        self._entries.clear()
        self._ordered = []

    async def refresh(self, page_size: Optional[int] = None) -> FeedPage:
        """Reset and load the first page again."""
        if self._loading:
            raise PaginationInProgressError(
                f"A load is already in progress for {self._owner_id}"
            )
        self.reset()
        return await self.load_more(page_size)

    def close(self) -> None:
        """Cancel any in-flight fetch and refuse further loads."""
        self._closed = True
        self._generation += 1
        if self._inflight is not None:
            self._inflight.cancel()
        self._log.debug("feed_closed")
