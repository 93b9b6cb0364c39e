"""
Live merged feed.

Unlike MergePaginator, a LiveFeed holds the FULL current record set of
every subscribed kind and re-merges on each emission. Used for short
lists (e.g. latest entries across incomes, expenses and bills) where
paging is unnecessary.
"""

from collections.abc import Callable, Iterable
from typing import Optional

import structlog

from ledgerflow.models.record import Record, RecordKind, SnapshotBatch, sort_feed
from ledgerflow.services.storage import RecordStoreInterface, Subscription


logger = structlog.get_logger(__name__)

LiveFeedListener = Callable[[tuple[Record, ...]], None]


class LiveFeed:
    """Subscription-backed feed over any kinds, newest first, optionally capped."""

    def __init__(
        self,
        owner_id: str,
        kinds: Iterable[RecordKind] = (RecordKind.INCOME, RecordKind.EXPENSE),
        limit: Optional[int] = None,
    ):
        if limit is not None and limit < 1:
            raise ValueError("limit must be at least 1")
        self._owner_id = owner_id
        self._kinds = tuple(kinds)
        self._limit = limit
        self._records: dict[RecordKind, tuple[Record, ...]] = {}
        self._entries: tuple[Record, ...] = ()
        self._subscriptions: list[Subscription] = []
        self._listeners: list[LiveFeedListener] = []
        self._errors: dict[RecordKind, Exception] = {}
        self._closed = False

    @property
    def entries(self) -> tuple[Record, ...]:
        return self._entries

    @property
    def errors(self) -> dict[RecordKind, Exception]:
        return dict(self._errors)

    @property
    def loaded_kinds(self) -> set[RecordKind]:
        return set(self._records)

    def on_update(self, listener: LiveFeedListener) -> None:
        self._listeners.append(listener)

    async def open(self, store: RecordStoreInterface) -> None:
        for kind in self._kinds:
            subscription = await store.subscribe(
                kind,
                self._owner_id,
                on_snapshot=self.apply_batch,
                on_error=self.fail,
            )
            if self._closed:
                subscription.unsubscribe()
                return
            self._subscriptions.append(subscription)

    def apply_batch(self, batch: SnapshotBatch) -> Optional[tuple[Record, ...]]:
        if self._closed or batch.owner_id != self._owner_id:
            logger.debug(
                "stale_feed_batch_dropped",
                owner_id=self._owner_id,
                batch_owner=batch.owner_id,
            )
            return None
        if batch.kind not in self._kinds:
            return None

        self._records[batch.kind] = tuple(
            r for r in batch.records if r.owner_id == self._owner_id
        )
        self._errors.pop(batch.kind, None)

        merged = sort_feed(r for records in self._records.values() for r in records)
        if self._limit is not None:
            merged = merged[: self._limit]
        self._entries = tuple(merged)

        for listener in self._listeners:
            listener(self._entries)
        return self._entries

    def fail(self, kind: RecordKind, cause: Exception) -> None:
        if self._closed:
            return
        self._errors[kind] = cause
        logger.warning(
            "live_feed_stream_failed",
            owner_id=self._owner_id,
            kind=kind.value,
            error=str(cause),
        )

    def close(self) -> None:
        self._closed = True
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
