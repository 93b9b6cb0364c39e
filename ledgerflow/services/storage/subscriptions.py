"""
Subscription fan-out shared by the concrete record stores.

Emissions are scheduled on the running event loop rather than called
inline, so subscribers always observe them as asynchronous
notifications - the same way a managed backend delivers them.
"""

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from typing import Optional

import structlog

from ledgerflow.models.record import Record, RecordKind, SnapshotBatch
from ledgerflow.services.storage.interface import (
    ErrorCallback,
    SnapshotCallback,
    Subscription,
)


logger = structlog.get_logger(__name__)


class SubscriptionHub:
    """Keeps live subscriptions per (kind, owner) and pushes full snapshots to them."""

    def __init__(self):
        self._subscriptions: dict[tuple[RecordKind, str], list[Subscription]] = defaultdict(list)

    def add(
        self,
        kind: RecordKind,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = Subscription(
            kind,
            owner_id,
            on_snapshot,
            on_error,
            release=self._remove,
        )
        self._subscriptions[(kind, owner_id)].append(subscription)
        logger.debug("subscription_added", kind=kind.value, owner_id=owner_id)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        key = (subscription.kind, subscription.owner_id)
        subscribers = self._subscriptions.get(key, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(key, None)
        logger.debug(
            "subscription_removed",
            kind=subscription.kind.value,
            owner_id=subscription.owner_id,
        )

    def subscribers(self, kind: RecordKind, owner_id: str) -> list[Subscription]:
        return list(self._subscriptions.get((kind, owner_id), []))

    def deliver(self, subscription: Subscription, records: Iterable[Record]) -> None:
        """Schedule one emission to a single subscriber."""
        batch = SnapshotBatch(
            owner_id=subscription.owner_id,
            kind=subscription.kind,
            records=tuple(records),
        )
        asyncio.get_running_loop().call_soon(subscription.deliver, batch)

    def publish(self, kind: RecordKind, owner_id: str, records: Iterable[Record]) -> None:
        """Schedule the current full set to every subscriber of (kind, owner)."""
        subscribers = self.subscribers(kind, owner_id)
        if not subscribers:
            return
        batch = SnapshotBatch(owner_id=owner_id, kind=kind, records=tuple(records))
        loop = asyncio.get_running_loop()
        for subscription in subscribers:
            loop.call_soon(subscription.deliver, batch)

    def fail(self, kind: RecordKind, owner_id: str, error: Exception) -> None:
        """Schedule a stream failure to every subscriber of (kind, owner)."""
        loop = asyncio.get_running_loop()
        for subscription in self.subscribers(kind, owner_id):
            loop.call_soon(subscription.fail, error)
