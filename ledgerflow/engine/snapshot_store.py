"""
Ledger Snapshot Store

Holds the most recently observed full set of income and expense records
for ONE owner, sourced from two live subscriptions.

DESIGN DECISION: "wait for both, then react to either".
Nothing downstream is told about the ledger until BOTH kinds have been
loaded at least once. Computing a wallet total from half the data would
flash a wrong (often negative) balance when expenses happen to arrive
before incomes. After that, every batch of either kind triggers
immediately.

Each inbound batch REPLACES the whole map for its kind - the
subscription delivers full current state, never a diff.
"""

from collections.abc import Callable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Optional

import structlog

from ledgerflow.engine.errors import StaleOwnerError, SubscriptionError
from ledgerflow.models.record import LedgerSnapshot, Record, RecordKind, SnapshotBatch
from ledgerflow.services.storage import RecordStoreInterface, Subscription


logger = structlog.get_logger(__name__)

LEDGER_KINDS = (RecordKind.INCOME, RecordKind.EXPENSE)

SnapshotListener = Callable[[LedgerSnapshot], None]
BatchListener = Callable[[RecordKind, tuple[Record, ...]], None]
ErrorListener = Callable[[SubscriptionError], None]


class GateState(str, Enum):
    NONE = "none"
    ONE_LOADED = "one_loaded"
    BOTH_LOADED = "both_loaded"


class ReadinessGate:
    """
    Two-slot readiness state machine.

        NONE --load(k)--> ONE_LOADED(k) --load(other)--> BOTH_LOADED

    Loading the same kind again never moves the state backwards.
    """

    def __init__(self):
        self._loaded: set[RecordKind] = set()

    @property
    def state(self) -> GateState:
        if not self._loaded:
            return GateState.NONE
        if len(self._loaded) == len(LEDGER_KINDS):
            return GateState.BOTH_LOADED
        return GateState.ONE_LOADED

    @property
    def loaded_kind(self) -> Optional[RecordKind]:
        """The single loaded kind while ONE_LOADED, otherwise None."""
        if self.state == GateState.ONE_LOADED:
            return next(iter(self._loaded))
        return None

    @property
    def ready(self) -> bool:
        return self.state == GateState.BOTH_LOADED

    def mark_loaded(self, kind: RecordKind) -> bool:
        """Record that `kind` has delivered; returns True once both have."""
        if kind not in LEDGER_KINDS:
            raise ValueError(f"{kind.value} is not gated")
        self._loaded.add(kind)
        return self.ready

    def reset(self) -> None:
        self._loaded.clear()


class LedgerSnapshotStore:
    """
    Per-owner income/expense maps plus change notifications.

    Listeners:
    - on_snapshot: gated; receives a LedgerSnapshot after every batch once
      both kinds are loaded
    - on_batch: ungated; receives (kind, records) for every applied batch
    - on_error: receives SubscriptionError when a stream fails
    """

    def __init__(self, owner_id: str):
        self._owner_id = owner_id
        self._docs: dict[RecordKind, dict[str, Record]] = {kind: {} for kind in LEDGER_KINDS}
        self._gate = ReadinessGate()
        self._version = 0
        self._closed = False
        self._subscriptions: list[Subscription] = []
        self._errors: dict[RecordKind, SubscriptionError] = {}

        self._snapshot_listeners: list[SnapshotListener] = []
        self._batch_listeners: list[BatchListener] = []
        self._error_listeners: list[ErrorListener] = []

        self._log = logger.bind(owner_id=owner_id)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def gate(self) -> ReadinessGate:
        return self._gate

    @property
    def version(self) -> int:
        return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def income_docs(self) -> Mapping[str, Record]:
        return MappingProxyType(self._docs[RecordKind.INCOME])

    @property
    def expense_docs(self) -> Mapping[str, Record]:
        return MappingProxyType(self._docs[RecordKind.EXPENSE])

    @property
    def errors(self) -> dict[RecordKind, SubscriptionError]:
        """Current stream failures per kind (cleared by the next good batch)."""
        return dict(self._errors)

    def on_snapshot(self, listener: SnapshotListener) -> None:
        self._snapshot_listeners.append(listener)

    def on_batch(self, listener: BatchListener) -> None:
        self._batch_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    async def open(self, store: RecordStoreInterface) -> None:
        """Subscribe to both kinds for this owner."""
        for kind in LEDGER_KINDS:
            try:
                subscription = await store.subscribe(
                    kind,
                    self._owner_id,
                    on_snapshot=self.apply_batch,
                    on_error=self.fail,
                )
            except Exception as e:
                self.close()
                raise SubscriptionError(kind, self._owner_id, e) from e
            if self._closed:
                # Closed while subscribing
                subscription.unsubscribe()
                return
            self._subscriptions.append(subscription)
        self._log.debug("snapshot_store_opened")

    def close(self) -> None:
        """Tear down every subscription; later emissions are dropped."""
        self._closed = True
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self._log.debug("snapshot_store_closed")

    def _check_owner(self, owner_id: str) -> None:
        if self._closed or owner_id != self._owner_id:
            raise StaleOwnerError(
                None if self._closed else self._owner_id,
                owner_id,
            )

    def snapshot(self) -> LedgerSnapshot:
        """Read both maps once, as one consistent snapshot."""
        return LedgerSnapshot(
            owner_id=self._owner_id,
            version=self._version,
            incomes=tuple(self._docs[RecordKind.INCOME].values()),
            expenses=tuple(self._docs[RecordKind.EXPENSE].values()),
        )

    def apply_batch(self, batch: SnapshotBatch) -> Optional[LedgerSnapshot]:
        """
        Replace one kind's map with the batch contents.

        Returns the LedgerSnapshot handed to listeners, or None while the
        gate is not yet open (or the batch was dropped).
        """
        try:
            self._check_owner(batch.owner_id)
        except StaleOwnerError as e:
            self._log.debug("stale_batch_dropped", kind=batch.kind.value, reason=str(e))
            return None

        if batch.kind not in LEDGER_KINDS:
            raise ValueError(f"Unexpected {batch.kind.value} batch")

        self._docs[batch.kind] = {
            record.id: record
            for record in batch.records
            if record.owner_id == self._owner_id
        }
        self._version += 1
        self._errors.pop(batch.kind, None)

        for listener in self._batch_listeners:
            listener(batch.kind, tuple(self._docs[batch.kind].values()))

        if not self._gate.mark_loaded(batch.kind):
            self._log.debug(
                "waiting_for_other_kind",
                loaded=batch.kind.value,
                gate=self._gate.state.value,
            )
            return None

        snapshot = self.snapshot()
        for listener in self._snapshot_listeners:
            listener(snapshot)
        return snapshot

    def fail(self, kind: RecordKind, cause: Exception) -> None:
        """
        Surface a stream failure.

        The maps are left untouched so aggregates keep their last good values.
        """
        if self._closed:
            return
        error = SubscriptionError(kind, self._owner_id, cause)
        self._errors[kind] = error
        self._log.warning("subscription_failed", kind=kind.value, error=str(cause))
        for listener in self._error_listeners:
            listener(error)
