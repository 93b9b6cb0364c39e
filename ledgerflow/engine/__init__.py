"""
Ledger Engine Package

Live aggregation and merge pagination over an owner's records.
"""

from ledgerflow.engine.aggregates import AggregateEngine, utc_now
from ledgerflow.engine.editor import LedgerEditor
from ledgerflow.engine.errors import (
    FetchError,
    LedgerError,
    PaginationInProgressError,
    SessionClosedError,
    StaleOwnerError,
    SubscriptionError,
    ValidationError,
)
from ledgerflow.engine.live_feed import LiveFeed
from ledgerflow.engine.paginator import MergePaginator
from ledgerflow.engine.snapshot_store import (
    GateState,
    LEDGER_KINDS,
    LedgerSnapshotStore,
    ReadinessGate,
)
from ledgerflow.engine.windows import WindowCalculator

__all__ = [
    # Components
    "AggregateEngine",
    "LedgerEditor",
    "LedgerSnapshotStore",
    "LiveFeed",
    "MergePaginator",
    "ReadinessGate",
    "WindowCalculator",
    "GateState",
    "LEDGER_KINDS",
    "utc_now",
    # Exceptions
    "FetchError",
    "LedgerError",
    "PaginationInProgressError",
    "SessionClosedError",
    "StaleOwnerError",
    "SubscriptionError",
    "ValidationError",
]
