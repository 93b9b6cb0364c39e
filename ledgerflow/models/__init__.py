"""
Data Models Package

This package contains all Pydantic models used in Ledgerflow.
All data flowing through the engine must conform to these schemas.
"""

from ledgerflow.models.record import (
    LedgerSnapshot,
    PageCursor,
    Record,
    RecordKind,
    RecordPage,
    Recurrence,
    SnapshotBatch,
    parse_amount,
    parse_moment,
    sort_feed,
)
from ledgerflow.models.ledger import (
    AggregateSnapshot,
    DailyTotals,
    DateRange,
    FeedPage,
    KindCursor,
    ValidationIssue,
    ValidationResult,
)
from ledgerflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "LedgerSnapshot",
    "PageCursor",
    "Record",
    "RecordKind",
    "RecordPage",
    "Recurrence",
    "SnapshotBatch",
    "parse_amount",
    "parse_moment",
    "sort_feed",
    # Derived models
    "AggregateSnapshot",
    "DailyTotals",
    "DateRange",
    "FeedPage",
    "KindCursor",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
