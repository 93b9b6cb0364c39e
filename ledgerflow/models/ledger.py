"""
Derived Ledger Models

Everything in here is DERIVED from the current record sets and the
wall clock. None of it is ever persisted; it is recomputed instead.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ledgerflow.models.record import Record, RecordKind


# =============================================================================
# WINDOWS & AGGREGATES
# =============================================================================

class DateRange(BaseModel):
    """Half-open interval [start, end)."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    def contains(self, moment: Optional[datetime]) -> bool:
        if moment is None:
            return False
        return self.start <= moment < self.end


class AggregateSnapshot(BaseModel):
    """
    Rolling aggregates for one owner.

    GUARANTEE: every value was computed from the same LedgerSnapshot
    and the same captured `computed_at` instant.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str
    source_version: int = Field(
        ...,
        description="Version of the LedgerSnapshot this was computed from"
    )
    computed_at: datetime = Field(
        ...,
        description="The 'now' captured once for the whole pass"
    )
    week: DateRange
    month: DateRange

    week_balance: Decimal = Decimal("0")
    month_balance: Decimal = Decimal("0")
    wallet_total: Decimal = Decimal("0")
    month_income_count: int = Field(default=0, ge=0)
    month_expense_count: int = Field(default=0, ge=0)

    # Dashboard summary figures
    projected_income: Decimal = Field(
        default=Decimal("0"),
        description="Income dated on or before now + projection horizon"
    )
    shortfall: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="How far expenses exceed incomes overall (0 when in the green)"
    )


class DailyTotals(BaseModel):
    """Income and expense for one calendar day."""
    model_config = ConfigDict(frozen=True)

    day: date
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


# =============================================================================
# FEED
# =============================================================================

class KindCursor(BaseModel):
    """Pagination state for one kind's feed."""

    kind: RecordKind
    cursor: Optional[Any] = Field(
        default=None,
        description="Opaque continuation marker; None means 'start from newest'"
    )
    exhausted: bool = False
    fetched: int = Field(
        default=0,
        ge=0,
        description="Records received for this kind so far"
    )


class FeedPage(BaseModel):
    """
    The merged feed as delivered to the caller.

    Entries are globally ordered by date, newest first.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str
    entries: tuple[Record, ...] = ()
    cursors: dict[RecordKind, KindCursor] = Field(default_factory=dict)

    @property
    def exhausted(self) -> bool:
        return all(c.exhausted for c in self.cursors.values())

    @property
    def has_more(self) -> bool:
        return not self.exhausted

    @property
    def ids(self) -> list[str]:
        return [entry.id for entry in self.entries]


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'immutable')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of checking user input for a create or update.

    `values` holds the cleaned field values that would be written.
    """

    kind: RecordKind
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )
    values: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
