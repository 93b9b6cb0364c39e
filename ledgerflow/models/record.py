"""
Ledger Record Models

The Record is the unit of ledger data. It arrives from the external
store either through a live subscription (full current set per emission)
or through a page fetch.

DESIGN DECISION: Records observed from the store are parsed TOLERANTLY.
A document with a garbage amount or a missing date still becomes a
Record - with `amount=None` / `date=None` - so one bad row can never
crash aggregation. Consumers decide what to exclude:
- aggregation skips records that are not `is_countable`
- the merged feed skips records without a date

Strict checking of user input happens on the write side
(see ledgerflow.validation), never here.
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================

class RecordKind(str, Enum):
    """
    Category partition of records.

    A record's kind is fixed at creation; there is no transition path.
    """
    INCOME = "income"
    EXPENSE = "expense"
    BILL = "bill"

    @property
    def collection(self) -> str:
        """Name of the external collection holding this kind."""
        return f"{self.value}s"


class Recurrence(str, Enum):
    """How often a bill repeats."""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ANNUALLY = "annually"


# Keys the owner has been stored under over the life of the data set
OWNER_KEYS = ("owner_id", "owner", "ownerId", "user")


# =============================================================================
# PARSING HELPERS
# =============================================================================

# Larger amounts are treated as unusable; sums of them stay within the
# default decimal context
AMOUNT_CEILING = Decimal("1e15")


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a stored amount.

    Returns None for anything that is not a finite, non-negative number
    no larger than AMOUNT_CEILING.
    Booleans are rejected even though Python treats them as ints.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None

    if not amount.is_finite() or amount < 0 or amount > AMOUNT_CEILING:
        return None
    return amount


def parse_moment(value: Any) -> Optional[datetime]:
    """
    Parse a stored point in time into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), plain dates
    (midnight UTC), ISO-8601 strings and `{"seconds": ...}` timestamp
    mappings. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, Mapping) and "seconds" in value:
        try:
            seconds = float(value["seconds"]) + float(value.get("nanoseconds", 0)) / 1e9
            moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    else:
        return None

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    try:
        return moment.astimezone(timezone.utc)
    except OverflowError:
        # e.g. 0001-01-01T00:00+05:00 has no UTC equivalent
        return None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# =============================================================================
# RECORD
# =============================================================================

class Record(BaseModel):
    """
    A single income, expense or bill entry as observed from the store.

    `date` is when the record is effective; `created_at` is when it was
    inserted. Both are normalised to UTC.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque identifier, unique within its kind"
    )
    owner_id: str = Field(
        ...,
        description="Owning user"
    )
    kind: RecordKind

    name: str = Field(
        default="",
        description="Display label"
    )
    amount: Optional[Decimal] = Field(
        default=None,
        description="Non-negative amount; None when the stored value is unusable"
    )
    date: Optional[datetime] = Field(
        default=None,
        description="Effective date; None when missing or invalid"
    )
    notes: Optional[str] = None
    company: Optional[str] = None
    created_at: Optional[datetime] = None

    # Bills only
    recurrence: Optional[Recurrence] = None
    recurrence_group_id: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v: Any) -> Optional[Decimal]:
        return parse_amount(v)

    @field_validator('date', 'created_at', mode='before')
    @classmethod
    def coerce_moment(cls, v: Any) -> Optional[datetime]:
        return parse_moment(v)

    @field_validator('name', mode='before')
    @classmethod
    def coerce_name(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator('notes', 'company', 'recurrence_group_id', mode='before')
    @classmethod
    def coerce_text(cls, v: Any) -> Optional[str]:
        return _optional_text(v)

    @field_validator('recurrence', mode='before')
    @classmethod
    def coerce_recurrence(cls, v: Any) -> Optional[Recurrence]:
        if v is None or v == "":
            return None
        try:
            return Recurrence(v)
        except ValueError:
            return None

    @property
    def is_countable(self) -> bool:
        """Can this record contribute to sums and counts?"""
        return self.amount is not None and self.date is not None

    @classmethod
    def from_document(
        cls,
        kind: RecordKind,
        doc_id: str,
        data: Mapping[str, Any],
    ) -> "Record":
        """
        Build a Record from a raw store document.

        Accepts both snake_case and the camelCase keys older documents use.
        """
        owner = next((data[key] for key in OWNER_KEYS if data.get(key)), "")
        return cls(
            id=str(doc_id),
            owner_id=str(owner),
            kind=kind,
            name=data.get("name"),
            amount=data.get("amount"),
            date=data.get("date"),
            notes=data.get("notes"),
            company=data.get("company"),
            created_at=data.get("created_at", data.get("createdAt")),
            recurrence=data.get("recurrence"),
            recurrence_group_id=data.get(
                "recurrence_group_id", data.get("recurrenceGroupId")
            ),
        )


def sort_feed(records: Iterable[Record]) -> list[Record]:
    """
    Order records newest first.

    Ties on date are broken by (id, kind) ascending so the result is
    deterministic across reloads. Records without a date are dropped.
    """
    ordered = sorted(
        (r for r in records if r.date is not None),
        key=lambda r: (r.id, r.kind.value),
    )
    ordered.sort(key=lambda r: r.date, reverse=True)
    return ordered


# =============================================================================
# STORE EXCHANGE MODELS
# =============================================================================

class PageCursor(BaseModel):
    """Position of the last record delivered by a page fetch."""
    model_config = ConfigDict(frozen=True)

    date: datetime
    id: str

    @classmethod
    def after(cls, record: Record) -> "PageCursor":
        return cls(date=record.date, id=record.id)


class RecordPage(BaseModel):
    """One page of a single kind's most-recent-first feed."""
    model_config = ConfigDict(frozen=True)

    records: tuple[Record, ...] = ()
    next_cursor: Optional[Any] = Field(
        default=None,
        description="Opaque continuation marker; None when the page is empty"
    )


class SnapshotBatch(BaseModel):
    """
    One subscription emission: the complete current set of one kind
    for one owner. Never a diff.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str
    kind: RecordKind
    records: tuple[Record, ...] = ()
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class LedgerSnapshot(BaseModel):
    """
    Both kinds' current record sets, read at one instant.

    `version` increases with every applied batch, so consumers can tell a
    newer snapshot from an older one.
    """
    model_config = ConfigDict(frozen=True)

    owner_id: str
    version: int = Field(ge=0)
    incomes: tuple[Record, ...] = ()
    expenses: tuple[Record, ...] = ()

    def records(self, kind: RecordKind) -> tuple[Record, ...]:
        if kind == RecordKind.INCOME:
            return self.incomes
        if kind == RecordKind.EXPENSE:
            return self.expenses
        raise ValueError(f"Ledger snapshots do not hold {kind.value} records")
