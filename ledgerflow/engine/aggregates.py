"""
Aggregate Engine

Turns the current income/expense record sets into rolling aggregates:
weekly balance, monthly balance, lifetime wallet total, monthly counts,
plus the dashboard summary figures (projected income, shortfall).

GUARANTEES:
- Pure and synchronous over already-materialized data
- `now` is captured ONCE per pass; no record is judged against a
  different clock reading than its neighbours
- The input snapshot is read once at entry, so all values come from
  the same instant
- Records with an unusable amount or date contribute nothing; they
  never abort the pass
- Results are applied in notification order: a snapshot that is not
  newer than the last applied one is discarded
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

import structlog

from ledgerflow.engine.windows import WindowCalculator
from ledgerflow.models.ledger import AggregateSnapshot, DailyTotals, DateRange
from ledgerflow.models.record import LedgerSnapshot, Record


logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]
AggregateListener = Callable[[AggregateSnapshot], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _total(records: Iterable[Record]) -> Decimal:
    return sum((r.amount for r in records), Decimal("0"))


class AggregateEngine:
    """
    Recomputes AggregateSnapshots from LedgerSnapshots.

    Typically bound to a LedgerSnapshotStore, whose gated notifications
    drive `recompute`.
    """

    def __init__(
        self,
        calculator: Optional[WindowCalculator] = None,
        projection_days: int = 7,
        clock: Clock = utc_now,
        owner_id: Optional[str] = None,
    ):
        self._calculator = calculator or WindowCalculator()
        self._projection_days = projection_days
        self._clock = clock
        self._owner_id = owner_id
        self._latest: Optional[AggregateSnapshot] = None
        self._applied_version = -1
        self._listeners: list[AggregateListener] = []

    @property
    def latest(self) -> Optional[AggregateSnapshot]:
        """Last applied aggregates; None until both kinds have loaded."""
        return self._latest

    @property
    def applied_version(self) -> int:
        return self._applied_version

    def on_update(self, listener: AggregateListener) -> None:
        self._listeners.append(listener)

    def bind(self, store) -> None:
        """Recompute on every gated notification from a LedgerSnapshotStore."""
        store.on_snapshot(self.recompute)

    def compute(self, snapshot: LedgerSnapshot, now: datetime) -> AggregateSnapshot:
        """Pure computation; does not touch engine state."""
        week = self._calculator.week_range(now)
        month = self._calculator.month_range(now)
        horizon = self._calculator.projection_range(now, self._projection_days)

        incomes = [r for r in snapshot.incomes if r.is_countable]
        expenses = [r for r in snapshot.expenses if r.is_countable]

        total_income = _total(incomes)
        total_expense = _total(expenses)

        month_incomes = [r for r in incomes if month.contains(r.date)]
        month_expenses = [r for r in expenses if month.contains(r.date)]

        week_balance = (
            _total(r for r in incomes if week.contains(r.date))
            - _total(r for r in expenses if week.contains(r.date))
        )

        return AggregateSnapshot(
            owner_id=snapshot.owner_id,
            source_version=snapshot.version,
            computed_at=now,
            week=week,
            month=month,
            week_balance=week_balance,
            month_balance=_total(month_incomes) - _total(month_expenses),
            wallet_total=total_income - total_expense,
            month_income_count=len(month_incomes),
            month_expense_count=len(month_expenses),
            projected_income=_total(r for r in incomes if horizon.contains(r.date)),
            shortfall=max(Decimal("0"), total_expense - total_income),
        )

    def recompute(
        self,
        snapshot: LedgerSnapshot,
        now: Optional[datetime] = None,
    ) -> Optional[AggregateSnapshot]:
        """
        Compute and apply aggregates for `snapshot`.

        Returns the new AggregateSnapshot, or None if the snapshot was
        discarded as stale.
        """
        if self._owner_id is not None and snapshot.owner_id != self._owner_id:
            logger.debug(
                "stale_snapshot_dropped",
                expected=self._owner_id,
                actual=snapshot.owner_id,
            )
            return None

        if snapshot.version <= self._applied_version:
            logger.debug(
                "out_of_order_snapshot_dropped",
                owner_id=snapshot.owner_id,
                version=snapshot.version,
                applied_version=self._applied_version,
            )
            return None

        result = self.compute(snapshot, now or self._clock())
        self._latest = result
        self._applied_version = snapshot.version

        logger.info(
            "aggregate_recomputed",
            owner_id=snapshot.owner_id,
            version=snapshot.version,
            wallet_total=str(result.wallet_total),
            week_balance=str(result.week_balance),
            month_balance=str(result.month_balance),
        )

        for listener in self._listeners:
            listener(result)
        return result

    def daily_totals(
        self,
        snapshot: LedgerSnapshot,
        period: Literal["week", "month"] = "week",
        now: Optional[datetime] = None,
    ) -> list[DailyTotals]:
        """
        Per-day income and expense inside the current week or month.

        Only days with at least one countable record are returned,
        ordered by day.
        """
        now = now or self._clock()
        if period == "week":
            window: DateRange = self._calculator.week_range(now)
        elif period == "month":
            window = self._calculator.month_range(now)
        else:
            raise ValueError(f"Unknown period: {period}")

        days: dict = {}
        for attr, records in (("income", snapshot.incomes), ("expense", snapshot.expenses)):
            for record in records:
                if not record.is_countable or not window.contains(record.date):
                    continue
                day = self._calculator.day_of(record.date)
                bucket = days.setdefault(day, {"income": Decimal("0"), "expense": Decimal("0")})
                bucket[attr] += record.amount

        return [
            DailyTotals(day=day, income=values["income"], expense=values["expense"])
            for day, values in sorted(days.items())
        ]
