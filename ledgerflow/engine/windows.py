"""
Calendar windows relative to a reference instant.

All ranges are half-open: [start, end). Windows are computed in a
configured timezone so "this week" means the user's week, not UTC's.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from ledgerflow.models.ledger import DateRange


class WindowCalculator:
    """
    Pure week/month range computation.

    Deterministic for identical `now`. Callers capture `now` once per
    aggregation pass and pass it to every call.
    """

    def __init__(self, week_start: int = 0, tz: Optional[tzinfo] = None):
        if not 0 <= week_start <= 6:
            raise ValueError(f"week_start must be 0 (Monday) .. 6 (Sunday), got {week_start}")
        self.week_start = week_start
        self.tz = tz or timezone.utc

    def _local(self, now: datetime) -> datetime:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz)

    def week_range(self, now: datetime) -> DateRange:
        local = self._local(now)
        offset = (local.weekday() - self.week_start) % 7
        first = (local - timedelta(days=offset)).date()
        last = first + timedelta(days=7)
        return DateRange(
            start=datetime(first.year, first.month, first.day, tzinfo=self.tz),
            end=datetime(last.year, last.month, last.day, tzinfo=self.tz),
        )

    def month_range(self, now: datetime) -> DateRange:
        local = self._local(now)
        start = datetime(local.year, local.month, 1, tzinfo=self.tz)
        if local.month == 12:
            end = datetime(local.year + 1, 1, 1, tzinfo=self.tz)
        else:
            end = datetime(local.year, local.month + 1, 1, tzinfo=self.tz)
        return DateRange(start=start, end=end)

    def projection_range(self, now: datetime, days: int) -> DateRange:
        """Everything up to and including `now + days`, with no lower bound."""
        local = self._local(now)
        return DateRange(
            start=datetime.min.replace(tzinfo=timezone.utc),
            end=local + timedelta(days=days, microseconds=1),
        )

    def day_of(self, moment: datetime):
        """Calendar day of `moment` in the window timezone."""
        return self._local(moment).date()

    @staticmethod
    def is_within(moment: Optional[datetime], window: DateRange) -> bool:
        return window.contains(moment)
