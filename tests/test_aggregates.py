"""Tests for aggregate computation."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from ledgerflow.engine import AggregateEngine, LedgerSnapshotStore, WindowCalculator
from ledgerflow.models.record import LedgerSnapshot, RecordKind, SnapshotBatch

from conftest import NOW, make_record, settle


def snapshot(incomes=(), expenses=(), version: int = 1, owner_id: str = "alice") -> LedgerSnapshot:
    return LedgerSnapshot(
        owner_id=owner_id,
        version=version,
        incomes=tuple(incomes),
        expenses=tuple(expenses),
    )


def expense(record_id: str, **kwargs):
    return make_record(record_id, kind=RecordKind.EXPENSE, **kwargs)


@pytest.fixture
def engine() -> AggregateEngine:
    return AggregateEngine(
        calculator=WindowCalculator(week_start=0),
        clock=lambda: NOW,
    )


class TestCompute:
    """Tests for AggregateEngine.compute."""

    def test_wallet_and_week_example(self, engine):
        result = engine.compute(
            snapshot(
                incomes=[make_record("i1", amount=1000, date="2024-06-03")],
                expenses=[expense("e1", amount=400, date="2024-06-03")],
            ),
            NOW,
        )
        assert result.wallet_total == Decimal("600")
        assert result.week_balance == Decimal("600")
        assert result.month_balance == Decimal("600")

    def test_month_counts_only_current_month(self, engine):
        result = engine.compute(
            snapshot(incomes=[
                make_record("june", amount=100, date="2024-06-10"),
                make_record("may", amount=50, date="2024-05-20"),
            ]),
            NOW,
        )
        assert result.month_income_count == 1
        assert result.month_expense_count == 0
        assert result.month_balance == Decimal("100")
        assert result.wallet_total == Decimal("150")

    def test_week_excludes_other_weeks(self, engine):
        result = engine.compute(
            snapshot(
                incomes=[make_record("last-week", amount=70, date="2024-06-02T23:59:59Z")],
                expenses=[expense("next-week", amount=30, date="2024-06-10T00:00:00Z")],
            ),
            NOW,
        )
        assert result.week_balance == Decimal("0")
        assert result.wallet_total == Decimal("40")

    def test_malformed_records_contribute_nothing(self, engine):
        result = engine.compute(
            snapshot(
                incomes=[
                    make_record("good", amount=100),
                    make_record("bad-amount", amount="n/a"),
                    make_record("no-date", amount=500, date=None),
                ],
                expenses=[expense("negative", amount=-20)],
            ),
            NOW,
        )
        assert result.wallet_total == Decimal("100")
        assert result.month_income_count == 1

    def test_wallet_total_independent_of_arrival_order(self, engine):
        incomes = [make_record(f"i{n}", amount=n) for n in range(1, 6)]
        expenses = [expense(f"e{n}", amount=n * 2) for n in range(1, 4)]
        forward = engine.compute(snapshot(incomes, expenses), NOW)
        backward = engine.compute(snapshot(reversed(incomes), reversed(expenses)), NOW)
        assert forward.wallet_total == backward.wallet_total == Decimal("3")

    def test_projected_income_and_shortfall(self, engine):
        result = engine.compute(
            snapshot(
                incomes=[
                    make_record("soon", amount=200, date="2024-06-11T12:00:00Z"),
                    make_record("later", amount=900, date="2024-06-20"),
                ],
                expenses=[expense("rent", amount=1500, date="2024-06-01")],
            ),
            NOW,
        )
        assert result.projected_income == Decimal("200")
        assert result.shortfall == Decimal("400")

    def test_no_shortfall_when_income_covers_expense(self, engine):
        result = engine.compute(
            snapshot(incomes=[make_record("i", amount=10)], expenses=[expense("e", amount=5)]),
            NOW,
        )
        assert result.shortfall == Decimal("0")

    def test_result_carries_windows_and_source(self, engine):
        result = engine.compute(snapshot(version=7), NOW)
        assert result.source_version == 7
        assert result.computed_at == NOW
        assert result.week.contains(NOW)
        assert result.month.contains(NOW)


class TestRecompute:
    """Tests for ordering and staleness rules."""

    def test_applies_and_notifies(self, engine):
        seen = []
        engine.on_update(seen.append)
        result = engine.recompute(snapshot(incomes=[make_record("i", amount=10)]))
        assert engine.latest == result
        assert seen == [result]
        assert engine.applied_version == 1

    def test_older_snapshot_discarded(self, engine):
        engine.recompute(snapshot(incomes=[make_record("new", amount=10)], version=5))
        assert engine.recompute(snapshot(incomes=[make_record("old", amount=99)], version=4)) is None
        assert engine.latest.wallet_total == Decimal("10")

    def test_foreign_owner_discarded(self):
        engine = AggregateEngine(owner_id="alice", clock=lambda: NOW)
        assert engine.recompute(snapshot(owner_id="bob")) is None
        assert engine.latest is None

    def test_bound_engine_waits_for_both_kinds(self, engine):
        store = LedgerSnapshotStore("alice")
        engine.bind(store)
        store.apply_batch(SnapshotBatch(
            owner_id="alice",
            kind=RecordKind.EXPENSE,
            records=(expense("e", amount=50),),
        ))
        # Only expenses so far: no (negative) wallet total yet
        assert engine.latest is None
        store.apply_batch(SnapshotBatch(owner_id="alice", kind=RecordKind.INCOME))
        assert engine.latest.wallet_total == Decimal("-50")

    def test_delete_disappears_from_next_aggregate(self, store):
        store.seed(RecordKind.INCOME, "i1", {"owner_id": "alice", "amount": 100, "date": "2024-06-03"})
        store.seed(RecordKind.INCOME, "i2", {"owner_id": "alice", "amount": 40, "date": "2024-06-03"})
        snapshot_store = LedgerSnapshotStore("alice")
        engine = AggregateEngine(clock=lambda: NOW)
        engine.bind(snapshot_store)

        async def scenario():
            await snapshot_store.open(store)
            await settle()
            before = engine.latest.wallet_total
            await store.delete(RecordKind.INCOME, "alice", "i1")
            await settle()
            return before, engine.latest.wallet_total

        before, after = asyncio.run(scenario())
        assert before == Decimal("140")
        assert after == Decimal("40")


class TestDailyTotals:
    """Tests for per-day chart data."""

    def test_week_daily_totals(self, engine):
        data = snapshot(
            incomes=[
                make_record("a", amount=10, date="2024-06-03T08:00:00Z"),
                make_record("b", amount=5, date="2024-06-03T20:00:00Z"),
                make_record("old", amount=99, date="2024-05-01"),
            ],
            expenses=[expense("c", amount=3, date="2024-06-04")],
        )
        totals = engine.daily_totals(data, period="week")
        assert [t.day for t in totals] == [date(2024, 6, 3), date(2024, 6, 4)]
        assert totals[0].income == Decimal("15")
        assert totals[1].expense == Decimal("3")
        assert totals[1].net == Decimal("-3")

    def test_month_period(self, engine):
        data = snapshot(incomes=[make_record("a", amount=1, date="2024-06-28")])
        assert len(engine.daily_totals(data, period="month")) == 1
        assert engine.daily_totals(data, period="week") == []

    def test_unknown_period(self, engine):
        with pytest.raises(ValueError):
            engine.daily_totals(snapshot(), period="year")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
