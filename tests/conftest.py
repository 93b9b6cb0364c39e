"""Shared fixtures for the Ledgerflow test suite."""

import asyncio
from datetime import datetime, timezone

import pytest

from ledgerflow.config import LedgerSettings
from ledgerflow.models.record import Record, RecordKind
from ledgerflow.services.storage import InMemoryAuditStorage, InMemoryRecordStore


# Wednesday; with a Monday week start the week is 2024-06-03 .. 2024-06-10
NOW = datetime(2024, 6, 5, 12, 0, tzinfo=timezone.utc)


async def settle(rounds: int = 5) -> None:
    """Let scheduled subscription emissions run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_record(
    record_id: str,
    kind: RecordKind = RecordKind.INCOME,
    amount="10",
    date="2024-06-03T09:00:00Z",
    owner_id: str = "alice",
    **extra,
) -> Record:
    return Record.from_document(
        kind,
        record_id,
        dict({"owner_id": owner_id, "name": record_id, "amount": amount, "date": date}, **extra),
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        week_start=0,
        timezone="UTC",
        page_size=5,
        projection_days=7,
        max_reasonable_amount=10_000,
        future_date_tolerance_days=30,
    )
