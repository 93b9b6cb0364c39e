"""Tests for the record store adapters."""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from ledgerflow.models.audit import AuditEventBuilder
from ledgerflow.models.record import PageCursor, RecordKind
from ledgerflow.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsRecordStore,
    NotFoundError,
    StorageError,
    paginate,
)
from ledgerflow.services.storage.google_sheets import AUDIT_COLUMNS, RECORD_COLUMNS

from conftest import make_record, settle


class TestPaginate:
    """Tests for the shared page cutter."""

    def test_pages_continue_strictly_after_cursor(self):
        same = "2024-06-02T00:00:00Z"
        records = [
            make_record("a", date=same),
            make_record("b", date=same),
            make_record("c", date="2024-06-01"),
            make_record("d", date="2024-06-03"),
        ]
        first = paginate(records, None, 2)
        assert [r.id for r in first.records] == ["d", "a"]
        assert first.next_cursor == PageCursor(date=first.records[-1].date, id="a")

        second = paginate(records, first.next_cursor, 2)
        assert [r.id for r in second.records] == ["b", "c"]

        third = paginate(records, second.next_cursor, 2)
        assert third.records == ()
        assert third.next_cursor is None


class TestInMemoryRecordStore:
    """Tests for InMemoryRecordStore."""

    def test_subscribe_emits_current_set_then_updates(self, store):
        store.seed(RecordKind.INCOME, "i1", {"owner_id": "alice", "amount": "5", "date": "2024-06-01"})
        store.seed(RecordKind.INCOME, "other", {"owner_id": "bob", "amount": "5", "date": "2024-06-01"})
        batches = []

        async def scenario():
            subscription = await store.subscribe(RecordKind.INCOME, "alice", batches.append)
            await settle()
            await store.insert(RecordKind.INCOME, "alice", {"name": "new", "amount": 1, "date": "2024-06-02"})
            await settle()
            subscription.unsubscribe()
            await store.insert(RecordKind.INCOME, "alice", {"name": "unseen", "amount": 1})
            await settle()

        asyncio.run(scenario())
        assert [len(b.records) for b in batches] == [1, 2]
        assert all(b.owner_id == "alice" for b in batches)

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(store.update_fields(RecordKind.EXPENSE, "alice", "ghost", {"name": "x"}))

    def test_delete_missing_returns_false(self, store):
        assert asyncio.run(store.delete(RecordKind.EXPENSE, "alice", "ghost")) is False

    def test_writes_scoped_to_owner(self, store):
        store.seed(RecordKind.INCOME, "bob1", {"owner_id": "bob", "name": "Pay", "amount": "5"})
        with pytest.raises(NotFoundError):
            asyncio.run(store.update_fields(RecordKind.INCOME, "alice", "bob1", {"name": "x"}))
        assert asyncio.run(store.delete(RecordKind.INCOME, "alice", "bob1")) is False
        assert store.documents(RecordKind.INCOME)["bob1"]["name"] == "Pay"

    def test_malformed_documents_still_observed(self, store):
        store.seed(RecordKind.EXPENSE, "bad", {"owner_id": "alice", "amount": "??", "date": "2024-06-01"})
        page = asyncio.run(store.fetch_page(RecordKind.EXPENSE, "alice", None, 5))
        assert page.records[0].amount is None


def sheet_with(rows):
    sheet = MagicMock()
    sheet.get_all_values.return_value = [list(RECORD_COLUMNS)] + rows
    return sheet


def row(record_id, owner="alice", amount="10", date="2024-06-01T00:00:00+00:00", name="x"):
    values = {"id": record_id, "owner_id": owner, "name": name, "amount": amount, "date": date}
    return [values.get(column, "") for column in RECORD_COLUMNS]


@pytest.fixture
def sheets_client():
    return MagicMock()


class TestGoogleSheetsRecordStore:
    """Tests for GoogleSheetsRecordStore with a mocked client."""

    def test_fetch_page_parses_rows(self, sheets_client):
        sheets_client.get_kind_sheet.return_value = sheet_with([
            row("i1", date="2024-06-01T00:00:00+00:00"),
            [],
            row("i2", owner="bob"),
            row("i3", amount="garbage", date="2024-06-02T00:00:00+00:00"),
            ["i4", "alice"],
        ])
        store = GoogleSheetsRecordStore(sheets_client)

        page = asyncio.run(store.fetch_page(RecordKind.INCOME, "alice", None, 10))

        assert [r.id for r in page.records] == ["i3", "i1"]
        assert page.records[0].amount is None
        assert page.records[1].amount == Decimal("10")

    def test_fetch_failure_wrapped(self, sheets_client):
        sheets_client.get_kind_sheet.side_effect = RuntimeError("quota exceeded")
        store = GoogleSheetsRecordStore(sheets_client)
        with pytest.raises(StorageError):
            asyncio.run(store.fetch_page(RecordKind.INCOME, "alice", None, 5))

    def test_insert_appends_row(self, sheets_client):
        sheet = sheet_with([])
        sheets_client.get_kind_sheet.return_value = sheet
        store = GoogleSheetsRecordStore(sheets_client)

        record_id = asyncio.run(store.insert(
            RecordKind.EXPENSE,
            "alice",
            {"name": "Lunch", "amount": Decimal("12.50")},
        ))

        appended = sheet.append_row.call_args[0][0]
        assert appended[RECORD_COLUMNS.index("id")] == record_id
        assert appended[RECORD_COLUMNS.index("owner_id")] == "alice"
        assert appended[RECORD_COLUMNS.index("amount")] == "12.50"
        assert appended[RECORD_COLUMNS.index("notes")] == ""

    def test_update_touches_only_supplied_cells(self, sheets_client):
        sheet = sheet_with([row("i1"), row("i2")])
        sheets_client.get_kind_sheet.return_value = sheet
        store = GoogleSheetsRecordStore(sheets_client)

        asyncio.run(store.update_fields(RecordKind.INCOME, "alice", "i2", {"name": "Bonus"}))

        sheet.update_cell.assert_called_once_with(3, RECORD_COLUMNS.index("name") + 1, "Bonus")

    def test_update_unknown_column(self, sheets_client):
        store = GoogleSheetsRecordStore(sheets_client)
        with pytest.raises(StorageError):
            asyncio.run(store.update_fields(RecordKind.INCOME, "alice", "i1", {"colour": "red"}))

    def test_update_missing_record(self, sheets_client):
        sheets_client.get_kind_sheet.return_value = sheet_with([row("i1")])
        store = GoogleSheetsRecordStore(sheets_client)
        with pytest.raises(NotFoundError):
            asyncio.run(store.update_fields(RecordKind.INCOME, "alice", "ghost", {"name": "x"}))

    def test_delete(self, sheets_client):
        sheet = sheet_with([row("i1"), row("i2")])
        sheets_client.get_kind_sheet.return_value = sheet
        store = GoogleSheetsRecordStore(sheets_client)

        assert asyncio.run(store.delete(RecordKind.INCOME, "alice", "i1")) is True
        sheet.delete_rows.assert_called_once_with(2)
        assert asyncio.run(store.delete(RecordKind.INCOME, "alice", "ghost")) is False

    def test_other_owners_row_is_not_found(self, sheets_client):
        sheet = sheet_with([row("b1", owner="bob")])
        sheets_client.get_kind_sheet.return_value = sheet
        store = GoogleSheetsRecordStore(sheets_client)

        with pytest.raises(NotFoundError):
            asyncio.run(store.update_fields(RecordKind.INCOME, "alice", "b1", {"name": "x"}))
        assert asyncio.run(store.delete(RecordKind.INCOME, "alice", "b1")) is False
        sheet.update_cell.assert_not_called()
        sheet.delete_rows.assert_not_called()

    def test_subscribers_get_snapshot_after_write(self, sheets_client):
        sheet = sheet_with([row("i1")])
        sheets_client.get_kind_sheet.return_value = sheet
        store = GoogleSheetsRecordStore(sheets_client)
        batches = []

        async def scenario():
            await store.subscribe(RecordKind.INCOME, "alice", batches.append)
            await settle()
            sheet.get_all_values.return_value = [list(RECORD_COLUMNS), row("i1"), row("i2")]
            await store.insert(RecordKind.INCOME, "alice", {"name": "x", "amount": 1})
            await settle()

        asyncio.run(scenario())
        assert [[r.id for r in b.records] for b in batches] == [["i1"], ["i1", "i2"]]

    def test_subscribe_load_failure_reported(self, sheets_client):
        sheets_client.get_kind_sheet.side_effect = RuntimeError("offline")
        store = GoogleSheetsRecordStore(sheets_client)
        errors = []

        async def scenario():
            await store.subscribe(
                RecordKind.EXPENSE,
                "alice",
                on_snapshot=lambda batch: None,
                on_error=lambda kind, error: errors.append((kind, error)),
            )
            await settle()

        asyncio.run(scenario())
        assert errors[0][0] == RecordKind.EXPENSE
        assert isinstance(errors[0][1], StorageError)


class TestGoogleSheetsAuditStorage:
    """Tests for GoogleSheetsAuditStorage with a mocked client."""

    def test_append_event(self, sheets_client):
        sheet = MagicMock()
        sheets_client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(sheets_client)
        event = AuditEventBuilder.session_started("alice", uuid4())

        assert asyncio.run(storage.append_event(event)) is True
        assert len(sheet.append_row.call_args[0][0]) == len(AUDIT_COLUMNS)

    def test_append_failure_does_not_raise(self, sheets_client):
        sheet = MagicMock()
        sheet.append_row.side_effect = RuntimeError("quota exceeded")
        sheets_client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(sheets_client)

        assert asyncio.run(storage.append_event(AuditEventBuilder.session_started("alice", uuid4()))) is False

    def test_events_round_trip_through_rows(self, sheets_client):
        correlation_id = uuid4()
        started = AuditEventBuilder.session_started("alice", correlation_id)
        ended = AuditEventBuilder.session_ended("alice", correlation_id, reason="logout").model_copy(
            update={"timestamp": started.timestamp + timedelta(seconds=1)}
        )
        sheet = MagicMock()
        sheet.get_all_values.return_value = [
            list(AUDIT_COLUMNS),
            ended.to_sheets_row(),
            ["not-a-uuid"],
            started.to_sheets_row(),
        ]
        sheets_client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(sheets_client)

        events = asyncio.run(storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_id for e in events] == [started.event_id, ended.event_id]
        assert events[1].details == {"reason": "logout"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
