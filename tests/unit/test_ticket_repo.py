"""Unit tests for ticket document mapping and reminder log writes"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pymongo.errors import PyMongoError

from ticket_reminders.domain.enums import DeliveryStatus, RuleKind, TicketStatus
from ticket_reminders.domain.errors import StoreError
from ticket_reminders.repositories.ticket_repo import TicketRepository, entry_to_document, ticket_from_document
from tests.fakes import T0, make_entry


class TestTicketFromDocument:
    def test_maps_stored_fields(self):
        ticket = ticket_from_document({
            "ticket_id": "TKT-7",
            "ticket_number": "T-7",
            "status": "pending",
            "sub_category_id": 12,
            "agency_id": "ag-1",
            "agency_date": datetime(2025, 3, 5, 10, 0),
            "created_at": T0,
            "reminder_log": [entry_to_document(make_entry())],
        })

        assert ticket.ticket_ref == "TKT-7"
        assert ticket.label == "T-7"
        assert ticket.status == TicketStatus.PENDING
        assert ticket.sub_category_id == "12"
        assert ticket.agency_visit_at == datetime(2025, 3, 5, 10, 0, tzinfo=timezone.utc)
        assert ticket.last_status_change_at == T0
        assert ticket.reminder_log[0].rule_kind == RuleKind.USER_REMINDER

    def test_last_reopen_starts_the_cycle(self):
        reopened = T0 + timedelta(days=2)
        ticket = ticket_from_document({
            "ticket_id": "TKT-8",
            "status": "PENDING",
            "created_at": T0,
            "reopened_history": [
                {"reopened_at": T0 + timedelta(days=1)},
                {"reopened_at": reopened},
            ],
        })

        assert ticket.last_status_change_at == reopened

    def test_explicit_status_change_wins(self):
        changed = T0 + timedelta(hours=5)
        ticket = ticket_from_document({
            "ticket_id": "TKT-9",
            "status": "PENDING",
            "created_at": T0,
            "last_status_change_at": changed,
        })

        assert ticket.last_status_change_at == changed


def test_entry_document_keeps_native_datetimes():
    doc = entry_to_document(make_entry(sent_at=T0))

    assert doc["sent_at"] == T0
    assert doc["rule_kind"] == "USER_REMINDER"
    assert doc["delivery_status"] == "SENT"


class FakeUpdateResult:
    def __init__(self, modified_count):
        self.modified_count = modified_count


class RecordingCollection:
    """Records update_one calls and answers with a scripted modified_count"""

    def __init__(self, modified_count=1, error=None):
        self.modified_count = modified_count
        self.error = error
        self.calls = []

    async def update_one(self, query, update):
        self.calls.append((query, update))
        if self.error:
            raise self.error
        return FakeUpdateResult(self.modified_count)


class DeliveryLogCollection:
    """One ticket document; applies the `$elemMatch` + positional `$set` used for callbacks"""

    def __init__(self, entries):
        self.doc = {"ticket_id": "TKT-1", "reminder_log": entries}

    async def update_one(self, query, update):
        match = query["reminder_log"]["$elemMatch"]
        for entry in self.doc["reminder_log"]:
            if (
                entry.get("message_id") == match["message_id"]
                and entry["delivery_status"] in match["delivery_status"]["$in"]
            ):
                for path, value in update["$set"].items():
                    entry[path.replace("reminder_log.$.", "")] = value
                return FakeUpdateResult(1)
        return FakeUpdateResult(0)


def _sent_entry(status):
    doc = entry_to_document(make_entry())
    doc["message_id"] = "wamid.1"
    doc["delivery_status"] = status
    return doc


class TestConditionalAppend:
    def setup_method(self):
        self.entry = make_entry(sent_at=T0 + timedelta(hours=12))
        self.cycle_start = T0

    def _append(self, collection, expected_count=0):
        repo = TicketRepository(collection)
        return asyncio.run(repo.append_reminder("TKT-1", self.entry, expected_count, self.cycle_start))

    def test_filter_guards_dedupe_key_and_cycle_count(self):
        collection = RecordingCollection()

        self._append(collection, expected_count=2)

        query, update = collection.calls[0]
        assert query["ticket_id"] == "TKT-1"
        assert query["reminder_log.dedupe_key"] == {"$ne": self.entry.dedupe_key}

        cycle_count, expected = query["$expr"]["$eq"]
        assert expected == 2
        conditions = cycle_count["$size"]["$filter"]["cond"]["$and"]
        assert {"$eq": ["$$e.rule_id", "rule-user"]} in conditions
        assert {"$gte": ["$$e.sent_at", self.cycle_start]} in conditions

        pushed = update["$push"]["reminder_log"]
        assert pushed["dedupe_key"] == self.entry.dedupe_key
        assert pushed["sent_at"] == T0 + timedelta(hours=12)

    def test_modified_document_means_appended(self):
        assert self._append(RecordingCollection(modified_count=1)) is True

    def test_unmodified_document_means_already_sent(self):
        assert self._append(RecordingCollection(modified_count=0)) is False

    def test_driver_error_becomes_store_error(self):
        with pytest.raises(StoreError):
            self._append(RecordingCollection(error=PyMongoError("connection reset")))


class TestDeliveryUpdates:
    def test_record_delivery_targets_our_entry(self):
        collection = RecordingCollection()
        repo = TicketRepository(collection)

        updated = asyncio.run(repo.record_delivery("TKT-1", "RLOG-1", DeliveryStatus.SENT, message_id="wamid.9"))

        query, update = collection.calls[0]
        assert updated is True
        assert query == {"ticket_id": "TKT-1", "reminder_log.entry_id": "RLOG-1"}
        assert update["$set"]["reminder_log.$.delivery_status"] == "SENT"
        assert update["$set"]["reminder_log.$.delivery_confirmed"] is True
        assert update["$set"]["reminder_log.$.message_id"] == "wamid.9"

    def test_callback_moves_status_forward(self):
        collection = DeliveryLogCollection([_sent_entry("SENT")])
        repo = TicketRepository(collection)

        updated = asyncio.run(repo.update_delivery_by_message_id("wamid.1", DeliveryStatus.DELIVERED))

        entry = collection.doc["reminder_log"][0]
        assert updated is True
        assert entry["delivery_status"] == "DELIVERED"
        assert entry["delivered_at"] is not None

    def test_late_sent_callback_does_not_downgrade_read(self):
        collection = DeliveryLogCollection([_sent_entry("READ")])
        repo = TicketRepository(collection)

        updated = asyncio.run(repo.update_delivery_by_message_id("wamid.1", DeliveryStatus.SENT))

        assert updated is False
        assert collection.doc["reminder_log"][0]["delivery_status"] == "READ"

    def test_failure_after_delivery_is_ignored(self):
        collection = DeliveryLogCollection([_sent_entry("DELIVERED")])
        repo = TicketRepository(collection)

        updated = asyncio.run(repo.update_delivery_by_message_id("wamid.1", DeliveryStatus.FAILED, "expired"))

        assert updated is False
        assert collection.doc["reminder_log"][0]["delivery_status"] == "DELIVERED"

    def test_failed_callback_records_reason(self):
        collection = DeliveryLogCollection([_sent_entry("SENT")])
        repo = TicketRepository(collection)

        asyncio.run(repo.update_delivery_by_message_id("wamid.1", DeliveryStatus.FAILED, "Number not on WhatsApp"))

        entry = collection.doc["reminder_log"][0]
        assert entry["delivery_status"] == "FAILED"
        assert entry["delivery_confirmed"] is False
        assert entry["failure_reason"] == "Number not on WhatsApp"

    def test_read_filter_accepts_earlier_statuses_only(self):
        collection = RecordingCollection()
        repo = TicketRepository(collection)

        asyncio.run(repo.update_delivery_by_message_id("wamid.1", DeliveryStatus.READ))

        query, _ = collection.calls[0]
        assert query["reminder_log"]["$elemMatch"]["delivery_status"] == {"$in": ["DELIVERED", "PENDING", "SENT"]}
