"""Unit tests for recipient phone lookups"""
import asyncio

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from ticket_reminders.domain.enums import RecipientType
from ticket_reminders.domain.errors import StoreError
from ticket_reminders.repositories.contact_repo import ContactRepository


class FakeCollection:
    def __init__(self, doc=None, error=None):
        self.doc = doc
        self.error = error
        self.queries = []

    async def find_one(self, query, projection=None):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.doc


class TestContactRepository:
    def test_user_phone_by_user_id(self):
        users = FakeCollection({"phone": 919876543210})
        repo = ContactRepository(users=users, agencies=FakeCollection())

        phone = asyncio.run(repo.get_phone(RecipientType.USER, "u-42"))

        assert phone == "919876543210"
        assert users.queries == [{"$or": [{"user_id": "u-42"}, {"_id": "u-42"}]}]

    def test_object_id_refs_also_match_mongo_ids(self):
        oid = ObjectId()
        agencies = FakeCollection({"phone": "+91 98765 43210"})
        repo = ContactRepository(users=FakeCollection(), agencies=agencies)

        asyncio.run(repo.get_phone(RecipientType.AGENCY, str(oid)))

        query = agencies.queries[0]
        assert {"_id": oid} in query["$or"]
        assert query["is_active"] == {"$ne": False}

    def test_missing_phone_returns_none(self):
        repo = ContactRepository(users=FakeCollection({"name": "No Phone"}), agencies=FakeCollection())

        assert asyncio.run(repo.get_phone(RecipientType.USER, "u-1")) is None

    def test_unknown_recipient_returns_none(self):
        repo = ContactRepository(users=FakeCollection(), agencies=FakeCollection())

        assert asyncio.run(repo.get_phone(RecipientType.AGENCY, "ag-404")) is None

    def test_driver_error_becomes_store_error(self):
        repo = ContactRepository(users=FakeCollection(error=PyMongoError("down")), agencies=FakeCollection())

        with pytest.raises(StoreError):
            asyncio.run(repo.get_phone(RecipientType.USER, "u-1"))
