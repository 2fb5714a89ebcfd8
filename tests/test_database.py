"""Document store adapter: id parsing, serialization, populate."""

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from database import DocumentCollection, Store, parse_object_id, serialize_doc
from errors import InvalidInputError, StorageError


@pytest.fixture
def store():
    return Store(mongomock.MongoClient()["database_test"])


def test_parse_object_id_rejects_garbage():
    with pytest.raises(InvalidInputError):
        parse_object_id("123")
    with pytest.raises(InvalidInputError):
        parse_object_id(None)
    with pytest.raises(InvalidInputError):
        parse_object_id(12345)


def test_parse_object_id_accepts_hex_and_object_ids():
    oid = ObjectId()
    assert parse_object_id(str(oid)) == oid
    assert parse_object_id(oid) is oid


def test_serialize_doc_renames_id_and_hides_password():
    oid, ref = ObjectId(), ObjectId()
    doc = serialize_doc({"_id": oid, "password_hash": "x", "orders": [ref], "name": "Ada"})
    assert doc == {"id": str(oid), "orders": [str(ref)], "name": "Ada"}


def test_serialize_doc_passes_empty_through():
    assert serialize_doc(None) is None
    assert serialize_doc({}) == {}


def test_update_fields_returns_updated_document(store):
    oid = store.items.create({"name": "Lamp", "price": 1.0})
    updated = store.items.update_fields(oid, {"price": 2.0})
    assert updated["price"] == 2.0
    assert store.items.update_fields(ObjectId(), {"price": 3.0}) is None


def test_pull_ref_only_when_present(store):
    ref = ObjectId()
    oid = store.items.create({"name": "Lamp", "reviews": [ref]})
    assert not store.items.pull_ref(oid, "reviews", ObjectId())
    assert store.items.pull_ref(oid, "reviews", ref)
    assert store.items.find_by_id(oid)["reviews"] == []


def test_populate_keeps_reference_order(store):
    first = store.reviews.create({"rating": 1, "comment": "a"})
    second = store.reviews.create({"rating": 2, "comment": "b"})
    oid = store.items.create({"name": "Lamp", "reviews": [second, first]})

    populated = store.items.populate(store.items.find_by_id(oid), "reviews", store.reviews)

    assert [r["comment"] for r in populated["reviews"]] == ["b", "a"]


def test_delete_all_counts(store):
    store.items.create({"name": "a"})
    store.items.create({"name": "b"})
    assert store.items.delete_all() == 2
    assert store.items.find_many() == []


def test_find_many_paginates(store):
    for i in range(5):
        store.customers.create({"email": f"{i}@b.com"})
    page = store.customers.find_many(skip=3, limit=3)
    assert [c["email"] for c in page] == ["3@b.com", "4@b.com"]


def test_pymongo_failures_become_storage_errors():
    class _Broken:
        name = "broken"

        def find_one(self, *args, **kwargs):
            raise ServerSelectionTimeoutError("no server")

    with pytest.raises(StorageError):
        DocumentCollection(_Broken()).find_one({})
