"""MongoDB access: one thin adapter per collection plus a Store grouping them.

Each adapter call is a single pymongo operation, so it is atomic on its own.
Nothing spans two calls; callers that need several writes order them
themselves (see relations.py). Every pymongo failure surfaces as StorageError.
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import get_settings
from errors import InvalidInputError, StorageError

logger = logging.getLogger(__name__)

PRIVATE_FIELDS = ("password_hash",)


def parse_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    # ObjectId(None) mints a fresh id, so only hex strings get through
    if not isinstance(value, str):
        raise InvalidInputError(f"Invalid {label}", field=label)
    try:
        return ObjectId(value)
    except InvalidId:
        raise InvalidInputError(f"Invalid {label}", field=label)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return serialize_doc(value)
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a stored document JSON-friendly. Password hashes never leave."""
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = _serialize_value(doc.pop("_id"))
    for field in PRIVATE_FIELDS:
        doc.pop(field, None)
    for k, v in list(doc.items()):
        doc[k] = _serialize_value(v)
    return doc


class DocumentCollection:
    """CRUD and reference-list operations over one collection."""

    def __init__(self, collection, name: Optional[str] = None):
        self._collection = collection
        self.name = name or collection.name

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except PyMongoError as e:
            logger.error(f"Mongo {operation} on {self.name} failed: {e}")
            raise StorageError(operation, self.name) from e

    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._guard("find_one"):
            return self._collection.find_one(filter)

    def find_by_id(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        oid = parse_object_id(doc_id)
        with self._guard("find_by_id"):
            return self._collection.find_one({"_id": oid})

    def find_many(self, filter: Optional[Dict[str, Any]] = None, skip: int = 0, limit: int = 0) -> List[Dict[str, Any]]:
        with self._guard("find"):
            cursor = self._collection.find(filter or {})
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)

    def create(self, doc: Dict[str, Any]) -> ObjectId:
        with self._guard("insert"):
            result = self._collection.insert_one(dict(doc))
        return result.inserted_id

    def update_fields(self, doc_id: Any, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """$set the given fields; returns the updated document or None if absent."""
        oid = parse_object_id(doc_id)
        with self._guard("update"):
            return self._collection.find_one_and_update(
                {"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER,
            )

    def push_ref(self, doc_id: Any, field: str, ref: ObjectId) -> bool:
        """Append ref to the array field. False if the document is gone."""
        oid = parse_object_id(doc_id)
        with self._guard("push"):
            result = self._collection.update_one({"_id": oid}, {"$push": {field: ref}})
        return result.matched_count == 1

    def pull_ref(self, doc_id: Any, field: str, ref: ObjectId) -> bool:
        """Remove ref from the array field only if it is currently there.

        $pull drops every copy of ref. attach never pushes the same id twice,
        so in practice this is the single occurrence.
        """
        oid = parse_object_id(doc_id)
        with self._guard("pull"):
            result = self._collection.update_one(
                {"_id": oid, field: ref}, {"$pull": {field: ref}},
            )
        return result.modified_count == 1

    def delete_by_id(self, doc_id: Any) -> Optional[Dict[str, Any]]:
        oid = parse_object_id(doc_id)
        with self._guard("delete"):
            return self._collection.find_one_and_delete({"_id": oid})

    def delete_all(self, filter: Optional[Dict[str, Any]] = None) -> int:
        with self._guard("delete_many"):
            result = self._collection.delete_many(filter or {})
        return result.deleted_count

    def populate(self, doc: Dict[str, Any], field: str, children: "DocumentCollection") -> Dict[str, Any]:
        """Return a copy of doc with its reference list replaced by the referenced documents.

        Reference order is kept. Ids with no document behind them are dropped.
        """
        refs = doc.get(field) or []
        with children._guard("populate"):
            found = {d["_id"]: d for d in children._collection.find({"_id": {"$in": list(refs)}})}
        hydrated = []
        for ref in refs:
            child = found.get(ref)
            if child is None:
                logger.warning(
                    f"Dangling reference {ref} in {self.name}.{field}",
                    extra={"path": f"{self.name}/{doc.get('_id')}"},
                )
                continue
            hydrated.append(child)
        populated = dict(doc)
        populated[field] = hydrated
        return populated

    def ping(self) -> bool:
        with self._guard("ping"):
            self._collection.database.command("ping")
        return True


class Store:
    """The four collections the API works with."""

    def __init__(self, db: Database):
        self.db = db
        self.customers = DocumentCollection(db["customers"], "customers")
        self.orders = DocumentCollection(db["orders"], "orders")
        self.items = DocumentCollection(db["items"], "items")
        self.reviews = DocumentCollection(db["reviews"], "reviews")


@lru_cache
def get_database() -> Database:
    settings = get_settings()
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def get_store() -> Store:
    """FastAPI dependency."""
    return Store(get_database())
