"""
Pytest configuration for Mahallu API tests.

Provides an in-memory stand-in for the motor collections the managers use, so
tenant scoping, identifier allocation, member/user linkage and activity
records can be exercised without a running MongoDB.
"""

import asyncio
import copy
import os
import re
import sys
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-mahallu-api")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("LOKI_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


_MISSING = object()


def _lookup(document: Dict[str, Any], key: str) -> Any:
    value: Any = document
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        present = value is not _MISSING
        value = None if value is _MISSING else value
        for op, arg in condition.items():
            if op == "$ne":
                if value == arg:
                    return False
            elif op == "$in":
                if value not in arg:
                    return False
            elif op == "$nin":
                if value in arg:
                    return False
            elif op == "$exists":
                if present != bool(arg):
                    return False
            elif op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if not isinstance(value, str) or not re.search(arg, value, flags):
                    return False
            elif op == "$options":
                continue
            else:
                raise NotImplementedError(f"Unsupported query operator {op}")
        return True

    if value is _MISSING:
        return condition is None
    return value == condition


def matches(document: Dict[str, Any], filter_dict: Optional[Dict[str, Any]]) -> bool:
    for key, condition in (filter_dict or {}).items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif not _matches_condition(_lookup(document, key), condition):
            return False
    return True


def project(document: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    document = copy.deepcopy(document)
    if not projection:
        return document
    if all(not v for k, v in projection.items() if k != "_id"):
        return {k: v for k, v in document.items() if k not in projection or projection[k]}
    kept = {k: v for k, v in document.items() if projection.get(k)}
    if projection.get("_id", 1) and "_id" in document:
        kept["_id"] = document["_id"]
    return kept


def sort_documents(documents: List[Dict[str, Any]], sort: Any, direction: int = 1) -> List[Dict[str, Any]]:
    keys = [(sort, direction)] if isinstance(sort, str) else list(sort)
    result = list(documents)
    for key, key_direction in reversed(keys):
        present = [d for d in result if _lookup(d, key) not in (_MISSING, None)]
        absent = [d for d in result if _lookup(d, key) in (_MISSING, None)]
        present.sort(key=lambda d: _lookup(d, key), reverse=key_direction < 0)
        result = absent + present if key_direction > 0 else present + absent
    return result


def _set_path(document: Dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    target = document
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> None:
    for op, fields in update.items():
        for key, value in fields.items():
            current = _lookup(document, key)
            if op == "$set":
                _set_path(document, key, copy.deepcopy(value))
            elif op == "$inc":
                _set_path(document, key, (0 if current is _MISSING else current) + value)
            elif op == "$max":
                if current is _MISSING or value > current:
                    _set_path(document, key, value)
            elif op == "$unset":
                document.pop(key, None)
            else:
                raise NotImplementedError(f"Unsupported update operator {op}")


class FakeCursor:
    """Chainable cursor over a snapshot of matching documents."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction: int = 1):
        self._documents = sort_documents(self._documents, key_or_list, direction)
        return self

    def skip(self, count: int):
        self._skip = count
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    async def to_list(self, length: Optional[int] = None):
        await asyncio.sleep(0)
        documents = self._documents[self._skip:]
        if self._limit:
            documents = documents[: self._limit]
        if length:
            documents = documents[:length]
        return documents


class FakeCollection:
    """
    In-memory async collection with the subset of the motor API the
    application uses. Every operation yields to the event loop once before
    touching data, so concurrent callers interleave the way they would
    against a real server.
    """

    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self._failures: Dict[str, List[Exception]] = defaultdict(list)
        self.calls: Dict[str, int] = defaultdict(int)
        self.unique_indexes: List[Dict[str, Any]] = []

    def add_unique_index(self, keys: Any, options: Dict[str, Any]) -> None:
        fields = [keys] if isinstance(keys, str) else [key for key, _ in keys]
        self.unique_indexes.append(
            {
                "fields": fields,
                "sparse": options.get("sparse", False),
                "partial": options.get("partialFilterExpression"),
            }
        )

    def _check_unique(self, document: Dict[str, Any]) -> None:
        for index in self.unique_indexes:
            fields, partial = index["fields"], index["partial"]

            def indexed(doc):
                if partial and not matches(doc, partial):
                    return False
                return not (index["sparse"] and all(_lookup(doc, f) is _MISSING for f in fields))

            def key_of(doc):
                return tuple(None if _lookup(doc, f) is _MISSING else _lookup(doc, f) for f in fields)

            if not indexed(document):
                continue
            key = key_of(document)
            if any(indexed(other) and key_of(other) == key for other in self.documents):
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {self.name} index: {'_'.join(fields)}",
                    11000,
                    {"keyPattern": {f: 1 for f in fields}, "keyValue": dict(zip(fields, key))},
                )

    def fail_next(self, operation: str, exc: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``exc``."""
        self._failures[operation].extend([exc] * times)

    async def _enter(self, operation: str) -> None:
        await asyncio.sleep(0)
        self.calls[operation] += 1
        if self._failures[operation]:
            raise self._failures[operation].pop(0)

    def _first(self, filter_dict, sort=None) -> Optional[Dict[str, Any]]:
        candidates = [d for d in self.documents if matches(d, filter_dict)]
        if sort:
            candidates = sort_documents(candidates, sort)
        return candidates[0] if candidates else None

    async def find_one(self, filter_dict=None, projection=None, sort=None, **kwargs):
        await self._enter("find_one")
        document = self._first(filter_dict, sort)
        return project(document, projection) if document else None

    def find(self, filter_dict=None, projection=None, **kwargs):
        self.calls["find"] += 1
        return FakeCursor([project(d, projection) for d in self.documents if matches(d, filter_dict)])

    async def count_documents(self, filter_dict=None, **kwargs):
        await self._enter("count_documents")
        return sum(1 for d in self.documents if matches(d, filter_dict))

    async def insert_one(self, document, **kwargs):
        await self._enter("insert_one")
        document.setdefault("_id", ObjectId())
        if any(d["_id"] == document["_id"] for d in self.documents):
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}")
        self._check_unique(document)
        self.documents.append(copy.deepcopy(document))
        return InsertOneResult(document["_id"], True)

    def _upsert(self, filter_dict, update) -> Dict[str, Any]:
        document = {k: copy.deepcopy(v) for k, v in filter_dict.items() if not k.startswith("$") and not isinstance(v, dict)}
        document.setdefault("_id", ObjectId())
        apply_update(document, update)
        self.documents.append(document)
        return document

    async def update_one(self, filter_dict, update, upsert: bool = False, **kwargs):
        await self._enter("update_one")
        document = self._first(filter_dict)
        if document is None:
            if upsert:
                created = self._upsert(filter_dict, update)
                return UpdateResult({"n": 1, "nModified": 0, "upserted": created["_id"]}, True)
            return UpdateResult({"n": 0, "nModified": 0}, True)
        apply_update(document, update)
        return UpdateResult({"n": 1, "nModified": 1}, True)

    async def find_one_and_update(
        self, filter_dict, update, projection=None, return_document=ReturnDocument.BEFORE, upsert: bool = False, **kwargs
    ):
        await self._enter("find_one_and_update")
        document = self._first(filter_dict)
        if document is None:
            if not upsert:
                return None
            document = self._upsert(filter_dict, update)
            return project(document, projection) if return_document == ReturnDocument.AFTER else None
        before = project(document, projection)
        apply_update(document, update)
        return project(document, projection) if return_document == ReturnDocument.AFTER else before

    async def delete_one(self, filter_dict, **kwargs):
        await self._enter("delete_one")
        document = self._first(filter_dict)
        if document is None:
            return DeleteResult({"n": 0}, True)
        self.documents.remove(document)
        return DeleteResult({"n": 1}, True)

    def by_id(self, oid) -> Optional[Dict[str, Any]]:
        return next((d for d in self.documents if d["_id"] == oid), None)


class FakeDatabaseManager:
    """Stand-in for ``DatabaseManager`` handing out in-memory collections."""

    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def get_collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            from mahallu_api.database.manager import INDEX_SPECS

            collection = FakeCollection(name)
            for collection_name, keys, options in INDEX_SPECS:
                if collection_name == name and options.get("unique"):
                    collection.add_unique_index(keys, options)
            self.collections[name] = collection
        return self.collections[name]

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def fake_db():
    """Empty in-memory database."""
    return FakeDatabaseManager()


@pytest.fixture
def tenant_ids():
    """Two distinct tenant ids as strings."""
    return str(ObjectId()), str(ObjectId())


@pytest.fixture
def make_user(fake_db):
    """Insert a user document directly and return it."""

    def _make_user(role="mahall", tenant_id=None, **fields):
        user = {
            "_id": ObjectId(),
            "name": fields.pop("name", f"{role} user"),
            "phone": fields.pop("phone", str(ObjectId())[-10:]),
            "role": role,
            "tenantId": ObjectId(tenant_id) if tenant_id else None,
            "status": fields.pop("status", "active"),
            "isSuperAdmin": role == "super_admin",
            "permissions": {"view": True, "add": True, "edit": True, "delete": True},
        }
        user.update(fields)
        fake_db.get_collection("users").documents.append(user)
        return user

    return _make_user
