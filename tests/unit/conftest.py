"""
Global fixtures for all unit tests.

This conftest provides:
- autouse fixtures that prevent real MongoDB connections and isolate the
  environment from real connection strings
- in-memory collections (blocking and asyncio) that understand the subset of
  the MongoDB query language the repositories emit, so ordering, paging and
  update semantics can be asserted end to end

These fixtures apply automatically to ALL tests in tests/unit/.
"""

import copy
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Mapping, Optional
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import AutoReconnect, DuplicateKeyError, OperationFailure

# Set test environment BEFORE any imports so Config never sees a real URI
os.environ.pop("MONGODB_URI", None)

from mongo_data.repositories import MongoConnections, Model, reset_repositories  # noqa: E402


@pytest.fixture(autouse=True)
def mock_mongodb():
    """
    Prevent MongoDB connection attempts in all unit tests.

    MongoClient starts background monitors against localhost:27017 as soon as
    it is constructed; patch both client types where the provider uses them.
    """
    with patch("mongo_data.repositories.connection.MongoClient") as mock_client, \
            patch("mongo_data.repositories.connection.AsyncMongoClient") as mock_async_client:
        yield mock_client, mock_async_client
    MongoConnections._clients = {}
    MongoConnections._async_clients = {}


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Isolate tests from real connection settings."""
    for name in (
        "MONGODB_URI",
        "MONGODB_DATABASE",
        "MONGODB_COLLECTION",
        "MONGODB_SERVER_SELECTION_TIMEOUT_MS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_repositories()


# ===== In-memory collections =====

_MISSING = object()


def _get_path(document: Mapping[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _matches_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$eq" and value != operand:
                return False
            if op == "$ne" and value == operand:
                return False
            if op == "$gt" and (value is _MISSING or not value > operand):
                return False
            if op == "$gte" and (value is _MISSING or not value >= operand):
                return False
            if op == "$lt" and (value is _MISSING or not value < operand):
                return False
            if op == "$lte" and (value is _MISSING or not value <= operand):
                return False
            if op == "$in" and value not in operand:
                return False
            if op == "$nin" and value in operand:
                return False
            if op == "$exists" and (value is not _MISSING) != bool(operand):
                return False
        return True
    return value == condition


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Evaluate a filter document against a stored document."""
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, f) for f in condition):
                return False
        elif key == "$or":
            if not any(matches(document, f) for f in condition):
                return False
        elif not _matches_condition(_get_path(document, key), condition):
            return False
    return True


def _sort_key(value: Any):
    # Missing and None sort first, as in MongoDB
    if value is _MISSING or value is None:
        return (0, 0)
    return (1, value)


class FakeCursor:
    """Iterator over a snapshot of matching documents."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = iter(documents)

    def __iter__(self):
        return self

    def __next__(self):
        return next(self._documents)


class FakeAsyncCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents

    async def to_list(self, length: Optional[int] = None):
        if length:
            return list(self._documents[:length])
        return list(self._documents)


class FakeCollection:
    """
    In-memory stand-in for a pymongo Collection.

    Records every call in ``calls`` so tests can assert what was sent.
    """

    def __init__(self, name: str = "users", acknowledged: bool = True):
        self.name = name
        self.acknowledged = acknowledged
        self.documents: List[Dict[str, Any]] = []
        self.indexes: Dict[str, Any] = {"_id_": [("_id", 1)]}
        self.calls: List[tuple] = []

    def _result(self, **fields):
        return SimpleNamespace(acknowledged=self.acknowledged, **fields)

    def _select(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        sort: Optional[List[tuple]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        if skip < 0:
            raise ValueError("skip must be >= 0")
        selected = [copy.deepcopy(d) for d in self.documents if matches(d, filter or {})]
        for key, direction in reversed(sort or []):
            selected.sort(key=lambda d: _sort_key(_get_path(d, key)), reverse=direction == -1)
        selected = selected[skip:]
        if limit:
            selected = selected[:abs(limit)]
        if projection:
            selected = [self._project(d, projection) for d in selected]
        return selected

    @staticmethod
    def _project(document: Dict[str, Any], projection: Mapping[str, Any]) -> Dict[str, Any]:
        included = [k for k, v in projection.items() if v and k != "_id"]
        if included:
            projected = {k: document[k] for k in included if k in document}
            if projection.get("_id", 1):
                projected["_id"] = document["_id"]
            return projected
        return {k: v for k, v in document.items() if projection.get(k, 1)}

    def find(self, filter=None, projection=None, sort=None, skip=0, limit=0):
        self.calls.append(("find", filter, sort, skip, limit))
        return FakeCursor(self._select(filter, projection, sort, skip, limit))

    def insert_one(self, document):
        self.calls.append(("insert_one", document))
        if any(d["_id"] == document["_id"] for d in self.documents):
            raise DuplicateKeyError(f"E11000 duplicate key error: {document['_id']}")
        self.documents.append(copy.deepcopy(document))
        return self._result(inserted_id=document["_id"])

    def insert_many(self, documents):
        self.calls.append(("insert_many", documents))
        for document in documents:
            self.insert_one(document)
        return self._result(inserted_ids=[d["_id"] for d in documents])

    def replace_one(self, filter, replacement):
        self.calls.append(("replace_one", filter, replacement))
        for index, document in enumerate(self.documents):
            if matches(document, filter):
                stored = copy.deepcopy(replacement)
                stored["_id"] = document["_id"]
                self.documents[index] = stored
                return self._result(matched_count=1, modified_count=1)
        return self._result(matched_count=0, modified_count=0)

    def update_many(self, filter, update):
        self.calls.append(("update_many", filter, update))
        matched = [d for d in self.documents if matches(d, filter)]
        for document in matched:
            self._apply(document, update)
        return self._result(matched_count=len(matched), modified_count=len(matched))

    @staticmethod
    def _apply(document: Dict[str, Any], update: Mapping[str, Any]) -> None:
        for operator, fields in update.items():
            for key, value in fields.items():
                if operator == "$set":
                    document[key] = value
                elif operator == "$unset":
                    document.pop(key, None)
                elif operator == "$inc":
                    document[key] = document.get(key, 0) + value
                elif operator == "$push":
                    document.setdefault(key, []).append(value)
                elif operator == "$currentDate":
                    # Server time never repeats for one document
                    now = datetime.now(timezone.utc)
                    previous = document.get(key)
                    if isinstance(previous, datetime) and now <= previous:
                        now = previous + timedelta(microseconds=1)
                    document[key] = now
                else:
                    raise OperationFailure(f"Unknown modifier: {operator}")

    def delete_one(self, filter):
        self.calls.append(("delete_one", filter))
        for index, document in enumerate(self.documents):
            if matches(document, filter):
                del self.documents[index]
                return self._result(deleted_count=1)
        return self._result(deleted_count=0)

    def delete_many(self, filter):
        self.calls.append(("delete_many", filter))
        kept = [d for d in self.documents if not matches(d, filter)]
        deleted = len(self.documents) - len(kept)
        self.documents = kept
        return self._result(deleted_count=deleted)

    def count_documents(self, filter):
        self.calls.append(("count_documents", filter))
        return len(self._select(filter))

    def estimated_document_count(self, **options):
        self.calls.append(("estimated_document_count", options))
        return len(self.documents)

    def create_index(self, keys, **options):
        self.calls.append(("create_index", keys, options))
        if isinstance(keys, str):
            keys = [(keys, 1)]
        name = options.get("name") or "_".join(f"{k}_{d}" for k, d in keys)
        self.indexes[name] = keys
        return name

    def create_indexes(self, models):
        self.calls.append(("create_indexes", models))
        names = []
        for model in models:
            spec = model.document
            name = spec["name"]
            self.indexes[name] = list(spec["key"].items())
            names.append(name)
        return names

    def drop_index(self, name):
        self.calls.append(("drop_index", name))
        if name not in self.indexes:
            raise OperationFailure(f"index not found with name [{name}]")
        del self.indexes[name]

    def drop_indexes(self):
        self.calls.append(("drop_indexes",))
        self.indexes = {"_id_": [("_id", 1)]}


class FakeAsyncCollection:
    """asyncio stand-in sharing the same storage semantics as FakeCollection."""

    def __init__(self, name: str = "users", acknowledged: bool = True):
        self.sync = FakeCollection(name, acknowledged)
        self.name = name

    @property
    def documents(self):
        return self.sync.documents

    @property
    def calls(self):
        return self.sync.calls

    def find(self, filter=None, projection=None, sort=None, skip=0, limit=0):
        self.sync.calls.append(("find", filter, sort, skip, limit))
        return FakeAsyncCursor(self.sync._select(filter, projection, sort, skip, limit))

    def __getattr__(self, name):
        method = getattr(self.sync, name)

        async def call(*args, **kwargs):
            return method(*args, **kwargs)

        return call


class User(Model):
    """Entity used across repository tests."""

    __collection__ = "users"

    name: str
    age: int = 0
    email: Optional[str] = None


@pytest.fixture
def user_cls():
    return User


@pytest.fixture
def fake_collection():
    return FakeCollection("users")


@pytest.fixture
def fake_async_collection():
    return FakeAsyncCollection("users")


@pytest.fixture
def unacknowledged_collection():
    """Collection whose writes complete without a durability acknowledgment."""
    return FakeCollection("users", acknowledged=False)


def transient_error(message: str = "connection closed") -> AutoReconnect:
    """AutoReconnect chained from a socket failure, as pymongo raises it."""
    error = AutoReconnect(message)
    error.__cause__ = ConnectionResetError(104, "Connection reset by peer")
    return error


@pytest.fixture
def make_transient_error():
    return transient_error


@pytest.fixture
def mock_collection():
    """MagicMock collection for asserting exact calls and injecting failures."""
    collection = MagicMock()
    collection.name = "users"
    return collection
