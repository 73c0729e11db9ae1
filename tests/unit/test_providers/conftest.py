"""
In-memory stand-ins for the pymongo async API

Only the calls made by MongoDBClient are supported:
- client[db][collection], client.drop_database(), client.close()
- find_one / find(...).sort(...).to_list(None) / replace_one / update_one($set)
- filters on _id: equality or {"$regex": ..., "$options": "i"}
"""

import copy
import re

import pytest


def _matches(doc: dict, query: dict) -> bool:
    for field, condition in query.items():
        value = doc.get(field)
        if isinstance(condition, dict) and "$regex" in condition:
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            if value is None or not re.search(condition["$regex"], str(value), flags):
                return False
        elif value != condition:
            return False
    return True


def _project(doc: dict, projection: dict | None) -> dict:
    if not projection:
        return copy.deepcopy(doc)
    return {k: copy.deepcopy(v) for k, v in doc.items() if k == "_id" or projection.get(k)}


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self.docs = docs

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self.docs = sorted(self.docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length=None) -> list[dict]:
        return self.docs if length is None else self.docs[:length]


class FakeCollection:
    def __init__(self):
        self.docs: dict = {}

    def insert(self, doc: dict) -> None:
        """Test helper: store a raw document as-is"""
        self.docs[doc["_id"]] = copy.deepcopy(doc)

    async def find_one(self, query: dict, projection: dict | None = None) -> dict | None:
        for doc in self.docs.values():
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query: dict | None = None, projection: dict | None = None) -> FakeCursor:
        return FakeCursor(
            [_project(d, projection) for d in self.docs.values() if _matches(d, query or {})]
        )

    async def replace_one(self, query: dict, doc: dict, upsert: bool = False) -> None:
        for key, existing in self.docs.items():
            if _matches(existing, query):
                self.docs[key] = copy.deepcopy(doc)
                return
        if upsert:
            self.docs[doc["_id"]] = copy.deepcopy(doc)

    async def update_one(self, query: dict, update: dict, upsert: bool = False) -> None:
        for doc in self.docs.values():
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return
        if upsert:
            doc = {"_id": query["_id"]}
            doc.update(copy.deepcopy(update.get("$set", {})))
            self.docs[doc["_id"]] = doc


class FakeDatabase(dict):
    def __missing__(self, name: str) -> FakeCollection:
        collection = self[name] = FakeCollection()
        return collection


class FakeMongoClient:
    def __init__(self):
        self.databases: dict[str, FakeDatabase] = {}
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase())

    async def drop_database(self, name: str) -> None:
        self.databases.pop(name, None)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_mongo():
    return FakeMongoClient()
