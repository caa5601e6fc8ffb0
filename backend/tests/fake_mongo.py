"""
backend/tests/fake_mongo.py

Purpose:
    In-memory stand-in for the subset of the motor API the services use:
    unique indexes, conditional updates with upsert, cursors, and sessions
    whose transactions roll back on error.

    Transactions are serialized by one lock per client, which models
    MongoDB's write-conflict behavior closely enough for race tests: the
    second of two conflicting transactions sees the first one's commit.
"""

from __future__ import annotations

import asyncio
import copy
from types import SimpleNamespace
from typing import Any, Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

_MISSING = object()


# ---------- Matching ----------

def _get(doc: dict, path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    for part in parts[:-1]:
        doc = doc.setdefault(part, {})
    doc[parts[-1]] = value


def _key_values(doc: dict, fields: list[str]) -> list:
    return [None if (value := _get(doc, f)) is _MISSING else value for f in fields]


def _is_operator_dict(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)


def _compare(value: Any, op: str, arg: Any) -> bool:
    present = value is not _MISSING
    plain = None if value is _MISSING else value
    if op == "$eq":
        return plain == arg
    if op == "$ne":
        return plain != arg
    if op == "$in":
        return plain in arg
    if op == "$nin":
        return plain not in arg
    if op == "$exists":
        return present == bool(arg)
    if not present or plain is None:
        return False
    if op == "$gte":
        return plain >= arg
    if op == "$gt":
        return plain > arg
    if op == "$lte":
        return plain <= arg
    if op == "$lt":
        return plain < arg
    raise NotImplementedError(f"Operator {op} not supported by the fake")


def matches(doc: dict, query: Optional[dict]) -> bool:
    for key, cond in (query or {}).items():
        if key == "$and":
            if not all(matches(doc, q) for q in cond):
                return False
            continue
        if key == "$or":
            if not any(matches(doc, q) for q in cond):
                return False
            continue
        value = _get(doc, key)
        if _is_operator_dict(cond):
            if not all(_compare(value, op, arg) for op, arg in cond.items()):
                return False
        elif (None if value is _MISSING else value) != cond:
            return False
    return True


def _apply_update(doc: dict, update: dict, *, inserting: bool) -> None:
    for op, fields in update.items():
        if op == "$set":
            for path, value in fields.items():
                _set(doc, path, copy.deepcopy(value))
        elif op == "$setOnInsert":
            if inserting:
                for path, value in fields.items():
                    _set(doc, path, copy.deepcopy(value))
        elif op == "$inc":
            for path, value in fields.items():
                current = _get(doc, path)
                _set(doc, path, (0 if current is _MISSING else current) + value)
        elif op == "$unset":
            for path in fields:
                parts = path.split(".")
                target = doc
                for part in parts[:-1]:
                    target = target.get(part, {})
                target.pop(parts[-1], None)
        else:
            raise NotImplementedError(f"Update operator {op} not supported by the fake")


def _project(doc: dict, projection: Optional[dict]) -> dict:
    if not projection:
        return copy.deepcopy(doc)
    include = {k for k, v in projection.items() if v}
    out = {k: copy.deepcopy(v) for k, v in doc.items() if k in include}
    if projection.get("_id", 1) and "_id" in doc:
        out["_id"] = doc["_id"]
    return out


def _sort_key(field: str):
    def key(doc: dict):
        value = _get(doc, field)
        return (value is _MISSING or value is None, None if value is _MISSING else value)
    return key


def _sort_docs(docs: list[dict], spec) -> list[dict]:
    if isinstance(spec, str):
        spec = [(spec, 1)]
    for field, direction in reversed(list(spec)):
        docs = sorted(docs, key=_sort_key(field), reverse=direction < 0)
    return docs


# ---------- Cursor / collection ----------

class FakeCursor:
    def __init__(self, docs: list[dict], projection: Optional[dict] = None):
        self._docs = docs
        self._projection = projection
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction: int = 1):
        spec = [(key_or_list, direction)] if isinstance(key_or_list, str) else key_or_list
        self._docs = _sort_docs(self._docs, spec)
        return self

    def skip(self, value: int):
        self._skip = value
        return self

    def limit(self, value: int):
        self._limit = value
        return self

    async def to_list(self, length: Optional[int] = None):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        if length:
            docs = docs[:length]
        return [_project(d, self._projection) for d in docs]


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []
        self.unique_indexes: list[tuple[list[str], bool]] = []

    # -- indexes --

    async def create_index(self, keys, unique: bool = False, sparse: bool = False, **_kwargs):
        fields = [keys] if isinstance(keys, str) else [k for k, _ in keys]
        if unique:
            spec = (fields, sparse)
            if spec not in self.unique_indexes:
                self.unique_indexes.append(spec)
        return "_".join(fields)

    def _check_unique(self, candidate: dict, ignore: Optional[dict] = None) -> None:
        for other in self.docs:
            if other is ignore:
                continue
            if other.get("_id") == candidate.get("_id"):
                raise DuplicateKeyError(f"E11000 duplicate key {self.name} _id", 11000)
            for fields, sparse in self.unique_indexes:
                values = [_get(candidate, f) for f in fields]
                if sparse and all(v is _MISSING for v in values):
                    continue
                norm = _key_values(candidate, fields)
                if norm == _key_values(other, fields):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key {self.name} {dict(zip(fields, norm))}", 11000,
                    )

    # -- reads --

    async def find_one(self, filter: Optional[dict] = None, projection: Optional[dict] = None,
                       *, session=None, sort=None, **_kwargs):
        docs = [d for d in self.docs if matches(d, filter)]
        if sort:
            docs = _sort_docs(docs, sort)
        return _project(docs[0], projection) if docs else None

    def find(self, filter: Optional[dict] = None, projection: Optional[dict] = None,
             *, session=None, **_kwargs) -> FakeCursor:
        return FakeCursor([d for d in self.docs if matches(d, filter)], projection)

    async def count_documents(self, filter: Optional[dict] = None, *, session=None, **_kwargs) -> int:
        return sum(1 for d in self.docs if matches(d, filter))

    # -- writes --

    async def insert_one(self, document: dict, *, session=None, **_kwargs):
        if "_id" not in document:
            document["_id"] = ObjectId()
        stored = copy.deepcopy(document)
        self._check_unique(stored)
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def insert_many(self, documents: list[dict], *, session=None, **_kwargs):
        ids = []
        for document in documents:
            result = await self.insert_one(document)
            ids.append(result.inserted_id)
        return SimpleNamespace(inserted_ids=ids, acknowledged=True)

    def _upsert_doc(self, filter: dict, update: dict) -> dict:
        doc = {
            k: copy.deepcopy(v)
            for k, v in (filter or {}).items()
            if not k.startswith("$") and not _is_operator_dict(v)
        }
        doc.setdefault("_id", ObjectId())
        _apply_update(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return doc

    def _update_in_place(self, doc: dict, update: dict) -> None:
        updated = copy.deepcopy(doc)
        _apply_update(updated, update, inserting=False)
        self._check_unique(updated, ignore=doc)
        doc.clear()
        doc.update(updated)

    async def update_one(self, filter: dict, update: dict, upsert: bool = False,
                         *, session=None, **_kwargs):
        for doc in self.docs:
            if matches(doc, filter):
                before = copy.deepcopy(doc)
                self._update_in_place(doc, update)
                return SimpleNamespace(
                    matched_count=1, modified_count=int(before != doc), upserted_id=None,
                )
        if upsert:
            doc = self._upsert_doc(filter, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, filter: dict, update: dict, upsert: bool = False,
                          *, session=None, **_kwargs):
        matched = [d for d in self.docs if matches(d, filter)]
        for doc in matched:
            self._update_in_place(doc, update)
        if not matched and upsert:
            doc = self._upsert_doc(filter, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched), upserted_id=None)

    async def find_one_and_update(self, filter: dict, update: dict, projection=None, sort=None,
                                  upsert: bool = False, return_document=False,
                                  *, session=None, **_kwargs):
        docs = [d for d in self.docs if matches(d, filter)]
        if sort:
            docs = _sort_docs(docs, sort)
        if docs:
            doc = docs[0]
            before = _project(doc, projection)
            self._update_in_place(doc, update)
            return _project(doc, projection) if return_document else before
        if upsert:
            doc = self._upsert_doc(filter, update)
            return _project(doc, projection) if return_document else None
        return None

    async def delete_many(self, filter: dict, *, session=None, **_kwargs):
        keep = [d for d in self.docs if not matches(d, filter)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return SimpleNamespace(deleted_count=deleted)


# ---------- Database / client / session ----------

class FakeDatabase:
    def __init__(self):
        self._collections: dict[str, FakeCollection] = {}

    def __getattr__(self, name: str) -> FakeCollection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    async def command(self, name: str, *_args, **_kwargs):
        if name == "ping":
            return {"ok": 1.0}
        raise NotImplementedError(name)

    def snapshot(self) -> dict[str, list[dict]]:
        return {name: copy.deepcopy(c.docs) for name, c in self._collections.items()}

    def restore(self, snapshot: dict[str, list[dict]]) -> None:
        for name, coll in self._collections.items():
            coll.docs = snapshot.get(name, [])


class FakeSession:
    def __init__(self, client: "FakeMongoClient"):
        self._client = client

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def with_transaction(self, callback, read_concern=None, write_concern=None,
                               read_preference=None, max_commit_time_ms=None):
        async with self._client.transaction_lock:
            self._client.transactions_started += 1
            snapshot = self._client.database.snapshot()
            try:
                return await callback(self)
            except BaseException:
                self._client.database.restore(snapshot)
                self._client.transactions_aborted += 1
                raise


class FakeMongoClient:
    def __init__(self):
        self.database = FakeDatabase()
        self.transaction_lock = asyncio.Lock()
        self.transactions_started = 0
        self.transactions_aborted = 0

    async def start_session(self, **_kwargs) -> FakeSession:
        return FakeSession(self)

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.database

    def close(self) -> None:
        pass
