import copy
import re

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from backend import database


def _get(doc, dotted):
    value = doc
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _set(doc, dotted, value):
    parts = dotted.split(".")
    for part in parts[:-1]:
        doc = doc.setdefault(part, {})
    doc[parts[-1]] = value


def _match_value(value, condition):
    if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
        for op, arg in condition.items():
            if op == "$gte" and not (value is not None and value >= arg):
                return False
            if op == "$lt" and not (value is not None and value < arg):
                return False
            if op == "$regex":
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                candidates = value if isinstance(value, list) else [value]
                if not any(isinstance(c, str) and re.search(arg, c, flags) for c in candidates):
                    return False
        return True
    return value == condition


def _matches(doc, filter_dict):
    for key, condition in filter_dict.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in condition):
                return False
        elif not _match_value(_get(doc, key), condition):
            return False
    return True


class _Result:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, keys):
        for key, direction in reversed(keys):
            self._docs.sort(key=lambda d: (_get(d, key) is not None, _get(d, key)), reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """In-memory stand-in for the handful of Motor collection calls the app makes."""

    def __init__(self, unique=()):
        self.docs = []
        self.unique = unique

    def _check_unique(self, doc, ignore_id=None):
        for field in self.unique:
            value = _get(doc, field)
            if value is None:
                continue
            for other in self.docs:
                if other["_id"] != ignore_id and _get(other, field) == value:
                    raise DuplicateKeyError(f"E11000 duplicate key error: {field} {value!r}")

    async def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(doc)
        return _Result(inserted_id=doc["_id"])

    async def find_one(self, filter_dict):
        for doc in self.docs:
            if _matches(doc, filter_dict):
                return copy.deepcopy(doc)
        return None

    async def replace_one(self, filter_dict, replacement):
        for i, doc in enumerate(self.docs):
            if _matches(doc, filter_dict):
                new_doc = copy.deepcopy(replacement)
                new_doc["_id"] = doc["_id"]
                self._check_unique(new_doc, ignore_id=doc["_id"])
                self.docs[i] = new_doc
                return _Result(matched_count=1, modified_count=1)
        return _Result(matched_count=0, modified_count=0)

    async def find_one_and_update(self, filter_dict, update, return_document=ReturnDocument.BEFORE):
        for doc in self.docs:
            if _matches(doc, filter_dict):
                before = copy.deepcopy(doc)
                for key, amount in update.get("$inc", {}).items():
                    _set(doc, key, (_get(doc, key) or 0) + amount)
                for key, value in update.get("$set", {}).items():
                    _set(doc, key, value)
                return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before
        return None

    async def count_documents(self, filter_dict):
        return sum(1 for doc in self.docs if _matches(doc, filter_dict))

    def find(self, filter_dict=None):
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, filter_dict or {})])

    async def create_index(self, *args, **kwargs):
        return None


class FakeDatabase:
    name = "test"

    def __init__(self):
        self.collections = {
            "order": FakeCollection(unique=("orderNumber",)),
            "product": FakeCollection(unique=("seo.slug",)),
        }

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    async def command(self, name):
        return {"ok": 1}


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDatabase()
    monkeypatch.setattr(database, "_db", db)
    return db


@pytest.fixture
def api(fake_db):
    from backend.main import app

    return TestClient(app)


@pytest.fixture
def order_payload():
    return {
        "customer": {
            "firstName": "Jean",
            "lastName": "Dupont",
            "email": "Jean@Email.com",
            "phone": "0123456789",
            "address": {"street": "123 rue de la Paix", "city": "Versailles", "postalCode": "78000", "country": "France"},
        },
        "items": [
            {"productId": "p1", "name": "Canapé-Lit 3 Places", "quantity": 2, "price": 649},
            {"productId": "p2", "name": "Table Ronde", "quantity": 1, "price": 389.5},
        ],
        "payment": {"method": "card"},
    }


@pytest.fixture
def product_payload():
    return {
        "name": "Café Élégant",
        "description": "Table basse en chêne massif.",
        "category": "Salon",
        "price": 75,
        "oldPrice": 100,
        "stock": 3,
        "featured": True,
        "tags": [" Bois ", "TABLE"],
    }
