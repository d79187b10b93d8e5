import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.dbconnect import get_database
from app.main import app, get_services
from engines.envelope import ReceiptEnvelopeService
from engines.instances import build_registry
from engines.key_store import KeyStore


@pytest.fixture(scope="session")
def key_pair():
    return KeyStore().generate()


@pytest.fixture(scope="session")
def other_key_pair():
    return KeyStore().generate()


@pytest.fixture
def envelope_service(key_pair):
    return ReceiptEnvelopeService(key_pair)


class FakeCollection:
    """Just enough of a Motor collection for the receipt endpoints."""

    def __init__(self):
        self.docs = []
        self.indexes = []

    async def create_index(self, keys, **kwargs):
        self.indexes.append((list(keys), kwargs))
        return kwargs.get("name", "_".join(f"{k}_{d}" for k, d in keys))

    async def insert_one(self, doc):
        stored = dict(doc)
        stored["_id"] = uuid.uuid4().hex
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one(self, query, sort=None):
        # Newest first, so ties on the sort field favour the latest insert.
        matches = [d for d in reversed(self.docs) if all(d.get(k) == v for k, v in query.items())]
        if sort:
            field, direction = sort[0]
            matches.sort(key=lambda d: d[field], reverse=direction < 0)
        return matches[0] if matches else None


class FakeDatabase:
    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def client(key_pair, fake_db):
    registry = build_registry(key_pair)
    app.dependency_overrides[get_services] = lambda: registry
    app.dependency_overrides[get_database] = lambda: fake_db
    yield TestClient(app)
    app.dependency_overrides.clear()
