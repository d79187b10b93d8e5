import asyncio

import pytest

import app.dbconnect as dbconnect
from app.dbconnect import RECEIPT_LOOKUP_INDEX, ensure_indexes, get_database, receipts_of


def test_receipts_live_in_policy_collection(fake_db):
    assert receipts_of(fake_db) is fake_db["payments"]


def test_ensure_indexes_builds_latest_receipt_lookup(fake_db):
    name = asyncio.run(ensure_indexes(fake_db))

    assert name == "loan_latest_receipt"
    assert fake_db["payments"].indexes == [(RECEIPT_LOOKUP_INDEX, {"name": "loan_latest_receipt"})]
    assert RECEIPT_LOOKUP_INDEX == [("loan_id", 1), ("uploaded_at", -1)]


def test_get_database_before_connect(monkeypatch):
    monkeypatch.setattr(dbconnect.db, "client", None)
    with pytest.raises(ConnectionError):
        asyncio.run(get_database())


def test_close_without_connection_is_noop(monkeypatch):
    monkeypatch.setattr(dbconnect.db, "client", None)
    asyncio.run(dbconnect.close_mongo_connection())
    assert dbconnect.db.client is None
