import pytest
from bson import ObjectId
from bson.errors import InvalidId

import database
from errors import DatabaseNotConfigured
from schemas import DOCUMENT_MODELS, Payment


def test_helpers_require_a_connection(monkeypatch):
    monkeypatch.setattr(database, "db", None)

    with pytest.raises(DatabaseNotConfigured):
        database.get_documents("users")


def test_connect_without_uri_keeps_running(monkeypatch):
    monkeypatch.setattr(database.settings, "MONGODB_URI", None)

    assert database.connect() is None
    assert database.connection_status()["mongodb"] == "disconnected"


def test_object_id_coercion():
    oid = ObjectId()

    assert database.object_id(str(oid)) == oid
    assert database.object_id(oid) is oid
    with pytest.raises(InvalidId):
        database.object_id("42")


def test_models_dump_without_nulls(payment_data):
    doc = database._as_dict(Payment.model_validate(payment_data))

    assert "receipt_number" not in doc
    assert doc["total_amount"] == 480000


def test_every_model_declares_its_indexes(fake_db):
    for model in DOCUMENT_MODELS:
        model.ensure_indexes()

    assert set(fake_db.indexes) == {model.collection_name for model in DOCUMENT_MODELS}
    assert ([("receipt_number", 1)], {"unique": True, "sparse": True}) in fake_db.indexes["payments"]
    assert ([("email", 1)], {"unique": True, "sparse": True}) in fake_db.indexes["users"]
