import copy
import operator
from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

import database

COMPARISONS = {
    "$lt": operator.lt,
    "$lte": operator.le,
    "$gt": operator.gt,
    "$gte": operator.ge,
}


def _resolve(doc, path):
    values = [doc]
    for part in path.split("."):
        found = []
        for value in values:
            if isinstance(value, dict) and part in value:
                found.append(value[part])
            elif isinstance(value, list):
                found.extend(item[part] for item in value if isinstance(item, dict) and part in item)
        values = found

    # arrays match on the array itself or on any element
    expanded = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _apply_operator(values, op, arg):
    if op == "$in":
        return any(v in arg for v in values) or (None in arg and not values)
    if op == "$nin":
        return not _apply_operator(values, "$in", arg)
    if op == "$ne":
        return not _match_condition(values, arg)
    if op == "$exists":
        return bool(values) == arg
    if op == "$elemMatch":
        return any(isinstance(v, dict) and matches(v, arg) for v in values)
    compare = COMPARISONS[op]
    return any(v is not None and not isinstance(v, list) and compare(v, arg) for v in values)


def _match_condition(values, condition):
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        return all(_apply_operator(values, op, arg) for op, arg in condition.items())
    if condition is None:
        return not values or any(v is None for v in values)
    return any(v == condition for v in values)


def matches(doc, query):
    for key, condition in query.items():
        if key == "$and":
            ok = all(matches(doc, sub) for sub in condition)
        elif key == "$or":
            ok = any(matches(doc, sub) for sub in condition)
        else:
            ok = _match_condition(_resolve(doc, key), condition)
        if not ok:
            return False
    return True


def _sort_key(doc, path):
    values = _resolve(doc, path)
    value = values[0] if values else None
    return (value is not None, value)


class FakeDatabase:
    """In-memory stand-in for the document helpers in database.py."""

    def __init__(self):
        self.storage = {}
        self.indexes = {}
        self.aggregations = []
        self.aggregate_result = []

    def collection(self, name):
        return self.storage.setdefault(name, {})

    def create_document(self, collection_name, data):
        doc = copy.deepcopy(database._as_dict(data))
        now = datetime.now(timezone.utc)
        doc.setdefault("created_at", now)
        doc.setdefault("updated_at", now)
        doc["_id"] = ObjectId()
        self.collection(collection_name)[doc["_id"]] = doc
        return str(doc["_id"])

    def insert_documents(self, collection_name, documents):
        return [self.create_document(collection_name, d) for d in documents]

    def get_documents(self, collection_name, filter_dict=None, limit=None, sort=None, projection=None):
        docs = [
            copy.deepcopy(d)
            for d in self.collection(collection_name).values()
            if matches(d, filter_dict or {})
        ]
        for key, direction in reversed(sort or []):
            docs.sort(key=lambda d: _sort_key(d, key), reverse=direction < 0)
        return docs[:limit] if limit else docs

    def get_document(self, collection_name, document_id):
        doc = self.collection(collection_name).get(database.object_id(document_id))
        return copy.deepcopy(doc) if doc else None

    def replace_document(self, collection_name, document_id, data):
        oid = database.object_id(document_id)
        docs = self.collection(collection_name)
        if oid not in docs:
            return False
        doc = copy.deepcopy(database._as_dict(data))
        doc["_id"] = oid
        doc["updated_at"] = datetime.now(timezone.utc)
        docs[oid] = doc
        return True

    def delete_documents(self, collection_name, filter_dict=None):
        docs = self.collection(collection_name)
        doomed = [oid for oid, d in docs.items() if matches(d, filter_dict or {})]
        for oid in doomed:
            del docs[oid]
        return len(doomed)

    def aggregate(self, collection_name, pipeline):
        self.aggregations.append((collection_name, pipeline))
        return self.aggregate_result

    def ensure_indexes(self, collection_name, indexes):
        self.indexes[collection_name] = indexes
        return [f"{collection_name}_{i}" for i in range(len(indexes))]


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeDatabase()
    for name in (
        "create_document",
        "insert_documents",
        "get_documents",
        "get_document",
        "replace_document",
        "delete_documents",
        "aggregate",
        "ensure_indexes",
    ):
        monkeypatch.setattr(database, name, getattr(fake, name))
    return fake


@pytest.fixture
def client(fake_db):
    from fastapi.testclient import TestClient

    import main

    return TestClient(main.app)


@pytest.fixture
def future_day():
    """Midnight UTC ten days from now."""
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return today + timedelta(days=10)


@pytest.fixture
def user_data():
    return {
        "username": "maria.garcia",
        "email": "Maria.Garcia@Email.com",
        "password": "maria123",
        "status": "active",
        "role": str(ObjectId()),
        "role_type": "owner",
        "profile": {
            "full_name": "María García López",
            "document_type": "CC",
            "document_number": "52478963",
            "telephone_number": "3109876543",
        },
    }


@pytest.fixture
def pqrs_data():
    return {
        "category": "queja",
        "title": "Ruido excesivo en horas nocturnas",
        "description": "Los vecinos del 402 hacen ruido después de las 10 PM.",
        "created_by": {
            "user_id": str(ObjectId()),
            "user_info": {"full_name": "María García López", "apartment_number": "301"},
        },
    }


@pytest.fixture
def reservation_data(future_day):
    return {
        "type": "pool",
        "reservation_date": future_day,
        "start_time": future_day + timedelta(hours=10),
        "end_time": future_day + timedelta(hours=12),
        "title": "Fiesta de cumpleaños",
        "reserved_by": {
            "user_id": 12345,
            "user_info": {"full_name": "María García López", "phone": "3109876543", "apartment_number": "301"},
        },
        "attendees": {"expected_count": 4},
        "cost": {"base_fee": 50000, "equipment_fee": 10000, "service_fee": 5000,
                 "cleaning_fee": 20000, "security_deposit": 100000},
    }


@pytest.fixture
def tower_data():
    return {
        "name": "Torre A",
        "details": {"total_floors": 15, "apartments_per_floor": 2, "total_apartments": 3},
        "apartments": [
            {"number": "101", "status": "occupied"},
            {"number": "301", "status": "available"},
            {"number": "501", "status": "available"},
        ],
    }


@pytest.fixture
def parking_data():
    return {"number": "P-003", "type": "regular", "details": {"floor": -1, "section": "A"}}


@pytest.fixture
def payment_data():
    return {
        "owner": str(ObjectId()),
        "total_amount": 480000,
        "payment_method": "bank_transfer",
        "items": [{"description": "Cuota de administración", "amount": 480000, "category": "maintenance"}],
    }
