from datetime import datetime, timedelta, timezone

from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

import database
import main
from schemas import PQRS, SLA_HOURS, Reservation


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["version"] == "1.0.0"
    assert body["environment"]
    assert body["timestamp"]


def test_api_lists_resources(client):
    body = client.get("/api").json()

    assert body["message"] == "Valhalla Apartment Management API"
    assert set(body["endpoints"]) == {
        "users", "towers", "apartments", "parking", "pqrs", "reservations",
        "notifications", "surveys", "payments", "permissions", "roles", "modules",
    }
    assert body["endpoints"]["pqrs"] == "/api/pqrs"


def test_unknown_route(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.json()["error"] == "Route not found"
    assert response.json()["message"] == "Cannot GET /api/nope"


def test_create_pqrs_returns_sla(client, pqrs_data):
    response = client.post("/api/pqrs", json={**pqrs_data, "priority": "critical"})

    assert response.status_code == 200
    body = response.json()
    assert body["id"]
    assert body["sla"]["resolve_by"]

    fetched = client.get(f"/api/pqrs/{body['id']}").json()
    assert fetched["priority"] == "critical"
    assert fetched["current_status"] == "received"


def test_create_ignores_client_timestamps(client, pqrs_data):
    before = datetime.now(timezone.utc)
    payload = {**pqrs_data, "priority": "medium",
               "created_at": "2020-01-01T00:00:00Z", "updated_at": "2020-01-01T00:00:00Z"}

    pqrs_id = client.post("/api/pqrs", json=payload).json()["id"]

    pqrs = PQRS.get(pqrs_id)
    acknowledge, respond, resolve = SLA_HOURS["medium"]
    assert pqrs.created_at >= before
    assert pqrs.updated_at == pqrs.created_at
    assert pqrs.sla.acknowledge_by == pqrs.created_at + timedelta(hours=acknowledge)
    assert pqrs.sla.resolve_by == pqrs.created_at + timedelta(hours=resolve)
    assert not pqrs.sla.is_acknowledge_breached
    assert not pqrs.sla.is_resolution_breached


def test_validation_errors_are_400(client, pqrs_data):
    response = client.post("/api/pqrs", json={**pqrs_data, "category": "felicitacion"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation Error"
    assert any(message.startswith("category") for message in body["messages"])


def test_malformed_id_is_400(client):
    response = client.get("/api/pqrs/not-an-id")

    assert response.status_code == 400
    assert response.json() == {
        "error": "Invalid ID",
        "message": "Invalid ID format",
        "timestamp": response.json()["timestamp"],
    }


def test_missing_document_is_404(client):
    response = client.get(f"/api/pqrs/{ObjectId()}")

    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"
    assert response.json()["message"] == "PQRS not found"


def test_pqrs_workflow(client, pqrs_data):
    pqrs_id = client.post("/api/pqrs", json=pqrs_data).json()["id"]
    actor = {"user_id": 7, "user_info": {"full_name": "Carlos Ramírez", "role": "admin"}}

    tracked = client.post(f"/api/pqrs/{pqrs_id}/tracking", json={**actor, "status": "in_review"}).json()
    assert tracked["current_status"] == "in_review"
    assert tracked["sla"]["acknowledged_at"]

    answered = client.post(f"/api/pqrs/{pqrs_id}/answer", json={"content": "Se hablará con los vecinos"}).json()
    assert answered["sla"]["responded_at"]

    closed = client.post(f"/api/pqrs/{pqrs_id}/close").json()
    assert closed["current_status"] == "closed"
    assert closed["tracking"][-1]["user_info"]["full_name"] == "System"


def test_reservation_conflict_is_409(client, reservation_data):
    Reservation.model_validate({**reservation_data, "status": "confirmed"}).save()
    payload = {
        **reservation_data,
        "reservation_date": reservation_data["reservation_date"].isoformat(),
        "start_time": (reservation_data["start_time"] + timedelta(hours=1)).isoformat(),
        "end_time": (reservation_data["end_time"] + timedelta(hours=1)).isoformat(),
    }

    response = client.post("/api/reservations", json=payload)

    assert response.status_code == 409
    assert response.json()["error"] == "Conflict"
    assert response.json()["message"] == "Time slot conflicts with existing reservation"


def test_create_reservation_derives_cost(client, reservation_data):
    payload = {
        **reservation_data,
        "type": "bbq_area",
        "reservation_date": reservation_data["reservation_date"].isoformat(),
        "start_time": reservation_data["start_time"].isoformat(),
        "end_time": reservation_data["end_time"].isoformat(),
    }

    body = client.post("/api/reservations", json=payload).json()

    assert body["duration"] == 2
    assert body["total"] == 85000


def test_parking_assignment_conflict(client, parking_data):
    parking_id = client.post("/api/parking", json=parking_data).json()["id"]
    payload = {"user_id": "user-1", "vehicle": {"type": "car", "plate": "ABC123"}}

    assert client.post(f"/api/parking/{parking_id}/assign", json=payload).status_code == 200
    response = client.post(f"/api/parking/{parking_id}/assign", json=payload)

    assert response.status_code == 409
    assert response.json()["error"] == "Conflict"
    assert response.json()["message"] == "Parking space is not available"


def test_payment_total_mismatch_is_400(client, payment_data):
    response = client.post("/api/payments", json={**payment_data, "total_amount": 1})

    assert response.status_code == 400
    assert response.json()["message"] == "Total amount must match sum of items"


def test_completed_payment_receipt(client, payment_data):
    payment_id = client.post("/api/payments", json=payment_data).json()["id"]

    missing = client.get(f"/api/payments/{payment_id}/receipt")
    assert missing.status_code == 409
    assert missing.json()["message"] == "Payment has no receipt yet"

    completed = client.post(f"/api/payments/{payment_id}/complete").json()
    assert completed["receipt_number"].startswith("REC-")

    receipt = client.get(f"/api/payments/{payment_id}/receipt").json()
    assert receipt["receipt_number"] == completed["receipt_number"]


def test_users_never_expose_password(client, user_data):
    user_id = client.post("/api/users", json=user_data).json()["id"]

    body = client.get(f"/api/users/{user_id}").json()

    assert body["username"] == "maria.garcia"
    assert "password" not in body
    assert all("password" not in u for u in client.get("/api/users").json())


def test_duplicate_key_is_reported(client, user_data, monkeypatch):
    def duplicate(collection_name, data):
        raise DuplicateKeyError(
            "E11000 duplicate key error",
            code=11000,
            details={"keyPattern": {"username": 1}, "keyValue": {"username": "maria.garcia"}},
        )

    monkeypatch.setattr(database, "create_document", duplicate)

    response = client.post("/api/users", json=user_data)

    assert response.status_code == 400
    assert response.json()["error"] == "Duplicate Entry"
    assert response.json()["message"] == "username already exists"


def test_role_with_permissions(client):
    permission_id = client.post("/api/permissions", json={
        "name": "read_user", "description": "Ver usuarios", "category": "user", "action": "read", "resource": "user",
    }).json()["id"]
    module_id = client.post("/api/modules", json={"name": "Dashboard", "description": "Panel principal"}).json()["id"]
    created = client.post("/api/roles", json={
        "name": "admin", "description": "Administrador", "type": "admin",
        "modules": [{"module": module_id, "permissions": [permission_id]}],
    }).json()

    assert created["is_system"] is True
    body = client.get(f"/api/roles/{created['id']}").json()
    assert body["role"]["name"] == "admin"
    assert body["permissions"][permission_id]["name"] == "read_user"


def test_survey_responses_require_active_survey(client):
    survey_id = client.post("/api/surveys", json={
        "name": "encuesta", "title": "Encuesta", "description": "Opinión", "category": "poll",
        "created_by": {"user_id": "admin-1"},
        "questions": [{"id": "q-1", "type": "yes_no", "title": "¿Le gusta el conjunto?"}],
    }).json()["id"]
    answer = {"respondent": {"user_id": "u-1"}, "answers": [{"question_id": "q-1", "answer": "yes"}],
              "session": {"status": "completed", "time_spent": 120}}

    closed = client.post(f"/api/surveys/{survey_id}/responses", json=answer)
    assert closed.status_code == 409
    assert closed.json()["message"] == "Survey is not accepting responses"

    client.post(f"/api/surveys/{survey_id}/publish", json={"published_by": {"user_id": "admin-1"}})
    submitted = client.post(f"/api/surveys/{survey_id}/responses", json=answer).json()
    assert submitted["total_responses"] == 1

    results = client.get(f"/api/surveys/{survey_id}/results").json()
    assert results["q-1"]["responses"] == ["yes"]


def test_without_database_requests_fail_cleanly(monkeypatch):
    monkeypatch.setattr(database, "db", None)

    response = TestClient(main.app).get("/api/towers")

    assert response.status_code == 500
    assert response.json()["error"] == "Database not configured"


def test_fetch_permission_and_module_by_id(client):
    permission_id = client.post("/api/permissions", json={
        "name": "manage_parking", "description": "Gestionar parqueaderos", "category": "parking",
        "action": "manage", "resource": "parking",
    }).json()["id"]
    module_id = client.post("/api/modules", json={"name": "Parqueaderos", "description": "Parqueaderos"}).json()["id"]

    permission = client.get(f"/api/permissions/{permission_id}").json()
    module = client.get(f"/api/modules/{module_id}").json()

    assert permission["name"] == "manage_parking"
    assert module["name"] == "Parqueaderos"
    missing = client.get(f"/api/modules/{ObjectId()}")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Module not found"


def test_available_parking_honours_floor(client, parking_data):
    client.post("/api/parking", json=parking_data)
    client.post("/api/parking", json={**parking_data, "number": "P-104", "details": {"floor": -2}})

    listed = client.get("/api/parking", params={"status": "available", "floor": -2}).json()

    assert [p["number"] for p in listed] == ["P-104"]
