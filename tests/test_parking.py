from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from errors import ConflictError
from schemas import Parking, utcnow

NOW = datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc)
MARIA = {"full_name": "María García López", "apartment_number": "301", "tower_name": "Torre A"}
COROLLA = {"type": "car", "plate": "abc-123", "brand": "Toyota", "model": "Corolla", "year": 2020}


def test_occupied_space_requires_vehicle(parking_data):
    with pytest.raises(ValidationError, match="Vehicle type and plate are required"):
        Parking.model_validate({**parking_data, "status": "occupied"})

    with pytest.raises(ValidationError):
        Parking.model_validate({**parking_data, "status": "occupied", "vehicle": {"type": "car"}})


def test_vehicle_year_cannot_be_far_in_the_future(parking_data):
    with pytest.raises(ValidationError):
        Parking.model_validate({**parking_data, "vehicle": {**COROLLA, "year": utcnow().year + 3}})

    with pytest.raises(ValidationError):
        Parking.model_validate({**parking_data, "vehicle": {**COROLLA, "year": 1899}})


def test_floor_range(parking_data):
    with pytest.raises(ValidationError):
        Parking.model_validate({**parking_data, "details": {"floor": -6}})


def test_assign_to_user(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()

    parking.assign_to_user("user-1", MARIA, COROLLA, now=NOW)

    assert parking.is_occupied
    assert parking.assigned_user_id == "user-1"
    assert parking.vehicle.plate == "ABC-123"
    usage = parking.usage_history[-1]
    assert usage.assigned_date == NOW
    assert usage.vehicle.plate == "ABC-123"
    assert usage.user_info.full_name == "María García López"


def test_assign_requires_available_space(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()
    parking.assign_to_user("user-1", MARIA, COROLLA)

    with pytest.raises(ConflictError, match="not available"):
        parking.assign_to_user("user-2", MARIA, COROLLA)


def test_assign_without_plate_fails_validation(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()

    with pytest.raises(ValidationError):
        parking.assign_to_user("user-1", MARIA, {"type": "car"})


def test_unassign_from_user(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()
    parking.assign_to_user("user-1", MARIA, COROLLA, now=NOW)

    parking.unassign_from_user(reason="Mudanza", now=NOW + timedelta(days=30))

    assert parking.is_available
    assert parking.assigned_user_id is None
    assert parking.vehicle is None
    assert parking.usage_history[-1].unassigned_date == NOW + timedelta(days=30)
    assert parking.usage_history[-1].reason == "Mudanza"

    stored = Parking.get(parking.id)
    assert stored.status == "available"
    assert stored.vehicle is None


def test_unassign_requires_occupied_space(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()

    with pytest.raises(ConflictError, match="not occupied"):
        parking.unassign_from_user()


def visitor_reservation(start, end, status="pending"):
    return {"user_id": "user-1", "start_date": start, "end_date": end, "purpose": "visitor", "status": status}


def test_reservation_conflicts_only_with_approved(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()
    parking.create_reservation(visitor_reservation(NOW, NOW + timedelta(hours=4), status="approved"))
    parking.create_reservation(visitor_reservation(NOW + timedelta(hours=5), NOW + timedelta(hours=8)))

    with pytest.raises(ConflictError, match="already reserved"):
        parking.create_reservation(visitor_reservation(NOW - timedelta(hours=1), NOW + timedelta(hours=6)))

    parking.create_reservation(visitor_reservation(NOW + timedelta(hours=6), NOW + timedelta(hours=7)))
    assert len(parking.reservations) == 3


def test_current_reservation(fake_db, parking_data):
    parking = Parking.model_validate(parking_data)
    parking.create_reservation(visitor_reservation(NOW, NOW + timedelta(hours=4), status="approved"))

    assert parking.current_reservation(now=NOW + timedelta(hours=1)).purpose == "visitor"
    assert parking.current_reservation(now=NOW + timedelta(hours=5)) is None


def test_maintenance_in_progress_takes_space_out(fake_db, parking_data):
    parking = Parking.model_validate(parking_data).save()

    parking.add_maintenance_record(
        {"type": "painting", "description": "Demarcación", "start_date": NOW, "status": "scheduled"}
    )
    assert parking.status == "available"

    parking.add_maintenance_record(
        {"type": "repair", "description": "Reparar piso", "start_date": NOW, "status": "in_progress"}
    )
    assert parking.status == "maintenance"


def test_queries(fake_db, parking_data):
    Parking.model_validate(parking_data).save()
    Parking.model_validate({**parking_data, "number": "P-004", "type": "covered"}).save()
    taken = Parking.model_validate({**parking_data, "number": "P-005", "details": {"floor": 1}}).save()
    taken.assign_to_user("user-9", MARIA, COROLLA)

    assert {p.number for p in Parking.find_available()} == {"P-003", "P-004"}
    assert [p.number for p in Parking.find_available("covered")] == ["P-004"]
    assert Parking.find_available(floor=1) == []
    assert [p.number for p in Parking.find_by_user("user-9")] == ["P-005"]
    assert [p.number for p in Parking.find_by_floor(1)] == ["P-005"]
