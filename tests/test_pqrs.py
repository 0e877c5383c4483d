from datetime import datetime, timedelta, timezone

import pytest

from errors import DomainValidationError
from schemas import PQRS

OPENED = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
ADMIN = {"user_id": 7, "user_info": {"full_name": "Carlos Ramírez", "role": "admin"}}


def make_pqrs(pqrs_data, **overrides):
    pqrs = PQRS.model_validate({**pqrs_data, **overrides})
    return pqrs.save(now=OPENED)


@pytest.mark.parametrize(
    "priority, acknowledge, respond, resolve",
    [
        ("critical", 1, 4, 24),
        ("urgent", 2, 8, 72),
        ("high", 4, 24, 168),
        ("medium", 8, 48, 336),
        ("low", 24, 120, 720),
    ],
)
def test_sla_deadlines_follow_priority(fake_db, pqrs_data, priority, acknowledge, respond, resolve):
    pqrs = make_pqrs(pqrs_data, priority=priority)

    assert pqrs.created_at == OPENED
    assert pqrs.sla.acknowledge_by == OPENED + timedelta(hours=acknowledge)
    assert pqrs.sla.respond_by == OPENED + timedelta(hours=respond)
    assert pqrs.sla.resolve_by == OPENED + timedelta(hours=resolve)
    assert pqrs.current_status == "received"


def test_sla_is_not_recomputed_when_priority_changes(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    resolve_by = pqrs.sla.resolve_by

    pqrs.priority = "critical"
    pqrs.save(now=OPENED + timedelta(minutes=5))

    assert pqrs.sla.resolve_by == resolve_by


def test_breach_flags_set_when_deadline_passes_without_stamp(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)  # medium: 8 / 48 / 336 hours

    pqrs.save(now=OPENED + timedelta(hours=10))

    assert pqrs.sla.is_acknowledge_breached is True
    assert pqrs.sla.is_response_breached is False
    assert pqrs.sla.is_resolution_breached is False


def test_acknowledged_pqrs_is_not_flagged(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    pqrs.add_tracking({**ADMIN, "status": "in_review"}, now=OPENED + timedelta(hours=1))

    pqrs.save(now=OPENED + timedelta(hours=10))

    assert pqrs.sla.is_acknowledge_breached is False


def test_existing_pqrs_without_deadlines_is_rejected(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    pqrs.sla.resolve_by = None

    with pytest.raises(DomainValidationError):
        pqrs.save()


def test_first_review_stamps_acknowledgement_once(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    first = OPENED + timedelta(hours=1)

    pqrs.add_tracking({**ADMIN, "status": "in_review", "comment": "Recibido"}, now=first)
    pqrs.add_tracking({**ADMIN, "status": "in_review"}, now=first + timedelta(hours=2))

    assert pqrs.sla.acknowledged_at == first
    assert pqrs.current_status == "in_review"
    assert len(pqrs.tracking) == 2

    stored = PQRS.get(pqrs.id)
    assert stored.current_status == "in_review"
    assert stored.sla.acknowledged_at == first


def test_resolved_tracking_records_resolver(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    resolved = OPENED + timedelta(days=1)

    pqrs.add_tracking({**ADMIN, "status": "resolved"}, now=resolved)

    assert pqrs.resolution.resolved_at == resolved
    assert pqrs.resolution.resolved_by.full_name == "Carlos Ramírez"
    assert pqrs.resolution.resolved_by.user_id == 7


def test_tracking_stamps_response_once_answer_has_content(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data, answer={"content": "Se hablará con los vecinos"})
    when = OPENED + timedelta(hours=3)

    pqrs.add_tracking({**ADMIN, "status": "in_progress"}, now=when)

    assert pqrs.sla.responded_at == when


def test_answer_stamps_response(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    when = OPENED + timedelta(hours=5)

    pqrs.add_answer({"content": "Se enviará un técnico"}, now=when)

    assert pqrs.answer.answered_at == when
    assert pqrs.sla.responded_at == when


def test_close_without_resolver_is_recorded_as_system(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    when = OPENED + timedelta(days=2)

    pqrs.close(now=when)

    assert pqrs.current_status == "closed"
    assert pqrs.resolution.resolved_at == when
    entry = pqrs.tracking[-1]
    assert entry.status == "closed"
    assert entry.user_id == 0
    assert entry.user_info.full_name == "System"
    assert entry.user_info.role == "system"


def test_close_with_resolver_keeps_first_resolution_time(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    resolved = OPENED + timedelta(days=1)
    pqrs.add_tracking({**ADMIN, "status": "resolved"}, now=resolved)

    pqrs.close(
        {"resolved_by": {"user_id": "u-9", "full_name": "Ana Torres", "role": "manager"},
         "resolution_type": "solved"},
        now=resolved + timedelta(days=1),
    )

    assert pqrs.resolution.resolved_at == resolved
    assert pqrs.resolution.resolution_type == "solved"
    assert pqrs.tracking[-1].user_id == "u-9"
    assert pqrs.tracking[-1].user_info.full_name == "Ana Torres"


def test_overdue_and_days_open(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data, priority="critical")

    assert pqrs.days_open(now=OPENED + timedelta(hours=36)) == 2
    assert pqrs.is_overdue(now=OPENED + timedelta(hours=23)) is False
    assert pqrs.is_overdue(now=OPENED + timedelta(hours=25)) is True

    pqrs.close(now=OPENED + timedelta(hours=30))
    assert pqrs.is_overdue(now=OPENED + timedelta(days=5)) is False
    assert pqrs.days_open(now=OPENED + timedelta(days=5)) == 2


def test_last_update_uses_latest_tracking(fake_db, pqrs_data):
    pqrs = make_pqrs(pqrs_data)
    assert pqrs.last_update == OPENED

    when = OPENED + timedelta(hours=4)
    pqrs.add_tracking({**ADMIN, "status": "in_review", "date_update": when}, now=when)
    assert pqrs.last_update == when


def test_find_overdue_skips_closed_and_future(fake_db, pqrs_data):
    late = make_pqrs(pqrs_data, priority="critical", title="Fuga de agua")
    make_pqrs(pqrs_data, priority="low", title="Pintura del lobby")
    closed = make_pqrs(pqrs_data, priority="critical", title="Portón dañado")
    closed.close(now=OPENED + timedelta(hours=2))

    overdue = PQRS.find_overdue(now=OPENED + timedelta(days=2))

    assert [p.id for p in overdue] == [late.id]


def test_find_by_department_orders_by_severity(fake_db, pqrs_data):
    for priority in ("low", "critical", "medium"):
        make_pqrs(pqrs_data, priority=priority, assigned_to={"department": "maintenance"})
    make_pqrs(pqrs_data, priority="urgent", assigned_to={"department": "security"})

    found = PQRS.find_by_department("maintenance")

    assert [p.priority for p in found] == ["critical", "medium", "low"]


def test_tags_are_normalised(fake_db, pqrs_data):
    pqrs = PQRS.model_validate({**pqrs_data, "tags": [" Ruido ", "NOCHE", ""]})
    assert pqrs.tags == ["ruido", "noche"]


def test_statistics_pipeline_groups_by_status(fake_db):
    now = OPENED + timedelta(days=1)
    PQRS.get_statistics(now=now)

    collection, pipeline = fake_db.aggregations[-1]
    assert collection == "pqrs"
    group = pipeline[0]["$group"]
    assert group["_id"] == "$current_status"
    assert group["avg_days_open"]["$avg"]["$divide"][0] == {"$subtract": [now, "$created_at"]}
