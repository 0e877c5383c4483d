import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import database
from config import settings
from errors import ConflictError, NotFoundError, register_error_handlers
from schemas import (
    PQRS,
    ActorInfo,
    Module,
    Notification,
    Parking,
    Payment,
    PaymentItem,
    Permission,
    Reservation,
    Role,
    Survey,
    Tower,
    User,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Valhalla Apartment Management API", version=settings.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.on_event("startup")
def startup():
    logger.info("Starting Valhalla API (%s)", settings.ENVIRONMENT)
    database.connect()


@app.on_event("shutdown")
def shutdown():
    database.close()


@app.get("/health")
def health():
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
        "version": settings.APP_VERSION,
        "database": database.connection_status()["mongodb"],
    }


@app.get("/api")
def api_info():
    return {
        "message": "Valhalla Apartment Management API",
        "version": settings.APP_VERSION,
        "endpoints": {
            "users": "/api/users",
            "towers": "/api/towers",
            "apartments": "/api/apartments",
            "parking": "/api/parking",
            "pqrs": "/api/pqrs",
            "reservations": "/api/reservations",
            "notifications": "/api/notifications",
            "surveys": "/api/surveys",
            "payments": "/api/payments",
            "permissions": "/api/permissions",
            "roles": "/api/roles",
            "modules": "/api/modules",
        },
    }


# -------------------- Request payloads --------------------
class ReviewPayload(BaseModel):
    reviewer: ActorInfo
    notes: Optional[str] = None
    reason: Optional[str] = None


class CancelPayload(BaseModel):
    cancelled_by: ActorInfo
    reason: Optional[str] = None
    notes: Optional[str] = None


class CheckPayload(BaseModel):
    staff: ActorInfo
    notes: Optional[str] = None
    facility_condition: Optional[str] = None
    damages: List[Dict[str, Any]] = []


class AssignParkingPayload(BaseModel):
    user_id: str
    user_info: Dict[str, Any] = {}
    vehicle: Dict[str, Any]


class UnassignParkingPayload(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None


class AssignOwnerPayload(BaseModel):
    owner_id: str
    owner_info: Dict[str, Any] = {}
    is_tenant: bool = False


class ReadPayload(BaseModel):
    user_id: Optional[str] = None


class SchedulePayload(BaseModel):
    scheduled_for: datetime


class PublishPayload(BaseModel):
    published_by: ActorInfo


def _insert(document):
    """Store a request body as a new record; ids and timestamps come from the server."""
    document.id = None
    document.created_at = None
    document.updated_at = None
    return document.save()


# -------------------- Users --------------------
@app.post("/api/users")
def create_user(user: User):
    _insert(user)
    return {"id": user.id}


@app.get("/api/users")
def list_users(role_type: Optional[str] = None, status: Optional[str] = None):
    q = {}
    if role_type:
        q["role_type"] = role_type
    if status:
        q["status"] = status
    return [u.to_public() for u in User.find(q, sort=[("created_at", -1)])]


@app.get("/api/users/{user_id}")
def get_user(user_id: str):
    return User.get_or_404(user_id).to_public()


@app.post("/api/users/{user_id}/pets")
def add_pet(user_id: str, pet: Dict[str, Any]):
    return User.get_or_404(user_id).add_pet(pet).to_public()


@app.delete("/api/users/{user_id}/pets/{pet_id}")
def remove_pet(user_id: str, pet_id: str):
    return User.get_or_404(user_id).remove_pet(pet_id).to_public()


# -------------------- Towers & Apartments --------------------
@app.post("/api/towers")
def create_tower(tower: Tower):
    _insert(tower)
    return {"id": tower.id}


@app.get("/api/towers")
def list_towers(owner_id: Optional[str] = None):
    if owner_id:
        return Tower.find_by_owner(owner_id)
    return Tower.find({"is_active": True}, sort=[("name", 1)])


@app.get("/api/towers/{tower_id}")
def get_tower(tower_id: str):
    return Tower.get_or_404(tower_id)


@app.post("/api/towers/{tower_id}/apartments")
def add_apartment(tower_id: str, apartment: Dict[str, Any]):
    return Tower.get_or_404(tower_id).add_apartment(apartment)


@app.patch("/api/towers/{tower_id}/apartments/{number}/status")
def update_apartment_status(
    tower_id: str,
    number: str,
    status: str = Query(..., pattern="^(available|occupied|maintenance|reserved)$"),
):
    return Tower.get_or_404(tower_id).update_apartment_status(number, status)


@app.post("/api/towers/{tower_id}/apartments/{number}/owner")
def assign_apartment_owner(tower_id: str, number: str, payload: AssignOwnerPayload):
    tower = Tower.get_or_404(tower_id)
    return tower.assign_owner(number, payload.owner_id, payload.owner_info, is_tenant=payload.is_tenant)


@app.get("/api/apartments")
def list_available_apartments():
    items = []
    for tower in Tower.find_available_apartments():
        for apartment in tower.apartments:
            items.append({"tower_id": tower.id, "tower_name": tower.name, **apartment.model_dump(mode="json")})
    return items


# -------------------- Parking --------------------
@app.post("/api/parking")
def create_parking(parking: Parking):
    _insert(parking)
    return {"id": parking.id}


@app.get("/api/parking")
def list_parking(status: Optional[str] = None, type: Optional[str] = None, floor: Optional[int] = None,
                 user_id: Optional[str] = None):
    if user_id:
        return Parking.find_by_user(user_id)
    if status == "available":
        return Parking.find_available(type, floor)
    q = {}
    if status:
        q["status"] = status
    if type:
        q["type"] = type
    if floor is not None:
        q["details.floor"] = floor
    return Parking.find(q, sort=[("number", 1)])


@app.get("/api/parking/stats")
def parking_stats():
    return Parking.get_occupancy_stats()


@app.get("/api/parking/{parking_id}")
def get_parking(parking_id: str):
    return Parking.get_or_404(parking_id)


@app.post("/api/parking/{parking_id}/assign")
def assign_parking(parking_id: str, payload: AssignParkingPayload):
    parking = Parking.get_or_404(parking_id)
    return parking.assign_to_user(payload.user_id, payload.user_info, payload.vehicle)


@app.post("/api/parking/{parking_id}/unassign")
def unassign_parking(parking_id: str, payload: UnassignParkingPayload):
    return Parking.get_or_404(parking_id).unassign_from_user(payload.reason, payload.notes)


@app.post("/api/parking/{parking_id}/reservations")
def reserve_parking(parking_id: str, reservation: Dict[str, Any]):
    return Parking.get_or_404(parking_id).create_reservation(reservation)


@app.post("/api/parking/{parking_id}/maintenance")
def add_parking_maintenance(parking_id: str, record: Dict[str, Any]):
    return Parking.get_or_404(parking_id).add_maintenance_record(record)


# -------------------- PQRS --------------------
@app.post("/api/pqrs")
def create_pqrs(pqrs: PQRS):
    _insert(pqrs)
    return {"id": pqrs.id, "sla": pqrs.sla}


@app.get("/api/pqrs")
def list_pqrs(status: Optional[str] = None, user_id: Optional[str] = None, department: Optional[str] = None):
    if user_id:
        return PQRS.find_by_user(user_id)
    if department:
        return PQRS.find_by_department(department)
    if status:
        return PQRS.find_by_status(status)
    return PQRS.find({"is_archived": False}, sort=[("created_at", -1)])


@app.get("/api/pqrs/overdue")
def list_overdue_pqrs():
    return PQRS.find_overdue()


@app.get("/api/pqrs/stats")
def pqrs_stats():
    return PQRS.get_statistics()


@app.get("/api/pqrs/{pqrs_id}")
def get_pqrs(pqrs_id: str):
    return PQRS.get_or_404(pqrs_id)


@app.post("/api/pqrs/{pqrs_id}/tracking")
def add_pqrs_tracking(pqrs_id: str, entry: Dict[str, Any]):
    return PQRS.get_or_404(pqrs_id).add_tracking(entry)


@app.post("/api/pqrs/{pqrs_id}/answer")
def answer_pqrs(pqrs_id: str, answer: Dict[str, Any]):
    return PQRS.get_or_404(pqrs_id).add_answer(answer)


@app.post("/api/pqrs/{pqrs_id}/assign")
def assign_pqrs(pqrs_id: str, assignment: Dict[str, Any]):
    return PQRS.get_or_404(pqrs_id).assign_to(assignment)


@app.post("/api/pqrs/{pqrs_id}/close")
def close_pqrs(pqrs_id: str, resolution: Optional[Dict[str, Any]] = None):
    return PQRS.get_or_404(pqrs_id).close(resolution)


# -------------------- Reservations --------------------
@app.post("/api/reservations")
def create_reservation(r: Reservation):
    if Reservation.find_conflicting(r.type, r.start_time, r.end_time):
        raise ConflictError("Time slot conflicts with existing reservation")
    _insert(r)
    return {"id": r.id, "duration": r.duration, "total": r.cost.total}


@app.get("/api/reservations")
def list_reservations(user_id: Optional[str] = None, type: Optional[str] = None, status: Optional[str] = None):
    if user_id:
        return Reservation.find_by_user(user_id)
    q = {}
    if type:
        q["type"] = type
    if status:
        q["status"] = status
    return Reservation.find(q, sort=[("reservation_date", -1)])


@app.get("/api/reservations/upcoming")
def list_upcoming_reservations(days: int = Query(7, ge=1, le=365)):
    return Reservation.find_upcoming(days)


@app.get("/api/reservations/pending")
def list_pending_reservations():
    return Reservation.find_pending_approval()


@app.get("/api/reservations/{reservation_id}")
def get_reservation(reservation_id: str):
    return Reservation.get_or_404(reservation_id)


@app.post("/api/reservations/{reservation_id}/approve")
def approve_reservation(reservation_id: str, payload: ReviewPayload):
    reservation = Reservation.get_or_404(reservation_id)
    conflicts = Reservation.find_conflicting(
        reservation.type, reservation.start_time, reservation.end_time, exclude_id=reservation.id
    )
    if conflicts:
        raise ConflictError("Time slot conflicts with existing reservation")
    return reservation.approve(payload.reviewer, payload.notes)


@app.post("/api/reservations/{reservation_id}/reject")
def reject_reservation(reservation_id: str, payload: ReviewPayload):
    return Reservation.get_or_404(reservation_id).reject(payload.reviewer, payload.reason)


@app.post("/api/reservations/{reservation_id}/cancel")
def cancel_reservation(reservation_id: str, payload: CancelPayload):
    return Reservation.get_or_404(reservation_id).cancel(payload.cancelled_by, payload.reason, payload.notes)


@app.post("/api/reservations/{reservation_id}/check-in")
def check_in_reservation(reservation_id: str, payload: CheckPayload):
    reservation = Reservation.get_or_404(reservation_id)
    return reservation.perform_check_in(payload.staff, payload.notes, payload.facility_condition)


@app.post("/api/reservations/{reservation_id}/check-out")
def check_out_reservation(reservation_id: str, payload: CheckPayload):
    reservation = Reservation.get_or_404(reservation_id)
    return reservation.perform_check_out(
        payload.staff, payload.notes, payload.facility_condition, payload.damages
    )


# -------------------- Notifications --------------------
@app.post("/api/notifications")
def create_notification(n: Notification):
    _insert(n)
    return {"id": n.id, "expires_at": n.expires_at}


@app.get("/api/notifications")
def list_notifications(user_id: Optional[str] = None, priority: Optional[str] = None):
    if user_id:
        return Notification.find_unread_for_user(user_id)
    if priority:
        return Notification.find_by_priority(priority)
    return Notification.find({}, sort=[("created_at", -1)])


@app.get("/api/notifications/{notification_id}")
def get_notification(notification_id: str):
    return Notification.get_or_404(notification_id)


@app.post("/api/notifications/{notification_id}/send")
def send_notification(notification_id: str):
    return Notification.get_or_404(notification_id).send_now()


@app.post("/api/notifications/{notification_id}/schedule")
def schedule_notification(notification_id: str, payload: SchedulePayload):
    return Notification.get_or_404(notification_id).schedule(payload.scheduled_for)


@app.post("/api/notifications/{notification_id}/cancel")
def cancel_notification(notification_id: str):
    return Notification.get_or_404(notification_id).cancel()


@app.post("/api/notifications/{notification_id}/read")
def read_notification(notification_id: str, payload: ReadPayload):
    return Notification.get_or_404(notification_id).mark_as_read(payload.user_id)


# -------------------- Surveys --------------------
@app.post("/api/surveys")
def create_survey(s: Survey):
    _insert(s)
    return {"id": s.id}


@app.get("/api/surveys")
def list_surveys(active: bool = False, created_by: Optional[str] = None):
    if active:
        return Survey.find_active()
    if created_by:
        return Survey.find_by_user(created_by)
    return Survey.find({"is_archived": False}, sort=[("created_at", -1)])


@app.get("/api/surveys/{survey_id}")
def get_survey(survey_id: str):
    return Survey.get_or_404(survey_id)


@app.post("/api/surveys/{survey_id}/publish")
def publish_survey(survey_id: str, payload: PublishPayload):
    return Survey.get_or_404(survey_id).publish(payload.published_by)


@app.post("/api/surveys/{survey_id}/responses")
def submit_survey_response(survey_id: str, response: Dict[str, Any]):
    survey = Survey.get_or_404(survey_id)
    if not survey.is_active():
        raise ConflictError("Survey is not accepting responses")
    survey.add_response(response)
    return {"id": survey.responses[-1].id, "total_responses": survey.analytics.total_responses}


@app.get("/api/surveys/{survey_id}/results")
def survey_results(survey_id: str):
    return Survey.get_or_404(survey_id).get_results()


# -------------------- Payments --------------------
@app.post("/api/payments")
def create_payment(p: Payment):
    _insert(p)
    return {"id": p.id, "receipt_number": p.receipt_number}


@app.get("/api/payments")
def list_payments(owner: Optional[str] = None, status: Optional[str] = None, method: Optional[str] = None):
    if owner:
        return Payment.find_by_owner(owner, status=status, method=method)
    q = {}
    if status:
        q["payment_status"] = status
    if method:
        q["payment_method"] = method
    return Payment.find(q, sort=[("payment_date", -1)])


@app.get("/api/payments/overdue")
def list_overdue_payments():
    return Payment.get_overdue_payments()


@app.get("/api/payments/summary")
def payment_summary(owner: Optional[str] = None):
    return Payment.get_payment_summary({"owner": owner} if owner else None)


@app.get("/api/payments/{payment_id}")
def get_payment(payment_id: str):
    return Payment.get_or_404(payment_id)


@app.post("/api/payments/{payment_id}/items")
def add_payment_item(payment_id: str, item: PaymentItem):
    return Payment.get_or_404(payment_id).add_payment_item(item.description, item.amount, item.category)


@app.post("/api/payments/{payment_id}/complete")
def complete_payment(payment_id: str):
    return Payment.get_or_404(payment_id).mark_as_completed()


@app.get("/api/payments/{payment_id}/receipt")
def payment_receipt(payment_id: str):
    payment = Payment.get_or_404(payment_id)
    if not payment.receipt_number:
        raise ConflictError("Payment has no receipt yet")
    return payment.generate_receipt_data()


# -------------------- Roles & Permissions --------------------
@app.post("/api/permissions")
def create_permission(p: Permission):
    _insert(p)
    return {"id": p.id}


@app.get("/api/permissions")
def list_permissions(category: Optional[str] = None, action: Optional[str] = None):
    if category:
        return Permission.find_by_category(category)
    if action:
        return Permission.find_by_action(action)
    return Permission.find({"is_active": True}, sort=[("name", 1)])


@app.get("/api/permissions/{permission_id}")
def get_permission(permission_id: str):
    return Permission.get_or_404(permission_id)


@app.post("/api/modules")
def create_module(m: Module):
    _insert(m)
    return {"id": m.id}


@app.get("/api/modules")
def list_modules(root_only: bool = False):
    if root_only:
        return Module.get_root_modules()
    return Module.get_hierarchy()


@app.get("/api/modules/{module_id}")
def get_module(module_id: str):
    return Module.get_or_404(module_id)


@app.post("/api/roles")
def create_role(r: Role):
    _insert(r)
    return {"id": r.id, "is_system": r.is_system}


@app.get("/api/roles")
def list_roles(type: Optional[str] = None):
    if type:
        return Role.find_by_type(type)
    return Role.find({"is_active": True}, sort=[("level", 1), ("name", 1)])


@app.get("/api/roles/{role_id}")
def get_role(role_id: str):
    grants = Role.find_with_permissions(role_id)
    if grants is None:
        raise NotFoundError("Role not found")
    return grants


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
