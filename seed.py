"""
Load the Spanish sample data set into an empty database.

Usage: python seed.py

Every collection is cleared first, so this is only meant for development
and demo databases.
"""
import logging
import sys
from datetime import datetime, timedelta, timezone

from bson import ObjectId
from pymongo.errors import PyMongoError

import database
from config import settings
from errors import AppError
from schemas import (
    DOCUMENT_MODELS,
    NOTIFICATION_EXPIRY_DAYS,
    PQRS,
    SLA_HOURS,
    Module,
    Notification,
    Parking,
    Payment,
    PaymentStatus,
    Permission,
    Reservation,
    Role,
    Survey,
    Tower,
    User,
    UserStatus,
    generate_receipt_number,
)

logger = logging.getLogger("seed")


def _day(offset_days: int, hour: int = 0, minute: int = 0) -> datetime:
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return today + timedelta(days=offset_days, hours=hour, minutes=minute)


def clear_collections() -> None:
    for model in DOCUMENT_MODELS:
        deleted = model.delete_many()
        logger.info("Cleared %s (%d documents)", model.collection_name, deleted)


def create_indexes() -> None:
    for model in DOCUMENT_MODELS:
        model.ensure_indexes()


def seed_statuses():
    user_statuses = UserStatus.insert_many([
        {"name": "active", "description": "Usuario activo", "allow_login": True},
        {"name": "inactive", "description": "Usuario inactivo", "allow_login": False},
        {"name": "suspended", "description": "Usuario suspendido", "allow_login": False},
        {"name": "pending", "description": "Pendiente de activación", "allow_login": False},
        {"name": "blocked", "description": "Usuario bloqueado", "allow_login": False},
    ])
    payment_statuses = PaymentStatus.insert_many([
        {"name": "pending", "description": "Pago pendiente", "color": "#FFA500", "order": 1},
        {"name": "completed", "description": "Pago completado", "color": "#28A745", "order": 2},
        {"name": "failed", "description": "Pago fallido", "color": "#DC3545", "order": 3},
        {"name": "cancelled", "description": "Pago cancelado", "color": "#6C757D", "order": 4},
    ])
    return user_statuses, payment_statuses


def seed_permissions():
    def perm(name, description, category, action):
        return {"name": name, "description": description, "category": category,
                "action": action, "resource": category}

    return Permission.insert_many([
        perm("create_user", "Crear usuarios", "user", "create"),
        perm("read_user", "Ver usuarios", "user", "read"),
        perm("update_user", "Actualizar usuarios", "user", "update"),
        perm("delete_user", "Eliminar usuarios", "user", "delete"),
        perm("manage_apartment", "Gestionar apartamentos", "apartment", "manage"),
        perm("manage_parking", "Gestionar parqueaderos", "parking", "manage"),
        perm("create_pqrs", "Crear PQRS", "pqrs", "create"),
        perm("read_pqrs", "Ver PQRS", "pqrs", "read"),
        perm("approve_pqrs", "Aprobar PQRS", "pqrs", "approve"),
        perm("manage_payment", "Gestionar pagos", "payment", "manage"),
        perm("manage_system", "Administración completa", "system", "manage"),
    ])


def seed_modules():
    return Module.insert_many([
        {"name": "Dashboard", "description": "Panel principal", "path": "/dashboard", "icon": "dashboard", "order": 1},
        {"name": "Usuarios", "description": "Gestión de usuarios", "path": "/usuarios", "icon": "users", "order": 2},
        {"name": "Apartamentos", "description": "Gestión de apartamentos", "path": "/apartamentos",
         "icon": "building", "order": 3},
        {"name": "Parqueaderos", "description": "Gestión de parqueaderos", "path": "/parqueaderos",
         "icon": "car", "order": 4},
        {"name": "PQRS", "description": "Peticiones, quejas y reclamos", "path": "/pqrs", "icon": "message", "order": 5},
        {"name": "Pagos", "description": "Gestión de pagos", "path": "/pagos", "icon": "credit-card", "order": 6},
    ])


def seed_roles(permissions, modules):
    by_name = {p.name: p.id for p in permissions}
    module_ids = {m.name: m.id for m in modules}
    admin_permissions = [p.id for p in permissions if p.category in ("system", "user", "payment")]
    owner_pqrs = [p.id for p in permissions if "pqrs" in p.name and p.action != "approve"]

    admin = Role.insert_many([{
        "name": "Super Administrador",
        "description": "Acceso completo al sistema",
        "level": 1,
        "type": "admin",
        "is_system": True,
        "modules": [{"module": m.id, "permissions": admin_permissions} for m in modules[:3]],
    }])[0]
    owner = Role.insert_many([{
        "name": "Propietario",
        "description": "Propietario de apartamento",
        "level": 5,
        "type": "owner",
        "is_system": True,
        "modules": [
            {"module": module_ids["Dashboard"], "permissions": [by_name["read_user"]]},
            {"module": module_ids["PQRS"], "permissions": owner_pqrs},
        ],
    }])[0]
    guard = Role.insert_many([{
        "name": "Vigilante",
        "description": "Personal de vigilancia",
        "level": 8,
        "type": "guard",
        "is_system": True,
        "modules": [
            {"module": module_ids["Dashboard"], "permissions": [by_name["read_user"]]},
            {"module": module_ids["Parqueaderos"], "permissions": [by_name["manage_parking"]]},
        ],
    }])[0]
    return admin, owner, guard


def seed_users(admin_role, owner_role, guard_role):
    users = [
        User(
            username="admin",
            email="admin@valhalla.com",
            status="active",
            role=admin_role.id,
            role_type="admin",
            profile={"full_name": "Carlos Ramírez Administrador", "document_type": "CC",
                     "document_number": "12345678", "telephone_number": "3001234567"},
        ),
        User(
            username="maria.garcia",
            email="maria.garcia@email.com",
            status="active",
            role=owner_role.id,
            role_type="owner",
            profile={"full_name": "María García López", "document_type": "CC",
                     "document_number": "52478963", "telephone_number": "3109876543"},
            owner_info={
                "is_active": True,
                "emergency_contact": {"full_name": "Pedro García", "telephone_number": "3204567890",
                                      "relationship": "esposo"},
                "apartments": [{"apartment_number": "301", "tower_name": "Torre A", "is_owner": True,
                                "move_in_date": datetime(2023, 1, 15, tzinfo=timezone.utc)}],
            },
        ),
        User(
            username="luis.martinez",
            email="luis.martinez@email.com",
            status="active",
            role=owner_role.id,
            role_type="owner",
            profile={"full_name": "Luis Martínez Rodríguez", "document_type": "CC",
                     "document_number": "74125896", "telephone_number": "3157891234"},
            owner_info={
                "is_active": True,
                "emergency_contact": {"full_name": "Ana Martínez", "telephone_number": "3162345678",
                                      "relationship": "esposa"},
                "apartments": [{"apartment_number": "102", "tower_name": "Torre B", "is_owner": True,
                                "move_in_date": datetime(2022, 8, 20, tzinfo=timezone.utc)}],
            },
        ),
        User(
            username="jorge.vigilante",
            email="jorge.morales@valhalla.com",
            status="active",
            role=guard_role.id,
            role_type="guard",
            profile={"full_name": "Jorge Morales Vigilante", "document_type": "CC",
                     "document_number": "98765432", "telephone_number": "3051234567"},
            guard_info={"shift": "night", "is_active": True},
        ),
    ]
    passwords = ["admin123", "maria123", "luis123", "jorge123"]
    for user, password in zip(users, passwords):
        user.set_password(password)
    return User.insert_many(users)


def _apartment(number, floor, bedrooms, bathrooms, area, monthly_fee, owner=None):
    apartment = {
        "number": number,
        "status": "occupied" if owner else "available",
        "details": {"floor": floor, "bedrooms": bedrooms, "bathrooms": bathrooms, "area": area},
        "financial": {"monthly_fee": monthly_fee},
    }
    if owner:
        full_name, document_number, phone = owner
        apartment["owner_info"] = {"full_name": full_name, "document_number": document_number, "phone": phone}
        apartment["financial"]["last_payment_date"] = datetime.now(timezone.utc)
    return apartment


def seed_towers():
    return Tower.insert_many([
        {
            "name": "Torre A",
            "description": "Torre principal del conjunto residencial Valhalla",
            "details": {"total_floors": 15, "apartments_per_floor": 2, "total_apartments": 3,
                        "elevators": 2, "emergency_stairs": 2},
            "apartments": [
                _apartment("101", 1, 3, 2, 85.5, 450000, ("Ana Rodríguez Pérez", "45678912", "3001112222")),
                _apartment("301", 3, 3, 2, 90.0, 480000, ("María García López", "52478963", "3109876543")),
                _apartment("501", 5, 2, 1, 65.0, 350000),
            ],
        },
        {
            "name": "Torre B",
            "description": "Torre secundaria con vista al parque central",
            "details": {"total_floors": 12, "apartments_per_floor": 2, "total_apartments": 2,
                        "elevators": 1, "emergency_stairs": 2},
            "apartments": [
                _apartment("102", 1, 2, 2, 75.0, 400000, ("Luis Martínez Rodríguez", "74125896", "3157891234")),
                _apartment("202", 2, 3, 2, 95.0, 520000, ("Isabella Fernández Torres", "67891234", "3186667777")),
            ],
        },
    ])


def seed_parking(maria, luis):
    return Parking.insert_many([
        {
            "number": "P-001",
            "status": "occupied",
            "type": "regular",
            "assigned_user_id": maria.id,
            "assigned_user_info": {"full_name": "María García López", "document_number": "52478963",
                                   "phone": "3109876543", "apartment_number": "301", "tower_name": "Torre A"},
            "details": {"floor": -1, "section": "A"},
            "vehicle": {"type": "car", "plate": "ABC-123", "brand": "Toyota", "model": "Corolla",
                        "year": 2020, "color": "Blanco"},
        },
        {
            "number": "P-002",
            "status": "occupied",
            "type": "covered",
            "assigned_user_id": luis.id,
            "assigned_user_info": {"full_name": "Luis Martínez Rodríguez", "document_number": "74125896",
                                   "phone": "3157891234", "apartment_number": "102", "tower_name": "Torre B"},
            "details": {"floor": -1, "section": "B", "has_cover": True},
            "vehicle": {"type": "car", "plate": "XYZ-789", "brand": "Chevrolet", "model": "Spark",
                        "year": 2019, "color": "Azul"},
        },
        {
            "number": "P-003",
            "status": "available",
            "type": "regular",
            "details": {"floor": -1, "section": "A"},
        },
    ])


def _sla(priority, opened):
    acknowledge, respond, resolve = SLA_HOURS[priority]
    return {"acknowledge_by": opened + timedelta(hours=acknowledge),
            "respond_by": opened + timedelta(hours=respond),
            "resolve_by": opened + timedelta(hours=resolve)}


def seed_pqrs(maria, luis):
    now = datetime.now(timezone.utc)
    return PQRS.insert_many([
        {
            "category": "queja",
            "title": "Ruido excesivo en horas nocturnas",
            "description": "Los vecinos del apartamento 402 están generando ruido excesivo después de las "
                           "10:00 PM, lo cual va en contra de las normas de convivencia del conjunto residencial.",
            "priority": "medium",
            "created_by": {
                "user_id": maria.id,
                "user_info": {"full_name": "María García López", "document_number": "52478963",
                              "apartment_number": "301", "tower_name": "Torre A", "phone": "3109876543",
                              "email": "maria.garcia@email.com"},
                "submission_method": "web",
            },
            "current_status": "in_progress",
            "sla": _sla("medium", now),
        },
        {
            "category": "peticion",
            "title": "Solicitud de reparación de equipos de gimnasio",
            "description": "Solicito comedidamente la reparación de la máquina caminadora ubicada en el "
                           "gimnasio del conjunto.",
            "priority": "low",
            "created_by": {
                "user_id": luis.id,
                "user_info": {"full_name": "Luis Martínez Rodríguez", "document_number": "74125896",
                              "apartment_number": "102", "tower_name": "Torre B", "phone": "3157891234",
                              "email": "luis.martinez@email.com"},
                "submission_method": "web",
            },
            "current_status": "pending_info",
            "sla": _sla("low", now),
        },
    ])


def seed_payments(maria, luis):
    paid_at = datetime(2024, 3, 10, tzinfo=timezone.utc)
    due = datetime(2024, 3, 15, tzinfo=timezone.utc)
    return Payment.insert_many([
        {
            "owner": maria.id,
            "total_amount": 480000,
            "payment_status": "completed",
            "payment_method": "bank_transfer",
            "reference_number": "ADMIN-MAR-2024-301",
            "receipt_number": generate_receipt_number(paid_at),
            "payment_date": paid_at,
            "due_date": due,
            "items": [{"description": "Cuota de administración - Marzo 2024", "amount": 480000,
                       "category": "maintenance"}],
            "notes": "Pago de cuota mensual Torre A - Apt 301",
            "apartment": "301",
            "tower": "Torre A",
        },
        {
            "owner": luis.id,
            "total_amount": 400000,
            "payment_status": "pending",
            "payment_method": "bank_transfer",
            "reference_number": "ADMIN-MAR-2024-102",
            "due_date": due,
            "items": [{"description": "Cuota de administración - Marzo 2024", "amount": 400000,
                       "category": "maintenance"}],
            "notes": "Pago pendiente Torre B - Apt 102",
            "apartment": "102",
            "tower": "Torre B",
        },
    ])


def seed_notifications(admin):
    now = datetime.now(timezone.utc)
    author = {"user_id": admin.id, "full_name": admin.profile.full_name, "role": "admin"}
    return Notification.insert_many([
        {
            "type": "maintenance",
            "title": "Mantenimiento preventivo de ascensores",
            "description": "Se realizará mantenimiento preventivo a los ascensores el próximo sábado "
                           "de 8:00 AM a 12:00 PM.",
            "target_role": "all",
            "priority": "medium",
            "status": "sent",
            "expires_at": now + timedelta(days=NOTIFICATION_EXPIRY_DAYS["maintenance"]),
            "metadata": {"source_module": "maintenance"},
            "created_by": author,
        },
        {
            "type": "payment",
            "title": "Recordatorio: Fecha límite de pago",
            "description": "La fecha límite para el pago de la cuota de administración es el día 15 de cada mes.",
            "target_role": "owner",
            "priority": "medium",
            "status": "sent",
            "expires_at": now + timedelta(days=NOTIFICATION_EXPIRY_DAYS["payment"]),
            "metadata": {"source_module": "payments"},
            "created_by": author,
        },
    ])


def _reserved_by(user_id, full_name, apartment_number, tower_name, phone):
    return {"user_id": user_id, "user_info": {"full_name": full_name, "apartment_number": apartment_number,
                                              "tower_name": tower_name, "phone": phone}}


def seed_reservations(maria, luis, jorge):
    return Reservation.insert_many([
        {
            "type": "pool",
            "status": "confirmed",
            "title": "Fiesta de cumpleaños infantil",
            "description": "Celebración de cumpleaños con niños en la piscina",
            "reservation_date": _day(7),
            "start_time": _day(7, 10),
            "end_time": _day(7, 12),
            "duration": 2,
            "event_type": "birthday",
            "reserved_by": _reserved_by(maria.id, "María García López", "301", "Torre A", "3109876543"),
            "attendees": {"expected_count": 4, "children_count": 2, "adult_count": 2},
            "cost": {"base_fee": 50000, "total": 50000, "currency": "COP"},
            "special_requests": "Necesitamos toallas adicionales para los niños",
        },
        {
            "type": "bbq_area",
            "status": "pending",
            "title": "Reunión familiar de fin de mes",
            "description": "Asado familiar para celebrar el fin de mes",
            "reservation_date": _day(9),
            "start_time": _day(9, 18),
            "end_time": _day(9, 22),
            "duration": 4,
            "event_type": "family_gathering",
            "reserved_by": _reserved_by(luis.id, "Luis Martínez Rodríguez", "102", "Torre B", "3157891234"),
            "attendees": {"expected_count": 8, "adult_count": 6, "children_count": 2},
            "cost": {"base_fee": 80000, "cleaning_fee": 20000, "total": 100000, "currency": "COP"},
            "special_requests": "Solicito mesa adicional para la comida",
        },
        {
            "type": "meeting_room",
            "status": "confirmed",
            "title": "Reunión de propietarios Torre B",
            "description": "Reunión mensual de los propietarios de Torre B",
            "reservation_date": _day(5),
            "start_time": _day(5, 19),
            "end_time": _day(5, 21),
            "duration": 2,
            "event_type": "meeting",
            "reserved_by": _reserved_by(12347, "Isabella Fernández Torres", "202", "Torre B", "3186667777"),
            "attendees": {"expected_count": 12, "adult_count": 12},
            "equipment": {"requested": [{"item": "Proyector", "quantity": 1, "cost": 30000},
                                        {"item": "Pantalla", "quantity": 1, "cost": 15000}]},
            "cost": {"base_fee": 60000, "equipment_fee": 45000, "total": 105000, "currency": "COP"},
            "special_requests": "Proyector y pantalla para presentación",
        },
        {
            "type": "gym",
            "status": "confirmed",
            "title": "Rutina matutina de ejercicio",
            "description": "Sesión personal de ejercicio en el gimnasio",
            "reservation_date": _day(11),
            "start_time": _day(11, 6),
            "end_time": _day(11, 7, 30),
            "duration": 1.5,
            "event_type": "exercise",
            "reserved_by": _reserved_by(jorge.id, "Jorge Morales Vigilante", "Personal", "Empleado", "3051234567"),
            "attendees": {"expected_count": 1, "adult_count": 1},
            "cost": {"base_fee": 25000, "total": 25000, "currency": "COP"},
        },
    ])


def _survey_response(user, apartment_number, tower_name, answers, started_at, minutes):
    question_ids, values = answers
    finished_at = started_at + timedelta(minutes=minutes)
    return {
        "respondent": {
            "user_id": user.id,
            "user_info": {"full_name": user.profile.full_name, "email": user.email,
                          "apartment_number": apartment_number, "tower_name": tower_name},
        },
        "answers": [{"question_id": qid, "answer": value} for qid, value in zip(question_ids, values)],
        "session": {"started_at": started_at, "submitted_at": finished_at, "completed_at": finished_at,
                    "time_spent": minutes * 60, "status": "completed", "progress_percent": 100},
    }


def seed_surveys(admin, maria, luis):
    q = [str(ObjectId()) for _ in range(5)]
    rating = {"validation": {"required": True}, "scale": {"min": 1, "max": 5, "step": 1}}
    questions = [
        {"id": q[0], "type": "rating", "order": 1,
         "title": "¿Cómo califica la atención del personal de portería?",
         "description": "Evalúe del 1 al 5 donde 1 es muy malo y 5 es excelente",
         "config": {**rating, "scale": {**rating["scale"], "min_label": "Muy malo", "max_label": "Excelente"}}},
        {"id": q[1], "type": "single_choice", "order": 2,
         "title": "¿Cuál considera el mejor horario para el mantenimiento de zonas comunes?",
         "description": "Seleccione la opción que mejor se adapte a sus necesidades",
         "config": {"validation": {"required": True}, "options": [
             {"value": "morning", "label": "Mañana (8:00 AM - 12:00 PM)", "order": 1},
             {"value": "afternoon", "label": "Tarde (2:00 PM - 6:00 PM)", "order": 2},
             {"value": "weekend", "label": "Fines de semana", "order": 3},
             {"value": "any", "label": "Cualquier horario", "order": 4},
         ]}},
        {"id": q[2], "type": "rating", "order": 3,
         "title": "¿Qué tan satisfecho está con el estado de las zonas comunes?",
         "description": "Incluye piscina, gimnasio, jardines, salones",
         "config": {**rating, "scale": {**rating["scale"], "min_label": "Muy insatisfecho",
                                        "max_label": "Muy satisfecho"}}},
        {"id": q[3], "type": "text", "order": 4,
         "title": "¿Qué nuevos servicios o amenidades le gustaría que tuviera el conjunto?",
         "description": "Comparta sus ideas y sugerencias",
         "config": {"validation": {"required": False, "max_length": 500},
                    "display": {"placeholder": "Escriba aquí sus sugerencias..."}}},
        {"id": q[4], "type": "yes_no", "order": 5,
         "title": "¿Recomendaría vivir en este conjunto residencial a familiares o amigos?",
         "description": "Esta pregunta nos ayuda a medir su satisfacción general",
         "config": {"validation": {"required": True}}},
    ]
    responses = [
        _survey_response(maria, "301", "Torre A", (q, [4, "morning", 5,
                         "Me gustaría que hubiera una zona de coworking y canchas de tenis", "yes"]),
                         _day(-3, 9), 15),
        _survey_response(luis, "102", "Torre B", (q, [5, "afternoon", 4,
                         "Sería genial tener una guardería para niños pequeños", "yes"]),
                         _day(-1, 14, 30), 12),
    ]
    return Survey.insert_many([{
        "name": "satisfaccion_servicios",
        "title": "Encuesta de Satisfacción - Servicios del Conjunto",
        "description": "Queremos conocer su opinión sobre los servicios y amenidades del conjunto "
                       "residencial para mejorar continuamente.",
        "category": "satisfaction",
        "purpose": "Evaluar la calidad de los servicios y identificar áreas de mejora",
        "settings": {
            "access": {"type": "restricted", "allowed_roles": ["owner", "resident"]},
            "responses": {"allow_multiple": False, "require_login": True, "allow_anonymous": True,
                          "max_responses": 1000},
            "display": {"show_progress_bar": True, "show_question_numbers": True, "questions_per_page": 5},
        },
        "lifecycle": {
            "status": "active",
            "starts_at": _day(-5),
            "ends_at": _day(25),
            "target_audience": {"description": "Propietarios y residentes del conjunto",
                                "estimated_size": 50, "actual_size": 45},
        },
        "created_by": {"user_id": admin.id, "user_info": {"full_name": admin.profile.full_name,
                                                          "role": "admin", "department": "Administración"}},
        "questions": questions,
        "responses": responses,
        "analytics": {"total_responses": 2, "completed_responses": 2, "completion_rate": 100,
                      "average_time_to_complete": 810},
    }])


def seed() -> dict:
    clear_collections()
    create_indexes()

    user_statuses, payment_statuses = seed_statuses()
    permissions = seed_permissions()
    modules = seed_modules()
    admin_role, owner_role, guard_role = seed_roles(permissions, modules)
    users = seed_users(admin_role, owner_role, guard_role)
    admin, maria, luis, jorge = users

    towers = seed_towers()
    summary = {
        "user_statuses": len(user_statuses),
        "payment_statuses": len(payment_statuses),
        "permissions": len(permissions),
        "modules": len(modules),
        "roles": 3,
        "users": len(users),
        "towers": len(towers),
        "apartments": sum(len(t.apartments) for t in towers),
        "parking": len(seed_parking(maria, luis)),
        "pqrs": len(seed_pqrs(maria, luis)),
        "payments": len(seed_payments(maria, luis)),
        "notifications": len(seed_notifications(admin)),
        "reservations": len(seed_reservations(maria, luis, jorge)),
        "surveys": len(seed_surveys(admin, maria, luis)),
    }
    return summary


def main() -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    try:
        if database.connect() is None:
            logger.error("MONGODB_URI is required to seed the database")
            return 1
        summary = seed()
    except (PyMongoError, AppError, ValueError):
        logger.exception("Seeding failed")
        return 1
    finally:
        database.close()

    for name, count in summary.items():
        logger.info("%-17s %d", name, count)
    logger.info("Login with admin/admin123, maria.garcia/maria123, luis.martinez/luis123 or jorge.vigilante/jorge123")
    return 0


if __name__ == "__main__":
    sys.exit(main())
