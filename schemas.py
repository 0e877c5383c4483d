"""
Database Schemas for the Valhalla Apartment Management System

Each `Document` subclass represents a collection in MongoDB; the collection
name is given by `collection_name`. Embedded sub-documents are plain
Pydantic models stored inline in their parent.

Field-level constraints (enums, ranges, lengths) are enforced by Pydantic.
Values derived from other fields are computed in `before_save`, which runs
every time a document is saved.
"""
import math
import random
import string
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

import bcrypt
from bson import ObjectId
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pymongo import ASCENDING, DESCENDING, TEXT

import database
from errors import ConflictError, DomainValidationError, NotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]

# Users are referenced by ObjectId string, legacy records by numeric id
UserId = Union[int, str]

Priority = Literal["low", "medium", "high", "urgent", "critical"]
RoleType = Literal["admin", "manager", "guard", "owner", "resident", "guest"]

PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3, "critical": 4}


def _new_id() -> str:
    return str(ObjectId())


def _lowercase_tags(values: List[str]) -> List[str]:
    return [v.strip().lower() for v in values if v.strip()]


Tags = Annotated[List[str], AfterValidator(_lowercase_tags)]


class Embedded(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class Document(BaseModel):
    """Base for every stored collection."""

    model_config = ConfigDict(str_strip_whitespace=True)

    collection_name: ClassVar[str] = ""
    index_specs: ClassVar[List[tuple]] = []

    id: Optional[str] = None
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None

    @property
    def is_new(self) -> bool:
        return self.id is None

    def before_save(self, now: datetime) -> None:
        pass

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"}, exclude_none=True)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]):
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def save(self, now: Optional[datetime] = None):
        now = now or utcnow()
        if self.created_at is None:
            self.created_at = now
        self.before_save(now)
        self.updated_at = now
        # Derived values must still satisfy the field constraints
        type(self).model_validate(self.model_dump())

        if self.is_new:
            self.id = database.create_document(self.collection_name, self.to_document())
        elif not database.replace_document(self.collection_name, self.id, self.to_document()):
            raise NotFoundError(f"{type(self).__name__} not found")
        return self

    @classmethod
    def get(cls, document_id: str):
        doc = database.get_document(cls.collection_name, document_id)
        return cls.from_document(doc) if doc else None

    @classmethod
    def get_or_404(cls, document_id: str):
        item = cls.get(document_id)
        if item is None:
            raise NotFoundError(f"{cls.__name__} not found")
        return item

    @classmethod
    def find(cls, filter_dict: Optional[Dict[str, Any]] = None, sort=None, limit=None) -> list:
        docs = database.get_documents(cls.collection_name, filter_dict or {}, limit=limit, sort=sort)
        return [cls.from_document(doc) for doc in docs]

    @classmethod
    def insert_many(cls, items: list) -> list:
        """Bulk insert. Validates every item but does not run `before_save`."""
        models = [cls.model_validate(item) for item in items]
        ids = database.insert_documents(cls.collection_name, [m.to_document() for m in models])
        for model, _id in zip(models, ids):
            model.id = _id
        return models

    @classmethod
    def delete_many(cls, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        return database.delete_documents(cls.collection_name, filter_dict or {})

    @classmethod
    def aggregate(cls, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return database.aggregate(cls.collection_name, pipeline)

    @classmethod
    def ensure_indexes(cls) -> List[str]:
        return database.ensure_indexes(cls.collection_name, cls.index_specs)


# -------------------- Shared --------------------
class ActorInfo(Embedded):
    """Denormalised snapshot of whoever performed an action."""

    user_id: Optional[UserId] = None
    full_name: Optional[str] = None
    role: Optional[str] = None


class ReviewerInfo(ActorInfo):
    notes: Optional[str] = None
    reason: Optional[str] = None


class Attachment(Embedded):
    filename: Optional[str] = None
    original_name: Optional[str] = None
    url: Optional[str] = None
    uploaded_at: UTCDateTime = Field(default_factory=utcnow)


# -------------------- Roles & Permissions --------------------
PermissionCategory = Literal[
    "user", "apartment", "parking", "pqrs", "reservation", "notification", "payment", "survey", "system"
]
PermissionAction = Literal["create", "read", "update", "delete", "manage", "approve", "reject"]
UserStatusName = Literal["active", "inactive", "suspended", "pending", "blocked"]

SYSTEM_ROLE_NAMES = {"super_admin", "admin", "owner"}


class Permission(Document):
    collection_name: ClassVar[str] = "permissions"
    index_specs: ClassVar[List[tuple]] = [
        ([("name", ASCENDING)], {"unique": True}),
        ([("category", ASCENDING), ("action", ASCENDING)], {}),
        ([("name", ASCENDING), ("is_active", ASCENDING)], {}),
    ]

    name: str = Field(..., max_length=30)
    description: str = Field(..., max_length=500)
    category: PermissionCategory
    action: PermissionAction
    resource: str = Field(..., max_length=50)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _lowercase_name(cls, v: str) -> str:
        return v.lower()

    @classmethod
    def find_by_category(cls, category: str) -> list:
        return cls.find({"category": category, "is_active": True}, sort=[("name", ASCENDING)])

    @classmethod
    def find_by_action(cls, action: str) -> list:
        return cls.find(
            {"action": action, "is_active": True},
            sort=[("category", ASCENDING), ("name", ASCENDING)],
        )


class Module(Document):
    collection_name: ClassVar[str] = "modules"
    index_specs: ClassVar[List[tuple]] = [
        ([("name", ASCENDING)], {"unique": True}),
        ([("path", ASCENDING)], {"unique": True, "sparse": True}),
        ([("name", ASCENDING), ("is_active", ASCENDING)], {}),
        ([("parent_module", ASCENDING), ("order", ASCENDING)], {}),
    ]

    name: str = Field(..., max_length=30)
    description: str = Field(..., max_length=500)
    path: Optional[str] = Field(None, max_length=100)
    icon: Optional[str] = Field(None, max_length=50)
    order: int = Field(0, ge=0)
    parent_module: Optional[str] = None
    is_active: bool = True
    is_visible: bool = True

    def full_path(self, parent: Optional["Module"] = None) -> Optional[str]:
        if not self.parent_module or parent is None:
            return self.path
        return f"{parent.path or ''}{self.path or ''}"

    @classmethod
    def get_hierarchy(cls) -> list:
        return cls.find({"is_active": True}, sort=[("order", ASCENDING), ("name", ASCENDING)])

    @classmethod
    def get_root_modules(cls) -> list:
        return cls.find(
            {"parent_module": None, "is_active": True, "is_visible": True},
            sort=[("order", ASCENDING), ("name", ASCENDING)],
        )


class ModuleAccess(Embedded):
    module: str
    permissions: List[str] = Field(default_factory=list)


class Role(Document):
    collection_name: ClassVar[str] = "roles"
    index_specs: ClassVar[List[tuple]] = [
        ([("name", ASCENDING)], {"unique": True}),
        ([("name", ASCENDING), ("is_active", ASCENDING)], {}),
        ([("type", ASCENDING), ("level", ASCENDING)], {}),
        ([("modules.module", ASCENDING)], {}),
    ]

    name: str = Field(..., max_length=30)
    description: str = Field(..., max_length=500)
    level: int = Field(5, ge=1, le=10)
    type: RoleType
    modules: List[ModuleAccess] = Field(default_factory=list)
    is_active: bool = True
    is_system: bool = False

    def before_save(self, now: datetime) -> None:
        if self.name in SYSTEM_ROLE_NAMES:
            self.is_system = True

    @property
    def permission_count(self) -> int:
        return sum(len(access.permissions) for access in self.modules)

    def has_permission(self, permission_name: str, permissions_by_id: Dict[str, "Permission"]) -> bool:
        for access in self.modules:
            for permission_id in access.permissions:
                permission = permissions_by_id.get(permission_id)
                if permission is not None and permission.name == permission_name:
                    return True
        return False

    def has_module_access(self, module_name: str, modules_by_id: Dict[str, "Module"]) -> bool:
        for access in self.modules:
            module = modules_by_id.get(access.module)
            if module is not None and module.name == module_name:
                return True
        return False

    def _find_access(self, module_id: str) -> Optional[ModuleAccess]:
        for access in self.modules:
            if access.module == str(module_id):
                return access
        return None

    def add_module_permissions(self, module_id: str, permission_ids: List[str]):
        access = self._find_access(module_id)
        if access is None:
            self.modules.append(
                ModuleAccess(module=str(module_id), permissions=[str(p) for p in permission_ids])
            )
        else:
            for permission_id in permission_ids:
                if str(permission_id) not in access.permissions:
                    access.permissions.append(str(permission_id))
        return self.save()

    def remove_module_permissions(self, module_id: str, permission_ids: Optional[List[str]] = None):
        access = self._find_access(module_id)
        if access is None:
            return self

        if permission_ids is None:
            self.modules.remove(access)
        else:
            removed = {str(p) for p in permission_ids}
            access.permissions = [p for p in access.permissions if p not in removed]
            if not access.permissions:
                self.modules.remove(access)
        return self.save()

    @classmethod
    def find_by_type(cls, role_type: str) -> list:
        return cls.find(
            {"type": role_type, "is_active": True},
            sort=[("level", ASCENDING), ("name", ASCENDING)],
        )

    @classmethod
    def find_with_permissions(cls, role_id: str) -> Optional["RoleGrants"]:
        role = cls.get(role_id)
        if role is None:
            return None

        module_ids = [database.object_id(a.module) for a in role.modules]
        permission_ids = [database.object_id(p) for a in role.modules for p in a.permissions]
        modules = Module.find({"_id": {"$in": module_ids}}) if module_ids else []
        permissions = Permission.find({"_id": {"$in": permission_ids}}) if permission_ids else []
        return RoleGrants(
            role=role,
            modules={m.id: m for m in modules},
            permissions={p.id: p for p in permissions},
        )


class RoleGrants(BaseModel):
    """A role together with the modules and permissions it references."""

    role: Role
    modules: Dict[str, Module] = Field(default_factory=dict)
    permissions: Dict[str, Permission] = Field(default_factory=dict)

    def has_permission(self, permission_name: str) -> bool:
        return self.role.has_permission(permission_name, self.permissions)

    def has_module_access(self, module_name: str) -> bool:
        return self.role.has_module_access(module_name, self.modules)


class UserStatus(Document):
    collection_name: ClassVar[str] = "user_statuses"
    index_specs: ClassVar[List[tuple]] = [
        ([("name", ASCENDING)], {"unique": True}),
    ]

    name: UserStatusName
    description: Optional[str] = Field(None, max_length=200)
    allow_login: bool = True
    is_active: bool = True


# -------------------- Users --------------------
DocumentType = Literal["CC", "CE", "TI", "PP", "NIT"]
GuardShift = Literal["morning", "afternoon", "night", "rotating"]

PHONE_PATTERN = r"^[0-9+\-\s()]+$"


def _hash_password(raw: str) -> str:
    return bcrypt.hashpw(raw.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _is_password_hash(value: str) -> bool:
    return len(value) == 60 and value[:4] in ("$2a$", "$2b$", "$2y$")


class Profile(Embedded):
    full_name: str = Field(..., max_length=100)
    document_type: DocumentType
    document_number: str = Field(..., max_length=30)
    telephone_number: str = Field(..., max_length=12, pattern=PHONE_PATTERN)
    photo: Optional[str] = None


class Pet(Embedded):
    id: str = Field(default_factory=_new_id)
    name: str = Field(..., max_length=30)
    species: str = Field(..., max_length=30)
    breed: Optional[str] = Field(None, max_length=30)
    vaccination_card: Optional[str] = None
    photo: Optional[str] = None
    is_active: bool = True
    registered_at: UTCDateTime = Field(default_factory=utcnow)


class ApartmentAssociation(Embedded):
    apartment_id: Optional[UserId] = None
    apartment_number: Optional[str] = None
    tower_name: Optional[str] = None
    is_owner: bool = True
    is_tenant: bool = False
    move_in_date: Optional[UTCDateTime] = None
    move_out_date: Optional[UTCDateTime] = None


class EmergencyContact(Embedded):
    full_name: Optional[str] = None
    telephone_number: Optional[str] = Field(None, max_length=12, pattern=PHONE_PATTERN)
    relationship: Optional[str] = None


class OwnerInfo(Embedded):
    is_active: bool = True
    is_tenant: bool = False
    birth_date: Optional[UTCDateTime] = None
    pets: List[Pet] = Field(default_factory=list)
    apartments: List[ApartmentAssociation] = Field(default_factory=list)
    emergency_contact: Optional[EmergencyContact] = None

    @field_validator("birth_date")
    @classmethod
    def _birth_date_in_past(cls, v):
        if v is not None and v >= utcnow():
            raise ValueError("Birth date must be in the past")
        return v


class GuardInfo(Embedded):
    arl: Optional[str] = Field(None, max_length=30)
    eps: Optional[str] = Field(None, max_length=30)
    shift: Optional[GuardShift] = None
    is_active: bool = True
    start_date: UTCDateTime = Field(default_factory=utcnow)


class User(Document):
    collection_name: ClassVar[str] = "users"
    index_specs: ClassVar[List[tuple]] = [
        ([("username", ASCENDING)], {"unique": True}),
        ([("profile.document_number", ASCENDING)], {"unique": True}),
        ([("email", ASCENDING)], {"unique": True, "sparse": True}),
        ([("role", ASCENDING), ("status", ASCENDING)], {}),
        ([("role_type", ASCENDING)], {}),
        ([("owner_info.is_active", ASCENDING)], {}),
        ([("created_at", DESCENDING)], {}),
    ]

    username: str = Field(..., min_length=3, max_length=30)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    status: UserStatusName = "pending"
    role: str
    role_type: RoleType = "resident"
    profile: Profile
    owner_info: Optional[OwnerInfo] = None
    guard_info: Optional[GuardInfo] = None
    last_login: Optional[UTCDateTime] = None
    is_verified: bool = False

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    def before_save(self, now: datetime) -> None:
        if self.role_type == "owner" and self.owner_info is None:
            self.owner_info = OwnerInfo()
        if self.role_type == "guard" and self.guard_info is None:
            self.guard_info = GuardInfo()
        if self.password and not _is_password_hash(self.password):
            self.password = _hash_password(self.password)

    def set_password(self, raw: str) -> None:
        if not raw or len(raw) < 6:
            raise DomainValidationError("Password must be at least 6 characters")
        self.password = _hash_password(raw)

    def check_password(self, raw: str) -> bool:
        if not self.password or not _is_password_hash(self.password):
            return False
        return bcrypt.checkpw(raw.encode("utf-8"), self.password.encode("utf-8"))

    def to_public(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"password"})

    @property
    def full_profile(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.profile.full_name,
            "role": self.role,
            "status": self.status,
        }

    def add_pet(self, pet):
        if self.owner_info is None:
            self.owner_info = OwnerInfo()
        self.owner_info.pets.append(Pet.model_validate(pet))
        return self.save()

    def remove_pet(self, pet_id: str):
        pets = self.owner_info.pets if self.owner_info else []
        for pet in pets:
            if pet.id == pet_id:
                pets.remove(pet)
                return self.save()
        raise NotFoundError("Pet not found")

    def has_permission(self, permission_name: str, grants: Optional[RoleGrants] = None) -> bool:
        if grants is None or not grants.role.modules:
            return False
        return grants.has_permission(permission_name)

    def has_module_access(self, module_name: str, grants: Optional[RoleGrants] = None) -> bool:
        if grants is None or not grants.role.modules:
            return False
        return grants.has_module_access(module_name)

    def can_access(self, resource: str, action: str, grants: Optional[RoleGrants] = None) -> bool:
        if grants is None:
            return False
        return self.has_permission(f"{action}_{resource}", grants)

    @classmethod
    def find_by_role(cls, role_id: str) -> list:
        return cls.find({"role": role_id, "status": "active"})

    @classmethod
    def find_by_role_type(cls, role_type: str) -> list:
        return cls.find({"role_type": role_type, "status": "active"})

    @classmethod
    def find_owners(cls) -> list:
        return cls.find({"role_type": "owner", "status": "active", "owner_info.is_active": True})

    @classmethod
    def find_guards(cls) -> list:
        return cls.find({"role_type": "guard", "status": "active", "guard_info.is_active": True})


# -------------------- Towers & Apartments --------------------
ApartmentStatus = Literal["available", "occupied", "maintenance", "reserved"]


class ContactInfo(Embedded):
    full_name: Optional[str] = None
    document_number: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ApartmentParking(Embedded):
    has_parking: bool = False
    parking_number: Optional[str] = None
    parking_type: Literal["regular", "covered", "motorcycle"] = "regular"


class ApartmentDetails(Embedded):
    bedrooms: int = Field(2, ge=1, le=10)
    bathrooms: int = Field(2, ge=1, le=10)
    area: Optional[float] = Field(None, ge=20, le=500)  # square meters
    floor: Optional[int] = Field(None, ge=1, le=50)
    balcony: bool = False
    parking: ApartmentParking = Field(default_factory=ApartmentParking)


class ApartmentFinancial(Embedded):
    monthly_fee: float = Field(0, ge=0)
    administration_fee: float = Field(0, ge=0)
    last_payment_date: Optional[UTCDateTime] = None
    payment_status: Literal["current", "overdue", "partial"] = "current"


class OccupancyRecord(Embedded):
    owner_id: Optional[UserId] = None
    owner_name: Optional[str] = None
    move_in_date: Optional[UTCDateTime] = None
    move_out_date: Optional[UTCDateTime] = None
    reason: Optional[str] = None
    is_tenant: bool = False


class Apartment(Embedded):
    number: str = Field(..., max_length=4)
    status: ApartmentStatus = "available"
    owner_id: Optional[UserId] = None
    owner_info: Optional[ContactInfo] = None
    details: ApartmentDetails = Field(default_factory=ApartmentDetails)
    financial: ApartmentFinancial = Field(default_factory=ApartmentFinancial)
    occupancy_history: List[OccupancyRecord] = Field(default_factory=list)
    created_at: UTCDateTime = Field(default_factory=utcnow)
    updated_at: UTCDateTime = Field(default_factory=utcnow)


class TowerDetails(Embedded):
    total_floors: int = Field(..., ge=1, le=100)
    apartments_per_floor: int = Field(..., ge=1, le=20)
    total_apartments: int
    elevators: int = Field(1, ge=0, le=10)
    emergency_stairs: int = Field(2, ge=1, le=5)


class Amenity(Embedded):
    name: str
    description: Optional[str] = None
    is_active: bool = True
    floor: Optional[int] = None
    capacity: Optional[int] = None
    requires_reservation: bool = False


class Tower(Document):
    collection_name: ClassVar[str] = "towers"
    index_specs: ClassVar[List[tuple]] = [
        ([("name", ASCENDING)], {"unique": True}),
        ([("apartments.number", ASCENDING), ("name", ASCENDING)], {}),
        ([("apartments.owner_id", ASCENDING)], {}),
        ([("apartments.status", ASCENDING)], {}),
    ]

    name: str = Field(..., max_length=30)
    description: Optional[str] = None
    apartments: List[Apartment] = Field(default_factory=list)
    details: TowerDetails
    amenities: List[Amenity] = Field(default_factory=list)
    is_active: bool = True

    @property
    def occupied_apartments(self) -> int:
        return sum(1 for apt in self.apartments if apt.status == "occupied")

    @property
    def available_apartments(self) -> int:
        return sum(1 for apt in self.apartments if apt.status == "available")

    def get_apartment(self, number: str) -> Apartment:
        for apartment in self.apartments:
            if apartment.number == number:
                return apartment
        raise NotFoundError("Apartment not found")

    def add_apartment(self, apartment):
        self.apartments.append(Apartment.model_validate(apartment))
        return self.save()

    def update_apartment_status(self, number: str, status: ApartmentStatus, now: Optional[datetime] = None):
        apartment = self.get_apartment(number)
        apartment.status = status
        apartment.updated_at = now or utcnow()
        return self.save(now)

    def assign_owner(
        self,
        number: str,
        owner_id: UserId,
        owner_info,
        is_tenant: bool = False,
        now: Optional[datetime] = None,
    ):
        now = now or utcnow()
        apartment = self.get_apartment(number)
        info = ContactInfo.model_validate(owner_info or {})
        apartment.owner_id = owner_id
        apartment.owner_info = info
        apartment.status = "occupied"
        apartment.updated_at = now
        apartment.occupancy_history.append(
            OccupancyRecord(
                owner_id=owner_id,
                owner_name=info.full_name,
                move_in_date=now,
                is_tenant=is_tenant,
            )
        )
        return self.save(now)

    @classmethod
    def find_available_apartments(cls) -> list:
        """Towers holding at least one available apartment, trimmed to those apartments."""
        towers = cls.find({"apartments.status": "available"})
        for tower in towers:
            tower.apartments = [apt for apt in tower.apartments if apt.status == "available"]
        return towers

    @classmethod
    def find_by_owner(cls, owner_id: UserId) -> list:
        return cls.find({"apartments.owner_id": owner_id})


# -------------------- Parking --------------------
ParkingStatus = Literal["available", "occupied", "reserved", "maintenance", "out_of_service"]
ParkingType = Literal["regular", "covered", "motorcycle", "disabled", "visitor", "electric"]
VehicleType = Literal["car", "motorcycle", "truck", "van", "suv", "bicycle"]


class AssignedUserInfo(Embedded):
    full_name: Optional[str] = None
    document_number: Optional[str] = None
    phone: Optional[str] = None
    apartment_number: Optional[str] = None
    tower_name: Optional[str] = None


class VehicleDocument(Embedded):
    number: Optional[str] = None
    expiry_date: Optional[UTCDateTime] = None
    is_valid: bool = True


class VehicleDocuments(Embedded):
    soat: VehicleDocument = Field(default_factory=VehicleDocument)
    technical_review: VehicleDocument = Field(default_factory=VehicleDocument)
    registration: VehicleDocument = Field(default_factory=VehicleDocument)


class Vehicle(Embedded):
    type: Optional[VehicleType] = None
    plate: Optional[str] = Field(None, max_length=10)
    brand: Optional[str] = Field(None, max_length=30)
    model: Optional[str] = Field(None, max_length=30)
    year: Optional[int] = Field(None, ge=1900)
    color: Optional[str] = Field(None, max_length=20)
    engine_cc: Optional[str] = Field(None, max_length=30)
    documents: VehicleDocuments = Field(default_factory=VehicleDocuments)

    @field_validator("plate")
    @classmethod
    def _uppercase_plate(cls, v):
        return v.upper() if v else v

    @field_validator("year")
    @classmethod
    def _year_not_too_far_ahead(cls, v):
        if v is not None and v > utcnow().year + 2:
            raise ValueError(f"Vehicle year cannot be later than {utcnow().year + 2}")
        return v


class Dimensions(Embedded):
    length: Optional[float] = Field(None, ge=2, le=10)  # meters
    width: Optional[float] = Field(None, ge=1.5, le=5)
    height: Optional[float] = Field(None, ge=1.8, le=3)


class ParkingDetails(Embedded):
    floor: int = Field(..., ge=-5, le=10)  # negative floors are basement levels
    section: Optional[str] = Field(None, max_length=5)
    dimensions: Dimensions = Field(default_factory=Dimensions)
    has_electric_charging: bool = False
    has_cover: bool = False
    has_storage: bool = False
    security_level: Literal["basic", "medium", "high"] = "basic"


class ParkingReservation(Embedded):
    id: str = Field(default_factory=_new_id)
    user_id: Optional[UserId] = None
    user_info: AssignedUserInfo = Field(default_factory=AssignedUserInfo)
    start_date: UTCDateTime
    end_date: UTCDateTime
    purpose: Literal["visitor", "maintenance", "moving", "event", "temporary"]
    status: Literal["pending", "approved", "rejected", "cancelled", "completed"] = "pending"
    created_at: UTCDateTime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date < self.start_date:
            raise ValueError("Reservation end date must not be before its start date")
        return self


class UsageVehicle(Embedded):
    type: Optional[str] = None
    plate: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None


class UsageRecord(Embedded):
    user_id: Optional[UserId] = None
    user_info: AssignedUserInfo = Field(default_factory=AssignedUserInfo)
    vehicle: UsageVehicle = Field(default_factory=UsageVehicle)
    assigned_date: Optional[UTCDateTime] = None
    unassigned_date: Optional[UTCDateTime] = None
    reason: Optional[str] = None
    notes: Optional[str] = None


class Contractor(Embedded):
    name: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None


class MaintenanceRecord(Embedded):
    id: str = Field(default_factory=_new_id)
    type: Literal["cleaning", "repair", "painting", "electrical", "security", "other"]
    description: str = Field(..., max_length=500)
    performed_by: Optional[Contractor] = None
    cost: Optional[float] = Field(None, ge=0)
    start_date: UTCDateTime
    end_date: Optional[UTCDateTime] = None
    status: Literal["scheduled", "in_progress", "completed", "cancelled"] = "scheduled"
    created_at: UTCDateTime = Field(default_factory=utcnow)


class Parking(Document):
    collection_name: ClassVar[str] = "parkings"
    index_specs: ClassVar[List[tuple]] = [
        ([("number", ASCENDING)], {"unique": True}),
        ([("assigned_user_id", ASCENDING)], {}),
        ([("status", ASCENDING), ("type", ASCENDING)], {}),
        ([("vehicle.plate", ASCENDING)], {}),
        ([("details.floor", ASCENDING), ("details.section", ASCENDING)], {}),
        ([("is_active", ASCENDING), ("status", ASCENDING)], {}),
    ]

    number: str = Field(..., max_length=5)
    status: ParkingStatus = "available"
    type: ParkingType = "regular"
    assigned_user_id: Optional[str] = None
    assigned_user_info: Optional[AssignedUserInfo] = None
    vehicle: Optional[Vehicle] = None
    details: ParkingDetails
    reservations: List[ParkingReservation] = Field(default_factory=list)
    usage_history: List[UsageRecord] = Field(default_factory=list)
    maintenance: List[MaintenanceRecord] = Field(default_factory=list)
    monthly_fee: float = Field(0, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True

    @model_validator(mode="after")
    def _occupied_needs_vehicle(self):
        if self.status == "occupied":
            if self.vehicle is None or not self.vehicle.type or not self.vehicle.plate:
                raise ValueError("Vehicle type and plate are required for an occupied parking space")
        return self

    @property
    def is_occupied(self) -> bool:
        return self.status == "occupied"

    @property
    def is_available(self) -> bool:
        return self.status == "available"

    def current_reservation(self, now: Optional[datetime] = None) -> Optional[ParkingReservation]:
        now = now or utcnow()
        for reservation in self.reservations:
            if reservation.status == "approved" and reservation.start_date <= now <= reservation.end_date:
                return reservation
        return None

    def assign_to_user(self, user_id: str, user_info, vehicle, now: Optional[datetime] = None):
        if self.status != "available":
            raise ConflictError("Parking space is not available")

        now = now or utcnow()
        info = AssignedUserInfo.model_validate(user_info or {})
        vehicle = Vehicle.model_validate(vehicle or {})
        self.assigned_user_id = user_id
        self.assigned_user_info = info
        self.vehicle = vehicle
        self.status = "occupied"
        self.usage_history.append(
            UsageRecord(
                user_id=user_id,
                user_info=info,
                vehicle=UsageVehicle(
                    type=vehicle.type, plate=vehicle.plate, brand=vehicle.brand, model=vehicle.model
                ),
                assigned_date=now,
            )
        )
        return self.save(now)

    def unassign_from_user(self, reason: Optional[str] = None, notes: Optional[str] = None,
                           now: Optional[datetime] = None):
        if self.status != "occupied":
            raise ConflictError("Parking space is not occupied")

        now = now or utcnow()
        if self.usage_history and self.usage_history[-1].unassigned_date is None:
            last_usage = self.usage_history[-1]
            last_usage.unassigned_date = now
            last_usage.reason = reason
            last_usage.notes = notes

        self.assigned_user_id = None
        self.assigned_user_info = None
        self.vehicle = None
        self.status = "available"
        return self.save(now)

    def create_reservation(self, reservation):
        reservation = ParkingReservation.model_validate(reservation)
        for existing in self.reservations:
            if (
                existing.status == "approved"
                and reservation.start_date <= existing.end_date
                and reservation.end_date >= existing.start_date
            ):
                raise ConflictError("Parking space is already reserved for this time period")
        self.reservations.append(reservation)
        return self.save()

    def add_maintenance_record(self, record):
        record = MaintenanceRecord.model_validate(record)
        self.maintenance.append(record)
        if record.status == "in_progress":
            self.status = "maintenance"
        return self.save()

    @classmethod
    def find_available(cls, parking_type: Optional[str] = None, floor: Optional[int] = None) -> list:
        query = {"status": "available", "is_active": True}
        if parking_type:
            query["type"] = parking_type
        if floor is not None:
            query["details.floor"] = floor
        return cls.find(query)

    @classmethod
    def find_by_user(cls, user_id: str) -> list:
        return cls.find({"assigned_user_id": user_id})

    @classmethod
    def find_by_floor(cls, floor: int) -> list:
        return cls.find({"details.floor": floor, "is_active": True})

    @classmethod
    def get_occupancy_stats(cls) -> List[Dict[str, Any]]:
        return cls.aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}])


# -------------------- PQRS --------------------
PQRSCategory = Literal["peticion", "queja", "reclamo", "sugerencia"]
PQRSStatus = Literal["received", "in_review", "in_progress", "pending_info", "resolved", "closed", "rejected"]
Department = Literal["administration", "maintenance", "security", "cleaning", "legal", "finance"]

# (acknowledge, respond, resolve) deadlines in hours
SLA_HOURS = {
    "critical": (1, 4, 24),
    "urgent": (2, 8, 72),
    "high": (4, 24, 168),
    "medium": (8, 48, 336),
    "low": (24, 120, 720),
}

OPEN_PQRS_EXCLUDED = ["resolved", "closed"]


class FileAttachment(Embedded):
    filename: str
    original_name: str
    size: int
    mimetype: str
    url: str
    uploaded_at: UTCDateTime = Field(default_factory=utcnow)


class PQRSAnswer(Embedded):
    content: Optional[str] = Field(None, max_length=2000)
    answered_by: Optional[ActorInfo] = None
    answered_at: Optional[UTCDateTime] = None
    files: List[Attachment] = Field(default_factory=list)


class AuthorInfo(Embedded):
    full_name: str
    document_number: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    apartment_number: Optional[str] = None
    tower_name: Optional[str] = None


class PQRSAuthor(Embedded):
    user_id: str
    user_info: AuthorInfo
    submission_method: Literal["web", "mobile", "email", "physical", "phone"] = "web"


class TrackingEntry(Embedded):
    id: str = Field(default_factory=_new_id)
    user_id: UserId
    user_info: ActorInfo = Field(default_factory=ActorInfo)
    status: PQRSStatus
    comment: Optional[str] = Field(None, max_length=500)
    internal_notes: Optional[str] = Field(None, max_length=1000)
    estimated_resolution_date: Optional[UTCDateTime] = None
    attachments: List[Attachment] = Field(default_factory=list)
    date_update: UTCDateTime = Field(default_factory=utcnow)


class Assignment(Embedded):
    department: Department = "administration"
    user_id: Optional[UserId] = None
    full_name: Optional[str] = None
    assigned_at: Optional[UTCDateTime] = None


class Satisfaction(Embedded):
    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=500)
    submitted_at: Optional[UTCDateTime] = None


class Resolution(Embedded):
    resolved_by: Optional[ActorInfo] = None
    resolved_at: Optional[UTCDateTime] = None
    resolution_type: Optional[Literal["solved", "workaround", "no_action_needed", "duplicate", "invalid"]] = None
    satisfaction: Optional[Satisfaction] = None
    follow_up_required: bool = False
    follow_up_date: Optional[UTCDateTime] = None


class SLA(Embedded):
    acknowledge_by: Optional[UTCDateTime] = None
    respond_by: Optional[UTCDateTime] = None
    resolve_by: Optional[UTCDateTime] = None
    acknowledged_at: Optional[UTCDateTime] = None
    responded_at: Optional[UTCDateTime] = None
    is_acknowledge_breached: bool = False
    is_response_breached: bool = False
    is_resolution_breached: bool = False


class CommunicationParty(Embedded):
    user_id: Optional[UserId] = None
    full_name: Optional[str] = None
    contact: Optional[str] = None  # email or phone


class Communication(Embedded):
    type: Literal["email", "sms", "call", "meeting", "notification"]
    direction: Literal["inbound", "outbound"]
    content: Optional[str] = None
    sent_by: Optional[CommunicationParty] = None
    sent_to: Optional[CommunicationParty] = None
    sent_at: UTCDateTime = Field(default_factory=utcnow)
    status: Literal["sent", "delivered", "read", "failed"] = "sent"


class RelatedPQRS(Embedded):
    pqrs_id: str
    relationship: Optional[Literal["duplicate", "related", "follow_up", "escalation"]] = None
    notes: Optional[str] = None


class UpdatePreferences(Embedded):
    email_updates: bool = True
    sms_updates: bool = False
    push_notifications: bool = True


class PQRS(Document):
    collection_name: ClassVar[str] = "pqrs"
    index_specs: ClassVar[List[tuple]] = [
        ([("created_by.user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("current_status", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("category", ASCENDING), ("current_status", ASCENDING)], {}),
        ([("priority", ASCENDING), ("current_status", ASCENDING)], {}),
        ([("assigned_to.department", ASCENDING), ("current_status", ASCENDING)], {}),
        ([("assigned_to.user_id", ASCENDING)], {}),
        ([("sla.resolve_by", ASCENDING), ("current_status", ASCENDING)], {}),
        ([("tags", ASCENDING)], {}),
        ([("is_archived", ASCENDING), ("created_at", DESCENDING)], {}),
        (
            [("title", TEXT), ("description", TEXT), ("answer.content", TEXT), ("tracking.comment", TEXT)],
            {"name": "pqrs_text"},
        ),
    ]

    category: PQRSCategory
    title: str = Field(..., max_length=100)
    description: str = Field(..., max_length=2000)
    files: List[FileAttachment] = Field(default_factory=list)
    answer: Optional[PQRSAnswer] = None
    created_by: PQRSAuthor
    tracking: List[TrackingEntry] = Field(default_factory=list)
    current_status: PQRSStatus = "received"
    priority: Priority = "medium"
    assigned_to: Assignment = Field(default_factory=Assignment)
    resolution: Resolution = Field(default_factory=Resolution)
    sla: SLA = Field(default_factory=SLA)
    communications: List[Communication] = Field(default_factory=list)
    related_pqrs: List[RelatedPQRS] = Field(default_factory=list)
    tags: Tags = Field(default_factory=list)
    auto_close_after_resolution: int = 7  # days
    notifications: UpdatePreferences = Field(default_factory=UpdatePreferences)
    is_public: bool = False
    is_anonymous: bool = False
    is_archived: bool = False
    archived_at: Optional[UTCDateTime] = None
    archived_by: Optional[ActorInfo] = None

    def before_save(self, now: datetime) -> None:
        if self.is_new:
            acknowledge, respond, resolve = SLA_HOURS[self.priority]
            self.sla.acknowledge_by = now + timedelta(hours=acknowledge)
            self.sla.respond_by = now + timedelta(hours=respond)
            self.sla.resolve_by = now + timedelta(hours=resolve)

        if not (self.sla.acknowledge_by and self.sla.respond_by and self.sla.resolve_by):
            raise DomainValidationError("SLA deadlines are required")

        if self.sla.acknowledged_at is None and now > self.sla.acknowledge_by:
            self.sla.is_acknowledge_breached = True
        if self.sla.responded_at is None and now > self.sla.respond_by:
            self.sla.is_response_breached = True
        if self.resolution.resolved_at is None and now > self.sla.resolve_by:
            self.sla.is_resolution_breached = True

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.current_status in OPEN_PQRS_EXCLUDED or self.sla.resolve_by is None:
            return False
        return (now or utcnow()) > self.sla.resolve_by

    def days_open(self, now: Optional[datetime] = None) -> int:
        if self.created_at is None:
            return 0
        end = self.resolution.resolved_at or now or utcnow()
        return math.ceil((end - self.created_at) / timedelta(days=1))

    @property
    def last_update(self) -> Optional[datetime]:
        if not self.tracking:
            return self.created_at
        return self.tracking[-1].date_update

    def add_tracking(self, entry, now: Optional[datetime] = None):
        now = now or utcnow()
        entry = TrackingEntry.model_validate(entry)
        self.tracking.append(entry)
        self.current_status = entry.status

        if entry.status == "in_review" and self.sla.acknowledged_at is None:
            self.sla.acknowledged_at = now

        if self.answer and self.answer.content and self.sla.responded_at is None:
            self.sla.responded_at = now

        if entry.status == "resolved" and self.resolution.resolved_at is None:
            self.resolution.resolved_at = now
            self.resolution.resolved_by = ActorInfo(
                user_id=entry.user_id,
                full_name=entry.user_info.full_name,
                role=entry.user_info.role,
            )
        return self.save(now)

    def add_answer(self, answer, now: Optional[datetime] = None):
        now = now or utcnow()
        self.answer = PQRSAnswer.model_validate(answer)
        if self.answer.answered_at is None:
            self.answer.answered_at = now
        if self.sla.responded_at is None:
            self.sla.responded_at = now
        return self.save(now)

    def assign_to(self, assignment, now: Optional[datetime] = None):
        now = now or utcnow()
        data = dict(assignment)
        data["assigned_at"] = now
        self.assigned_to = Assignment.model_validate(data)
        return self.save(now)

    def add_communication(self, communication):
        self.communications.append(Communication.model_validate(communication))
        return self.save()

    def close(self, resolution=None, now: Optional[datetime] = None):
        now = now or utcnow()
        data = dict(resolution or {})
        merged = {**self.resolution.model_dump(exclude_none=True), **data}
        merged["resolved_at"] = self.resolution.resolved_at or now
        self.resolution = Resolution.model_validate(merged)
        self.current_status = "closed"

        resolver = self.resolution.resolved_by if data.get("resolved_by") else None
        self.tracking.append(
            TrackingEntry(
                user_id=resolver.user_id if resolver and resolver.user_id is not None else 0,
                user_info=ActorInfo(
                    full_name=resolver.full_name if resolver and resolver.full_name else "System",
                    role=resolver.role if resolver and resolver.role else "system",
                ),
                status="closed",
                comment="PQRS closed",
                date_update=now,
            )
        )
        return self.save(now)

    @classmethod
    def find_by_user(cls, user_id: str) -> list:
        return cls.find({"created_by.user_id": user_id}, sort=[("created_at", DESCENDING)])

    @classmethod
    def find_by_status(cls, status: str) -> list:
        return cls.find({"current_status": status}, sort=[("created_at", DESCENDING)])

    @classmethod
    def find_overdue(cls, now: Optional[datetime] = None) -> list:
        return cls.find(
            {
                "current_status": {"$nin": OPEN_PQRS_EXCLUDED},
                "sla.resolve_by": {"$lt": now or utcnow()},
            },
            sort=[("sla.resolve_by", ASCENDING)],
        )

    @classmethod
    def find_by_department(cls, department: str) -> list:
        """Most severe first, newest first within a priority."""
        items = cls.find({"assigned_to.department": department}, sort=[("created_at", DESCENDING)])
        # stable sort keeps the created_at order inside each priority
        return sorted(items, key=lambda p: PRIORITY_RANK[p.priority], reverse=True)

    @classmethod
    def get_statistics(cls, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or utcnow()
        return cls.aggregate([
            {
                "$group": {
                    "_id": "$current_status",
                    "count": {"$sum": 1},
                    "avg_days_open": {
                        "$avg": {"$divide": [{"$subtract": [now, "$created_at"]}, 1000 * 60 * 60 * 24]}
                    },
                }
            }
        ])


# -------------------- Reservations --------------------
FacilityType = Literal[
    "pool", "bbq_area", "meeting_room", "gym", "party_room", "playground", "tennis_court", "multipurpose_room"
]
ReservationStatus = Literal["pending", "confirmed", "cancelled", "completed", "no_show", "in_progress"]
FacilityCondition = Literal["excellent", "good", "fair", "poor"]


class ReservationUserInfo(Embedded):
    full_name: str
    document_number: Optional[str] = None
    phone: str
    email: Optional[str] = None
    apartment_number: str
    tower_name: Optional[str] = None


class ReservedBy(Embedded):
    user_id: UserId
    user_info: ReservationUserInfo


class Guest(Embedded):
    name: str
    document_number: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[Literal["family", "friend", "business", "service_provider", "other"]] = None
    checked_in: bool = False
    checked_in_at: Optional[UTCDateTime] = None
    checked_out_at: Optional[UTCDateTime] = None


class Attendees(Embedded):
    expected_count: int = Field(..., ge=1, le=200)
    actual_count: Optional[int] = Field(None, ge=0)
    guest_list: List[Guest] = Field(default_factory=list)
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    children_count: int = 0
    adult_count: int = 0


class RequestedEquipment(Embedded):
    item: str
    quantity: int = Field(1, ge=1)
    cost: float = Field(0, ge=0)


class ProvidedEquipment(Embedded):
    item: Optional[str] = None
    quantity: Optional[int] = None
    condition: Literal["good", "fair", "poor"] = "good"
    returned_at: Optional[UTCDateTime] = None
    damages: Optional[str] = None


class EquipmentUsage(Embedded):
    requested: List[RequestedEquipment] = Field(default_factory=list)
    provided: List[ProvidedEquipment] = Field(default_factory=list)


class ServiceRequest(Embedded):
    requested: bool = False
    provider: Optional[str] = None
    cost: float = 0


class CateringService(ServiceRequest):
    menu_details: Optional[str] = None


class CleaningService(ServiceRequest):
    special_requirements: Optional[str] = None


class SecurityService(ServiceRequest):
    hours: Optional[float] = None


class DecorationService(ServiceRequest):
    theme: Optional[str] = None


class Services(Embedded):
    catering: CateringService = Field(default_factory=CateringService)
    cleaning: CleaningService = Field(default_factory=CleaningService)
    security: SecurityService = Field(default_factory=SecurityService)
    decoration: DecorationService = Field(default_factory=DecorationService)


class ReservationPayment(Embedded):
    status: Literal["pending", "partial", "paid", "refunded"] = "pending"
    method: Optional[Literal["cash", "transfer", "card", "check", "online"]] = None
    transaction_id: Optional[str] = None
    paid_amount: float = 0
    paid_at: Optional[UTCDateTime] = None
    refunded_amount: float = 0
    refunded_at: Optional[UTCDateTime] = None
    refund_reason: Optional[str] = None


class ReservationCost(Embedded):
    base_fee: float = Field(..., ge=0)
    equipment_fee: float = Field(0, ge=0)
    service_fee: float = Field(0, ge=0)
    cleaning_fee: float = Field(0, ge=0)
    security_deposit: float = Field(0, ge=0)
    total: float = Field(0, ge=0)
    currency: str = "COP"
    payment: ReservationPayment = Field(default_factory=ReservationPayment)


class Requirements(Embedded):
    special_access: bool = False
    alcohol_allowed: bool = False
    music_allowed: bool = True
    music_cutoff_time: str = "22:00"
    parking_required: bool = False
    parking_spaces: int = 0


class Approval(Embedded):
    required: bool = True
    approved_by: Optional[ReviewerInfo] = None
    approved_at: Optional[UTCDateTime] = None
    rejected_by: Optional[ReviewerInfo] = None
    rejected_at: Optional[UTCDateTime] = None


class Cancellation(Embedded):
    cancelled_by: Optional[ActorInfo] = None
    cancelled_at: Optional[UTCDateTime] = None
    reason: Optional[
        Literal["user_request", "facility_unavailable", "maintenance", "emergency", "policy_violation",
                "weather", "other"]
    ] = None
    notes: Optional[str] = None
    refund_amount: float = 0
    cancellation_fee: float = 0


class CheckIn(Embedded):
    checked_in_by: Optional[ActorInfo] = None
    checked_in_at: Optional[UTCDateTime] = None
    notes: Optional[str] = None
    facility_condition: FacilityCondition = "good"


class Damage(Embedded):
    description: Optional[str] = None
    severity: Optional[Literal["minor", "moderate", "major", "severe"]] = None
    cost: Optional[float] = None
    photos: List[str] = Field(default_factory=list)


class CheckOut(Embedded):
    checked_out_by: Optional[ActorInfo] = None
    checked_out_at: Optional[UTCDateTime] = None
    notes: Optional[str] = None
    facility_condition: Optional[FacilityCondition] = None
    damages: List[Damage] = Field(default_factory=list)
    cleaning_required: bool = False
    cleaning_notes: Optional[str] = None


class Recurrence(Embedded):
    is_recurring: bool = False
    frequency: Optional[Literal["daily", "weekly", "biweekly", "monthly"]] = None
    end_date: Optional[UTCDateTime] = None
    occurrences: Optional[int] = Field(None, ge=1, le=52)
    parent_reservation_id: Optional[str] = None

    @model_validator(mode="after")
    def _frequency_when_recurring(self):
        if self.is_recurring and not self.frequency:
            raise ValueError("Frequency is required for recurring reservations")
        return self


class SentFlag(Embedded):
    sent: bool = False
    sent_at: Optional[UTCDateTime] = None


class ReminderFlag(SentFlag):
    reminder_time: int = 24  # hours before start


class ReservationNotifications(Embedded):
    confirmation: SentFlag = Field(default_factory=SentFlag)
    reminder: ReminderFlag = Field(default_factory=ReminderFlag)
    follow_up: SentFlag = Field(default_factory=SentFlag)


class InternalNote(Embedded):
    note: str
    added_by: Optional[ActorInfo] = None
    added_at: UTCDateTime = Field(default_factory=utcnow)
    is_private: bool = True


class ReservationFeedback(Embedded):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    would_recommend: Optional[bool] = None
    submitted_at: Optional[UTCDateTime] = None


class Reservation(Document):
    collection_name: ClassVar[str] = "reservations"
    index_specs: ClassVar[List[tuple]] = [
        ([("reserved_by.user_id", ASCENDING), ("reservation_date", DESCENDING)], {}),
        ([("type", ASCENDING), ("reservation_date", ASCENDING)], {}),
        ([("status", ASCENDING), ("reservation_date", ASCENDING)], {}),
        ([("reservation_date", ASCENDING), ("start_time", ASCENDING), ("end_time", ASCENDING)], {}),
        ([("approval.required", ASCENDING), ("status", ASCENDING)], {}),
        ([("recurring.parent_reservation_id", ASCENDING)], {}),
        ([("created_at", DESCENDING)], {}),
        (
            [("type", ASCENDING), ("reservation_date", ASCENDING), ("start_time", ASCENDING),
             ("end_time", ASCENDING), ("status", ASCENDING)],
            {},
        ),
    ]

    type: FacilityType
    status: ReservationStatus = "pending"
    reservation_date: UTCDateTime
    start_time: UTCDateTime
    end_time: UTCDateTime
    duration: Optional[float] = Field(None, ge=0.5, le=24)  # hours
    title: str = Field(..., max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    event_type: Literal[
        "birthday", "meeting", "exercise", "family_gathering", "business", "celebration", "other"
    ] = "other"
    special_requests: Optional[str] = None
    reserved_by: ReservedBy
    attendees: Attendees
    equipment: EquipmentUsage = Field(default_factory=EquipmentUsage)
    services: Services = Field(default_factory=Services)
    cost: ReservationCost
    requirements: Requirements = Field(default_factory=Requirements)
    approval: Approval = Field(default_factory=Approval)
    cancellation: Optional[Cancellation] = None
    check_in: Optional[CheckIn] = None
    check_out: Optional[CheckOut] = None
    recurring: Recurrence = Field(default_factory=Recurrence)
    notifications: ReservationNotifications = Field(default_factory=ReservationNotifications)
    internal_notes: List[InternalNote] = Field(default_factory=list)
    feedback: Optional[ReservationFeedback] = None
    source: Literal["web", "mobile", "phone", "walk_in", "staff"] = "web"
    tags: Tags = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        if self.id is None:
            today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            if self.reservation_date < today:
                raise ValueError("Reservation date cannot be in the past")
        return self

    def before_save(self, now: datetime) -> None:
        self.duration = (self.end_time - self.start_time) / timedelta(hours=1)
        self.cost.total = (
            self.cost.base_fee + self.cost.equipment_fee + self.cost.service_fee + self.cost.cleaning_fee
        )

    def _hours_until_start(self, now: Optional[datetime]) -> float:
        return (self.start_time - (now or utcnow())) / timedelta(hours=1)

    def is_upcoming(self, now: Optional[datetime] = None) -> bool:
        return self.start_time > (now or utcnow())

    def is_currently_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.start_time <= now <= self.end_time and self.status == "confirmed"

    def is_past(self, now: Optional[datetime] = None) -> bool:
        return self.end_time < (now or utcnow())

    def can_be_cancelled(self, now: Optional[datetime] = None) -> bool:
        # 24 hours notice
        return self._hours_until_start(now) >= 24 and self.status == "confirmed"

    def approve(self, approved_by, notes: Optional[str] = None, now: Optional[datetime] = None):
        now = now or utcnow()
        self.status = "confirmed"
        self.approval.approved_by = ReviewerInfo.model_validate(approved_by)
        self.approval.approved_at = now
        if notes:
            self.approval.approved_by.notes = notes
        return self.save(now)

    def reject(self, rejected_by, reason: Optional[str] = None, now: Optional[datetime] = None):
        now = now or utcnow()
        self.status = "cancelled"
        self.approval.rejected_by = ReviewerInfo.model_validate(rejected_by)
        self.approval.rejected_at = now
        self.approval.rejected_by.reason = reason
        return self.save(now)

    def cancel(self, cancelled_by, reason: Optional[str] = None, notes: Optional[str] = None,
               now: Optional[datetime] = None):
        now = now or utcnow()
        self.status = "cancelled"
        cancellation = Cancellation(
            cancelled_by=ActorInfo.model_validate(cancelled_by),
            cancelled_at=now,
            reason=reason,
            notes=notes,
        )

        total = self.cost.total
        hours_until_start = self._hours_until_start(now)
        if hours_until_start >= 48:
            cancellation.refund_amount = total
        elif hours_until_start >= 24:
            cancellation.refund_amount = total * 0.5
            cancellation.cancellation_fee = total * 0.5
        else:
            cancellation.refund_amount = 0
            cancellation.cancellation_fee = total

        self.cancellation = cancellation
        return self.save(now)

    def perform_check_in(self, checked_in_by, notes: Optional[str] = None,
                         facility_condition: Optional[str] = None, now: Optional[datetime] = None):
        now = now or utcnow()
        self.status = "in_progress"
        self.check_in = CheckIn(
            checked_in_by=ActorInfo.model_validate(checked_in_by),
            checked_in_at=now,
            notes=notes,
            facility_condition=facility_condition or "good",
        )
        return self.save(now)

    def perform_check_out(self, checked_out_by, notes: Optional[str] = None,
                          facility_condition: Optional[str] = None, damages: Optional[list] = None,
                          now: Optional[datetime] = None):
        now = now or utcnow()
        self.status = "completed"
        self.check_out = CheckOut(
            checked_out_by=ActorInfo.model_validate(checked_out_by),
            checked_out_at=now,
            notes=notes,
            facility_condition=facility_condition or "good",
            damages=[Damage.model_validate(d) for d in damages or []],
        )
        return self.save(now)

    def add_internal_note(self, note: str, added_by, now: Optional[datetime] = None):
        now = now or utcnow()
        self.internal_notes.append(
            InternalNote(note=note, added_by=ActorInfo.model_validate(added_by), added_at=now)
        )
        return self.save(now)

    @classmethod
    def find_conflicting(cls, facility_type: str, start_time: datetime, end_time: datetime,
                         exclude_id: Optional[str] = None) -> list:
        query = {
            "type": facility_type,
            "status": {"$in": ["confirmed", "in_progress"]},
            "start_time": {"$lt": end_time},
            "end_time": {"$gt": start_time},
        }
        if exclude_id:
            query["_id"] = {"$ne": database.object_id(exclude_id)}
        return cls.find(query)

    @classmethod
    def find_by_user(cls, user_id: UserId) -> list:
        return cls.find({"reserved_by.user_id": user_id}, sort=[("reservation_date", DESCENDING)])

    @classmethod
    def find_upcoming(cls, days: int = 7, now: Optional[datetime] = None) -> list:
        now = now or utcnow()
        return cls.find(
            {
                "start_time": {"$gte": now, "$lte": now + timedelta(days=days)},
                "status": {"$in": ["confirmed", "pending"]},
            },
            sort=[("start_time", ASCENDING)],
        )

    @classmethod
    def find_pending_approval(cls) -> list:
        return cls.find({"status": "pending", "approval.required": True}, sort=[("created_at", ASCENDING)])

    @classmethod
    def get_utilization_stats(cls, start_date: datetime, end_date: datetime) -> List[Dict[str, Any]]:
        return cls.aggregate([
            {"$match": {"reservation_date": {"$gte": start_date, "$lte": end_date}, "status": "completed"}},
            {
                "$group": {
                    "_id": "$type",
                    "total_reservations": {"$sum": 1},
                    "total_hours": {"$sum": "$duration"},
                    "avg_attendees": {"$avg": "$attendees.actual_count"},
                    "total_revenue": {"$sum": "$cost.total"},
                }
            },
        ])


# -------------------- Notifications --------------------
NotificationType = Literal[
    "general", "payment", "maintenance", "security", "community", "emergency", "reservation", "pqrs"
]
NotificationStatus = Literal["draft", "scheduled", "sent", "delivered", "failed", "cancelled"]
DELIVERED_STATUSES = ["sent", "delivered"]

# days until a new notification expires, when no expiry was given
NOTIFICATION_EXPIRY_DAYS = {
    "emergency": 1,
    "security": 3,
    "maintenance": 7,
    "payment": 30,
    "general": 30,
    "community": 60,
}


class NotificationAttachment(Embedded):
    filename: Optional[str] = None
    original_name: Optional[str] = None
    url: Optional[str] = None
    size: Optional[int] = None
    mimetype: Optional[str] = None


class NotificationImage(Embedded):
    url: Optional[str] = None
    caption: Optional[str] = None
    alt: Optional[str] = None


class NotificationContent(Embedded):
    html: Optional[str] = None
    attachments: List[NotificationAttachment] = Field(default_factory=list)
    images: List[NotificationImage] = Field(default_factory=list)


class Channel(Embedded):
    enabled: bool = False
    delivered: bool = False
    delivered_at: Optional[UTCDateTime] = None
    message_id: Optional[str] = None


class Channels(Embedded):
    in_app: Channel = Field(default_factory=lambda: Channel(enabled=True))
    email: Channel = Field(default_factory=Channel)
    sms: Channel = Field(default_factory=Channel)
    push: Channel = Field(default_factory=Channel)


class DeliveryStats(Embedded):
    total_targets: int = 0
    delivered: int = 0
    read: int = 0
    clicked: int = 0
    failed: int = 0


class RecipientInfo(Embedded):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    apartment_number: Optional[str] = None


class Recipient(Embedded):
    user_id: Optional[UserId] = None
    user_info: RecipientInfo = Field(default_factory=RecipientInfo)
    delivered: bool = False
    delivered_at: Optional[UTCDateTime] = None
    read: bool = False
    read_at: Optional[UTCDateTime] = None
    clicked: bool = False
    clicked_at: Optional[UTCDateTime] = None
    channel: Optional[Literal["in_app", "email", "sms", "push"]] = None


class NotificationAction(Embedded):
    label: str = Field(..., max_length=50)
    url: Optional[str] = None
    action: Optional[Literal["link", "payment", "reservation", "survey", "contact", "dismiss"]] = None
    style: Literal["primary", "secondary", "success", "warning", "danger"] = "primary"
    click_count: int = 0


class NotificationMetadata(Embedded):
    source_module: Literal[
        "admin", "payments", "reservations", "pqrs", "maintenance", "security", "system"
    ] = "admin"
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[
        Literal["reservation", "payment", "pqrs", "maintenance", "user", "apartment"]
    ] = None
    action_url: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class NotificationSettings(Embedded):
    allow_reply: bool = False
    require_acknowledgment: bool = False
    auto_delete: bool = False
    auto_delete_after_days: int = 30
    is_important: bool = False
    is_urgent: bool = False


class NotificationApproval(Approval):
    required: bool = False


class TemplateRef(Embedded):
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None


class CampaignRef(Embedded):
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    segment_id: Optional[str] = None


class Notification(Document):
    collection_name: ClassVar[str] = "notifications"
    index_specs: ClassVar[List[tuple]] = [
        ([("target_user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("is_read", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("type", ASCENDING), ("priority", ASCENDING)], {}),
        ([("scheduled_for", ASCENDING), ("status", ASCENDING)], {}),
        ([("expires_at", ASCENDING)], {}),
        ([("target_role", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("metadata.source_module", ASCENDING)], {}),
        ([("metadata.related_entity_id", ASCENDING), ("metadata.related_entity_type", ASCENDING)], {}),
        ([("status", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("title", TEXT), ("description", TEXT)], {"name": "notification_text"}),
    ]

    type: NotificationType
    title: str = Field(..., max_length=100)
    description: str = Field(..., max_length=1000)
    content: NotificationContent = Field(default_factory=NotificationContent)
    target_user_id: Optional[UserId] = None  # None broadcasts to every user
    target_role: Literal["admin", "owner", "guard", "resident", "maintenance", "all"] = "all"
    target_building: Optional[str] = None
    target_apartments: List[str] = Field(default_factory=list)
    status: NotificationStatus = "draft"
    is_read: bool = False
    read_at: Optional[UTCDateTime] = None
    priority: Priority = "medium"
    scheduled_for: Optional[UTCDateTime] = None
    expires_at: Optional[UTCDateTime] = None
    channels: Channels = Field(default_factory=Channels)
    delivery_stats: DeliveryStats = Field(default_factory=DeliveryStats)
    recipients: List[Recipient] = Field(default_factory=list)
    actions: List[NotificationAction] = Field(default_factory=list)
    metadata: NotificationMetadata = Field(default_factory=NotificationMetadata)
    settings: NotificationSettings = Field(default_factory=NotificationSettings)
    created_by: Optional[ActorInfo] = None
    approval: NotificationApproval = Field(default_factory=NotificationApproval)
    template: Optional[TemplateRef] = None
    campaign: Optional[CampaignRef] = None

    def before_save(self, now: datetime) -> None:
        if self.is_new and self.expires_at is None and self.type in NOTIFICATION_EXPIRY_DAYS:
            self.expires_at = now + timedelta(days=NOTIFICATION_EXPIRY_DAYS[self.type])
        if self.priority in ("urgent", "critical"):
            self.settings.is_urgent = True

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or utcnow())

    @property
    def is_broadcast(self) -> bool:
        return self.target_user_id is None

    def is_scheduled(self, now: Optional[datetime] = None) -> bool:
        return self.scheduled_for is not None and self.scheduled_for > (now or utcnow())

    @property
    def delivery_rate(self) -> float:
        if self.delivery_stats.total_targets == 0:
            return 0
        return round(self.delivery_stats.delivered / self.delivery_stats.total_targets * 100, 2)

    @property
    def read_rate(self) -> float:
        if self.delivery_stats.delivered == 0:
            return 0
        return round(self.delivery_stats.read / self.delivery_stats.delivered * 100, 2)

    def _find_recipient(self, user_id: UserId) -> Optional[Recipient]:
        for recipient in self.recipients:
            if recipient.user_id == user_id:
                return recipient
        return None

    def mark_as_read(self, user_id: Optional[UserId] = None, read_at: Optional[datetime] = None):
        read_at = read_at or utcnow()
        if user_id is not None:
            recipient = self._find_recipient(user_id)
            if recipient is not None:
                recipient.read = True
                recipient.read_at = read_at
                self.delivery_stats.read = sum(1 for r in self.recipients if r.read)
        else:
            self.is_read = True
            self.read_at = read_at
        return self.save()

    def mark_as_clicked(self, user_id: UserId, action_index: Optional[int] = None,
                        now: Optional[datetime] = None):
        now = now or utcnow()
        recipient = self._find_recipient(user_id)
        if recipient is not None:
            recipient.clicked = True
            recipient.clicked_at = now
            self.delivery_stats.clicked = sum(1 for r in self.recipients if r.clicked)

        if action_index is not None and 0 <= action_index < len(self.actions):
            self.actions[action_index].click_count += 1
        return self.save(now)

    def add_recipient(self, recipient):
        self.recipients.append(Recipient.model_validate(recipient))
        self.delivery_stats.total_targets = len(self.recipients)
        return self.save()

    def send_now(self):
        self.status = "sent"
        self.scheduled_for = None
        return self.save()

    def schedule(self, scheduled_time: datetime):
        self.status = "scheduled"
        self.scheduled_for = _as_utc(scheduled_time)
        return self.save()

    def cancel(self):
        self.status = "cancelled"
        return self.save()

    @staticmethod
    def _not_expired(now: datetime) -> Dict[str, Any]:
        return {"$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}]}

    @classmethod
    def find_unread_for_user(cls, user_id: UserId, now: Optional[datetime] = None) -> list:
        now = now or utcnow()
        return cls.find(
            {
                "$and": [
                    {"$or": [{"target_user_id": user_id}, {"target_user_id": None}]},
                    {
                        "$or": [
                            {"is_read": False},
                            {"recipients": {"$elemMatch": {"user_id": user_id, "read": False}}},
                        ]
                    },
                    cls._not_expired(now),
                ],
                "status": {"$in": DELIVERED_STATUSES},
            },
            sort=[("created_at", DESCENDING)],
        )

    @classmethod
    def find_by_priority(cls, priority: str, now: Optional[datetime] = None) -> list:
        now = now or utcnow()
        query = {"priority": priority, "status": {"$in": DELIVERED_STATUSES}}
        query.update(cls._not_expired(now))
        return cls.find(query, sort=[("created_at", DESCENDING)])

    @classmethod
    def find_scheduled(cls, now: Optional[datetime] = None) -> list:
        """Scheduled notifications whose send time has arrived."""
        return cls.find(
            {"status": "scheduled", "scheduled_for": {"$lte": now or utcnow()}},
            sort=[("scheduled_for", ASCENDING)],
        )

    @classmethod
    def find_expired(cls, now: Optional[datetime] = None) -> list:
        return cls.find({"expires_at": {"$lte": now or utcnow()}, "status": {"$in": DELIVERED_STATUSES}})

    @classmethod
    def get_statistics(cls, start_date: datetime, end_date: datetime) -> List[Dict[str, Any]]:
        def ratio(numerator: str, denominator: str):
            return {"$cond": [{"$gt": [denominator, 0]}, {"$divide": [numerator, denominator]}, 0]}

        return cls.aggregate([
            {"$match": {"created_at": {"$gte": start_date, "$lte": end_date}}},
            {
                "$group": {
                    "_id": "$type",
                    "count": {"$sum": 1},
                    "avg_delivery_rate": {
                        "$avg": ratio("$delivery_stats.delivered", "$delivery_stats.total_targets")
                    },
                    "avg_read_rate": {"$avg": ratio("$delivery_stats.read", "$delivery_stats.delivered")},
                    "total_clicks": {"$sum": "$delivery_stats.clicked"},
                }
            },
        ])


# -------------------- Surveys --------------------
QuestionType = Literal[
    "text", "textarea", "multiple_choice", "single_choice", "rating", "scale", "yes_no", "date",
    "number", "email", "phone", "matrix", "ranking",
]
SurveyStatus = Literal["draft", "testing", "active", "paused", "completed", "closed", "archived"]
ResponseStatus = Literal["started", "in_progress", "paused", "completed", "abandoned"]
AudienceRole = Literal["admin", "owner", "guard", "resident", "maintenance"]

NUMERIC_QUESTION_TYPES = ("rating", "scale", "number")
CHOICE_QUESTION_TYPES = ("multiple_choice", "single_choice")


class QuestionOption(Embedded):
    value: str
    label: str
    order: int = 0


class QuestionScale(Embedded):
    min: float = 1
    max: float = 5
    min_label: Optional[str] = None
    max_label: Optional[str] = None
    step: float = 1


class MatrixItem(Embedded):
    value: Optional[str] = None
    label: Optional[str] = None


class QuestionValidation(Embedded):
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    custom_message: Optional[str] = None


class QuestionDisplay(Embedded):
    randomize_options: bool = False
    show_other_option: bool = False
    other_option_label: str = "Other"
    allow_multiple_lines: bool = False
    placeholder: Optional[str] = None


class QuestionConfig(Embedded):
    options: List[QuestionOption] = Field(default_factory=list)
    scale: QuestionScale = Field(default_factory=QuestionScale)
    rows: List[MatrixItem] = Field(default_factory=list)
    columns: List[MatrixItem] = Field(default_factory=list)
    validation: QuestionValidation = Field(default_factory=QuestionValidation)
    display: QuestionDisplay = Field(default_factory=QuestionDisplay)


class ShowIf(Embedded):
    question_id: Optional[str] = None
    operator: Optional[
        Literal["equals", "not_equals", "contains", "not_contains", "greater_than", "less_than"]
    ] = None
    value: Any = None


class SkipCondition(Embedded):
    operator: Optional[str] = None
    value: Any = None


class SkipTo(Embedded):
    question_id: Optional[str] = None
    condition: Optional[SkipCondition] = None


class QuestionLogic(Embedded):
    show_if: Optional[ShowIf] = None
    skip_to: Optional[SkipTo] = None


class Question(Embedded):
    id: str = Field(default_factory=_new_id)
    type: QuestionType
    title: str = Field(..., max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    config: QuestionConfig = Field(default_factory=QuestionConfig)
    logic: QuestionLogic = Field(default_factory=QuestionLogic)
    order: int = 0
    section: Optional[str] = None
    page: int = 1
    is_active: bool = True


class RespondentInfo(Embedded):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    apartment_number: Optional[str] = None
    tower_name: Optional[str] = None
    demographic_info: Optional[Dict[str, Any]] = None


class Respondent(Embedded):
    user_id: str
    user_info: RespondentInfo = Field(default_factory=RespondentInfo)
    is_anonymous: bool = False


class AnswerMetadata(Embedded):
    time_spent: Optional[float] = None  # seconds
    changed_count: int = 0
    skipped: bool = False
    other_text: Optional[str] = None


class SurveyAnswer(Embedded):
    question_id: str
    answer: Any = None
    metadata: AnswerMetadata = Field(default_factory=AnswerMetadata)


class ResponseSession(Embedded):
    started_at: UTCDateTime = Field(default_factory=utcnow)
    submitted_at: Optional[UTCDateTime] = None
    completed_at: Optional[UTCDateTime] = None
    time_spent: Optional[float] = None  # seconds
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    device: Optional[Literal["desktop", "tablet", "mobile"]] = None
    current_page: int = 1
    total_pages: Optional[int] = None
    progress_percent: float = 0
    status: ResponseStatus = "started"


class ResponseQuality(Embedded):
    completion_rate: Optional[float] = None
    straight_lining: bool = False
    speeding_flag: bool = False
    inconsistencies: List[str] = Field(default_factory=list)
    quality_score: Optional[float] = Field(None, ge=0, le=100)


class ResponseFollowUp(Embedded):
    contact_permission: bool = False
    preferred_contact: Optional[Literal["email", "phone", "sms", "in_person"]] = None
    best_time_to_contact: Optional[str] = None
    additional_comments: Optional[str] = None


class SurveyResponse(Embedded):
    id: str = Field(default_factory=_new_id)
    respondent: Respondent
    answers: List[SurveyAnswer] = Field(default_factory=list)
    session: ResponseSession = Field(default_factory=ResponseSession)
    quality: ResponseQuality = Field(default_factory=ResponseQuality)
    follow_up: ResponseFollowUp = Field(default_factory=ResponseFollowUp)


class AccessSettings(Embedded):
    type: Literal["public", "private", "restricted"] = "restricted"
    password: Optional[str] = None
    allowed_roles: List[AudienceRole] = Field(default_factory=list)
    allowed_users: List[UserId] = Field(default_factory=list)
    allowed_buildings: List[str] = Field(default_factory=list)


class ResponseSettings(Embedded):
    allow_multiple: bool = False
    allow_editing: bool = False
    edit_time_limit: Optional[int] = None  # hours
    require_login: bool = True
    allow_anonymous: bool = False
    max_responses: Optional[int] = None
    responses_per_user: int = 1


class DisplaySettings(Embedded):
    show_progress_bar: bool = True
    show_question_numbers: bool = True
    questions_per_page: int = 5
    randomize_questions: bool = False
    theme: Literal["default", "modern", "classic", "minimal"] = "default"
    custom_css: Optional[str] = None
    logo: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None


class SurveyNotificationSettings(Embedded):
    send_confirmation: bool = True
    send_reminders: bool = False
    reminder_schedule: List[int] = Field(default_factory=list)  # days before deadline
    notify_on_response: bool = False
    notification_emails: List[str] = Field(default_factory=list)


class FlowSettings(Embedded):
    welcome_message: Optional[str] = None
    thank_you_message: Optional[str] = None
    redirect_url: Optional[str] = None
    allow_back_button: bool = True
    auto_advance: bool = False
    time_per_page: Optional[int] = None  # seconds


class SurveySettings(Embedded):
    access: AccessSettings = Field(default_factory=AccessSettings)
    responses: ResponseSettings = Field(default_factory=ResponseSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    notifications: SurveyNotificationSettings = Field(default_factory=SurveyNotificationSettings)
    flow: FlowSettings = Field(default_factory=FlowSettings)


class TargetAudience(Embedded):
    description: Optional[str] = None
    estimated_size: Optional[int] = None
    actual_size: Optional[int] = None
    criteria: Optional[Dict[str, Any]] = None


class Lifecycle(Embedded):
    status: SurveyStatus = "draft"
    published_at: Optional[UTCDateTime] = None
    published_by: Optional[ActorInfo] = None
    starts_at: Optional[UTCDateTime] = None
    ends_at: Optional[UTCDateTime] = None
    target_audience: TargetAudience = Field(default_factory=TargetAudience)


class DailyCount(Embedded):
    date: Optional[UTCDateTime] = None
    count: int = 0


class QualityFlags(Embedded):
    straight_lining: Optional[int] = None
    speeding: Optional[int] = None
    inconsistencies: Optional[int] = None


class SurveyAnalytics(Embedded):
    total_responses: int = 0
    completed_responses: int = 0
    partial_responses: int = 0
    abandoned_responses: int = 0
    completion_rate: float = 0  # percent
    average_time_to_complete: Optional[float] = None  # seconds
    responses_per_day: List[DailyCount] = Field(default_factory=list)
    average_quality_score: Optional[float] = None
    quality_flags: QualityFlags = Field(default_factory=QualityFlags)
    last_calculated: UTCDateTime = Field(default_factory=utcnow)


class Integrations(Embedded):
    export_to_excel: bool = False
    export_to_pdf: bool = False
    webhook_url: Optional[str] = None
    api_callbacks: List[str] = Field(default_factory=list)


class SurveyMetadata(Embedded):
    version: int = 1
    original_survey_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    department: Optional[str] = None
    cost: Optional[float] = None
    budget: Optional[float] = None
    integrations: Integrations = Field(default_factory=Integrations)


class CreatorInfo(Embedded):
    full_name: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None


class SurveyCreator(Embedded):
    user_id: str
    user_info: CreatorInfo = Field(default_factory=CreatorInfo)


class Collaborator(Embedded):
    user_id: Optional[str] = None
    user_info: CreatorInfo = Field(default_factory=CreatorInfo)
    permissions: List[Literal["view", "edit", "manage_responses", "publish", "delete"]] = Field(
        default_factory=list
    )
    added_at: UTCDateTime = Field(default_factory=utcnow)


class Survey(Document):
    collection_name: ClassVar[str] = "surveys"
    index_specs: ClassVar[List[tuple]] = [
        ([("lifecycle.status", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("created_by.user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("responses.respondent.user_id", ASCENDING)], {}),
        ([("category", ASCENDING), ("lifecycle.status", ASCENDING)], {}),
        ([("lifecycle.starts_at", ASCENDING), ("lifecycle.ends_at", ASCENDING)], {}),
        ([("metadata.tags", ASCENDING)], {}),
        ([("is_archived", ASCENDING), ("created_at", DESCENDING)], {}),
        (
            [("name", TEXT), ("title", TEXT), ("description", TEXT), ("questions.title", TEXT)],
            {"name": "survey_text"},
        ),
    ]

    name: str = Field(..., max_length=100)
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=1000)
    category: Literal["satisfaction", "feedback", "opinion", "evaluation", "research", "poll", "census"]
    purpose: Optional[str] = Field(None, max_length=500)
    questions: List[Question] = Field(default_factory=list)
    responses: List[SurveyResponse] = Field(default_factory=list)
    settings: SurveySettings = Field(default_factory=SurveySettings)
    lifecycle: Lifecycle = Field(default_factory=Lifecycle)
    analytics: SurveyAnalytics = Field(default_factory=SurveyAnalytics)
    metadata: SurveyMetadata = Field(default_factory=SurveyMetadata)
    created_by: SurveyCreator
    collaborators: List[Collaborator] = Field(default_factory=list)
    is_archived: bool = False
    archived_at: Optional[UTCDateTime] = None
    archived_by: Optional[ActorInfo] = None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        lifecycle = self.lifecycle
        return (
            lifecycle.status == "active"
            and (lifecycle.starts_at is None or lifecycle.starts_at <= now)
            and (lifecycle.ends_at is None or lifecycle.ends_at >= now)
        )

    @property
    def response_rate(self) -> float:
        audience = self.lifecycle.target_audience.actual_size
        if not audience:
            return 0
        return round(self.analytics.total_responses / audience * 100, 2)

    @property
    def average_completion_time(self) -> int:
        """Minutes."""
        if not self.analytics.average_time_to_complete:
            return 0
        return round(self.analytics.average_time_to_complete / 60)

    def add_response(self, response, now: Optional[datetime] = None):
        self.responses.append(SurveyResponse.model_validate(response))
        self.analytics.total_responses += 1
        self.update_analytics(now)
        return self.save(now)

    def update_analytics(self, now: Optional[datetime] = None) -> None:
        completed = [r for r in self.responses if r.session.status == "completed"]
        analytics = self.analytics
        analytics.completed_responses = len(completed)
        analytics.partial_responses = sum(1 for r in self.responses if r.session.status == "in_progress")
        analytics.abandoned_responses = sum(1 for r in self.responses if r.session.status == "abandoned")

        if analytics.total_responses > 0:
            analytics.completion_rate = len(completed) / analytics.total_responses * 100

        if completed:
            total_time = sum(r.session.time_spent or 0 for r in completed)
            analytics.average_time_to_complete = total_time / len(completed)

        analytics.last_calculated = now or utcnow()

    def publish(self, published_by, now: Optional[datetime] = None):
        now = now or utcnow()
        self.lifecycle.status = "active"
        self.lifecycle.published_at = now
        self.lifecycle.published_by = ActorInfo.model_validate(published_by)
        return self.save(now)

    def pause(self):
        self.lifecycle.status = "paused"
        return self.save()

    def close(self):
        self.lifecycle.status = "completed"
        return self.save()

    def archive(self, archived_by, now: Optional[datetime] = None):
        now = now or utcnow()
        self.is_archived = True
        self.archived_at = now
        self.archived_by = ActorInfo.model_validate(archived_by)
        self.lifecycle.status = "archived"
        return self.save(now)

    def add_collaborator(self, collaborator):
        self.collaborators.append(Collaborator.model_validate(collaborator))
        return self.save()

    def get_results(self) -> Dict[str, Dict[str, Any]]:
        completed = [r for r in self.responses if r.session.status == "completed"]
        results = {}

        for question in self.questions:
            answers = []
            for response in completed:
                for answer in response.answers:
                    if answer.question_id == question.id:
                        if not answer.metadata.skipped:
                            answers.append(answer.answer)
                        break

            statistics: Dict[str, Any] = {}
            if question.type in NUMERIC_QUESTION_TYPES:
                numbers = []
                for value in answers:
                    try:
                        number = float(value)
                    except (TypeError, ValueError):
                        continue
                    if not math.isnan(number):
                        numbers.append(number)
                if numbers:
                    ordered = sorted(numbers)
                    statistics = {
                        "count": len(numbers),
                        "average": sum(numbers) / len(numbers),
                        "min": ordered[0],
                        "max": ordered[-1],
                        "median": ordered[len(ordered) // 2],
                    }
            elif question.type in CHOICE_QUESTION_TYPES:
                for value in answers:
                    for choice in value if isinstance(value, list) else [value]:
                        key = str(choice)
                        statistics[key] = statistics.get(key, 0) + 1

            results[question.id] = {
                "question": question.title,
                "type": question.type,
                "responses": answers,
                "statistics": statistics,
            }
        return results

    @classmethod
    def find_active(cls, now: Optional[datetime] = None) -> list:
        now = now or utcnow()
        return cls.find({
            "lifecycle.status": "active",
            "$and": [
                {"$or": [{"lifecycle.starts_at": None}, {"lifecycle.starts_at": {"$lte": now}}]},
                {"$or": [{"lifecycle.ends_at": None}, {"lifecycle.ends_at": {"$gte": now}}]},
            ],
            "is_archived": False,
        })

    @classmethod
    def find_by_user(cls, user_id: str) -> list:
        return cls.find({"created_by.user_id": user_id}, sort=[("created_at", DESCENDING)])

    @classmethod
    def find_available_for_user(cls, user_id: UserId, role: str, building: Optional[str] = None) -> list:
        return cls.find({
            "lifecycle.status": "active",
            "$or": [
                {"settings.access.type": "public"},
                {"settings.access.allowed_roles": role},
                {"settings.access.allowed_users": user_id},
                {"settings.access.allowed_buildings": building},
            ],
            "is_archived": False,
        })

    @classmethod
    def get_statistics(cls) -> List[Dict[str, Any]]:
        return cls.aggregate([
            {
                "$group": {
                    "_id": "$lifecycle.status",
                    "count": {"$sum": 1},
                    "total_responses": {"$sum": "$analytics.total_responses"},
                    "avg_completion_rate": {"$avg": "$analytics.completion_rate"},
                }
            }
        ])


# -------------------- Payments --------------------
PaymentStatusName = Literal["pending", "completed", "failed", "cancelled", "refunded"]
PaymentMethod = Literal["cash", "credit_card", "debit_card", "bank_transfer", "online", "check"]
OPEN_PAYMENT_STATUSES = ["pending", "failed"]

RECEIPT_ALPHABET = string.ascii_uppercase + string.digits


def generate_receipt_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    suffix = "".join(random.choices(RECEIPT_ALPHABET, k=6))
    return f"REC-{now:%Y%m%d}-{suffix}"


class PaymentStatus(Document):
    collection_name: ClassVar[str] = "payment_statuses"
    index_specs: ClassVar[List[tuple]] = [
        ([("name", ASCENDING)], {"unique": True}),
    ]

    name: PaymentStatusName
    description: Optional[str] = Field(None, max_length=200)
    color: Optional[str] = None
    order: Optional[int] = None
    is_active: bool = True


class PaymentItem(Embedded):
    description: str = Field(..., max_length=100)
    amount: float = Field(..., ge=0)
    category: Literal["maintenance", "parking", "amenities", "fine", "deposit", "other"]


class Payment(Document):
    collection_name: ClassVar[str] = "payments"
    index_specs: ClassVar[List[tuple]] = [
        ([("owner", ASCENDING), ("payment_date", DESCENDING)], {}),
        ([("payment_status", ASCENDING), ("payment_date", DESCENDING)], {}),
        ([("payment_method", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("items.category", ASCENDING), ("payment_date", DESCENDING)], {}),
        ([("reference_number", ASCENDING)], {"sparse": True}),
        ([("receipt_number", ASCENDING)], {"unique": True, "sparse": True}),
        ([("due_date", ASCENDING)], {}),
        ([("apartment", ASCENDING)], {}),
        ([("tower", ASCENDING)], {}),
    ]

    owner: str
    total_amount: float = Field(..., ge=0, allow_inf_nan=False)
    payment_status: PaymentStatusName = "pending"
    payment_method: PaymentMethod
    reference_number: Optional[str] = Field(None, max_length=50)
    items: List[PaymentItem] = Field(default_factory=list)
    payment_date: UTCDateTime = Field(default_factory=utcnow)
    due_date: Optional[UTCDateTime] = None
    notes: Optional[str] = Field(None, max_length=500)
    receipt_number: Optional[str] = None
    apartment: Optional[str] = None
    tower: Optional[str] = None

    def before_save(self, now: datetime) -> None:
        if self.payment_status == "completed" and not self.receipt_number:
            self.receipt_number = generate_receipt_number(now)

        if self.items and abs(self.total_amount - self.total_items_amount) > 0.01:
            raise DomainValidationError("Total amount must match sum of items")

    @property
    def total_items_amount(self) -> float:
        return sum(item.amount for item in self.items)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.due_date is None or self.payment_status == "completed":
            return False
        return (now or utcnow()) > self.due_date

    def days_since_due(self, now: Optional[datetime] = None) -> int:
        if self.due_date is None or self.payment_status == "completed":
            return 0
        return math.ceil(((now or utcnow()) - self.due_date) / timedelta(days=1))

    def mark_as_completed(self, now: Optional[datetime] = None):
        now = now or utcnow()
        self.payment_status = "completed"
        self.payment_date = now
        return self.save(now)

    def add_payment_item(self, description: str, amount: float, category: str):
        self.items.append(PaymentItem(description=description, amount=amount, category=category))
        self.total_amount = self.total_items_amount
        return self.save()

    def generate_receipt_data(self) -> Dict[str, Any]:
        return {
            "receipt_number": self.receipt_number,
            "payment_date": self.payment_date,
            "owner": self.owner,
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "items": [item.model_dump() for item in self.items],
            "apartment": self.apartment,
            "tower": self.tower,
        }

    @classmethod
    def find_by_owner(cls, owner_id: str, status: Optional[str] = None, method: Optional[str] = None,
                      date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> list:
        query: Dict[str, Any] = {"owner": owner_id}
        if status:
            query["payment_status"] = status
        if method:
            query["payment_method"] = method
        if date_from or date_to:
            query["payment_date"] = {}
            if date_from:
                query["payment_date"]["$gte"] = date_from
            if date_to:
                query["payment_date"]["$lte"] = date_to
        return cls.find(query, sort=[("payment_date", DESCENDING)])

    @classmethod
    def get_payment_summary(cls, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return cls.aggregate([
            {"$match": filters or {}},
            {
                "$group": {
                    "_id": "$payment_status",
                    "count": {"$sum": 1},
                    "total_amount": {"$sum": "$total_amount"},
                    "avg_amount": {"$avg": "$total_amount"},
                }
            },
            {
                "$project": {
                    "_id": 0,
                    "status": "$_id",
                    "count": 1,
                    "total_amount": {"$round": ["$total_amount", 2]},
                    "avg_amount": {"$round": ["$avg_amount", 2]},
                }
            },
        ])

    @classmethod
    def get_overdue_payments(cls, now: Optional[datetime] = None) -> list:
        return cls.find(
            {"due_date": {"$lt": now or utcnow()}, "payment_status": {"$in": OPEN_PAYMENT_STATUSES}},
            sort=[("due_date", ASCENDING)],
        )


DOCUMENT_MODELS = [
    User,
    Tower,
    Parking,
    PQRS,
    Notification,
    Reservation,
    Survey,
    Payment,
    PaymentStatus,
    Permission,
    Module,
    Role,
    UserStatus,
]
