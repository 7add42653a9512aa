from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from subtrack.core.errors import InputValidationError, InvalidStateError, NotFoundError, StorageError
from subtrack.core.logging_setup import logger
from subtrack.models.base import utcnow
from subtrack.models.organization import Department, Location, Product, Vendor
from subtrack.models.subscription import Subscription
from subtrack.models.user import HodDepartment, PocDepartmentAccess, User, UserRole
from subtrack.schemas.common import BulkResult, Pagination
from subtrack.schemas.organization import (
    DepartmentCreate,
    DepartmentUpdate,
    LocationCreate,
    LocationUpdate,
)
from subtrack.services import access
from subtrack.services.access import Actor, require
from subtrack.services.audit import AuditService
from subtrack.services.bulk import toggle_active_in_batches

MASTER_NAME_MAX_LENGTH = 200


class OrganizationService:
    """Departments, locations, vendors, products and department assignments."""

    def __init__(self, session: Session, audit_service: AuditService | None = None) -> None:
        self.session = session
        self.audit = audit_service or AuditService(session)

    def _save(self, instance: SQLModel, operation: str, duplicate_message: str | None = None) -> None:
        try:
            self.session.add(instance)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if duplicate_message:
                raise InputValidationError(duplicate_message) from exc
            logger.exception("Integrity failure during %s", operation)
            raise StorageError() from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to %s", operation)
            raise StorageError() from exc
        self.session.refresh(instance)

    def _name_taken(self, model: type[SQLModel], name: str, exclude_id: UUID | None = None) -> bool:
        statement = select(model.id).where(func.lower(model.name) == name.strip().lower())
        if exclude_id:
            statement = statement.where(model.id != exclude_id)
        return self.session.exec(statement).first() is not None

    # Departments ----------------------------------------------------------
    def list_departments(
        self,
        search: str | None = None,
        is_active: bool | None = None,
        pagination: Pagination | None = None,
    ) -> tuple[list[Department], int]:
        pagination = pagination or Pagination()
        query = select(Department)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(Department.name.ilike(pattern) | Department.short_code.ilike(pattern))
        if is_active is not None:
            query = query.where(Department.is_active.is_(is_active))
        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = self.session.exec(
            query.order_by(Department.name).offset(pagination.effective_offset).limit(pagination.effective_limit)
        ).all()
        return list(items), total

    def get_department(self, department_id: UUID) -> Department:
        department = self.session.get(Department, department_id)
        if not department:
            raise NotFoundError("Department not found")
        return department

    def create_department(self, actor: Actor, payload: DepartmentCreate) -> Department:
        require(access.can_administer(actor))
        name = payload.name.strip()
        if not name:
            raise InputValidationError("Name is required")
        if self._name_taken(Department, name):
            raise InputValidationError("A department with this name already exists")
        department = Department(name=name, short_code=payload.short_code)
        self._save(department, "create department", "A department with this name already exists")
        self.audit.record_event("department.create", "department", department.id, actor, {"name": name})
        return department

    def update_department(self, actor: Actor, department_id: UUID, payload: DepartmentUpdate) -> Department:
        require(access.can_administer(actor))
        department = self.get_department(department_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise InputValidationError("Name is required")
            if self._name_taken(Department, changes["name"], exclude_id=department.id):
                raise InputValidationError("A department with this name already exists")
        for field, value in changes.items():
            setattr(department, field, value)
        department.updated_at = utcnow()
        self._save(department, "update department", "A department with this name already exists")
        self.audit.record_event("department.update", "department", department.id, actor, {"fields": sorted(changes)})
        return department

    def toggle_department(self, actor: Actor, department_id: UUID, is_active: bool) -> Department:
        return self.update_department(actor, department_id, DepartmentUpdate(is_active=is_active))

    def bulk_toggle_departments(self, actor: Actor, ids: Sequence[UUID], is_active: bool) -> BulkResult:
        require(access.can_administer(actor))
        result = toggle_active_in_batches(self.session, Department, ids, is_active, label="department")
        self.audit.record_event(
            "department.bulk_toggle",
            "department",
            None,
            actor,
            {"is_active": is_active, "successful": result.successful, "failed": result.failed},
        )
        return result

    def delete_department(self, actor: Actor, department_id: UUID) -> None:
        require(access.can_administer(actor))
        department = self.get_department(department_id)
        in_use = self.session.exec(
            select(Subscription.id).where(Subscription.department_id == department_id)
        ).first()
        if in_use:
            raise InvalidStateError("Cannot delete department that is used in subscriptions. Deactivate it instead.")
        try:
            self.session.exec(delete(PocDepartmentAccess).where(PocDepartmentAccess.department_id == department_id))
            self.session.exec(delete(HodDepartment).where(HodDepartment.department_id == department_id))
            self.session.delete(department)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to delete department %s", department_id)
            raise StorageError() from exc
        self.audit.record_event("department.delete", "department", department_id, actor)

    # Locations ------------------------------------------------------------
    def list_locations(
        self,
        search: str | None = None,
        is_active: bool | None = None,
        pagination: Pagination | None = None,
    ) -> tuple[list[Location], int]:
        pagination = pagination or Pagination()
        query = select(Location)
        if search:
            query = query.where(Location.name.ilike(f"%{search.strip()}%"))
        if is_active is not None:
            query = query.where(Location.is_active.is_(is_active))
        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = self.session.exec(
            query.order_by(Location.name).offset(pagination.effective_offset).limit(pagination.effective_limit)
        ).all()
        return list(items), total

    def get_location(self, location_id: UUID) -> Location:
        location = self.session.get(Location, location_id)
        if not location:
            raise NotFoundError("Location not found")
        return location

    def create_location(self, actor: Actor, payload: LocationCreate) -> Location:
        require(access.can_manage_locations(actor))
        name = payload.name.strip()
        if not name:
            raise InputValidationError("Name is required")
        if self._name_taken(Location, name):
            raise InputValidationError("A location with this name already exists")
        location = Location(name=name, location_type=payload.location_type)
        self._save(location, "create location")
        self.audit.record_event("location.create", "location", location.id, actor, {"name": name})
        return location

    def update_location(self, actor: Actor, location_id: UUID, payload: LocationUpdate) -> Location:
        require(access.can_manage_locations(actor))
        location = self.get_location(location_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise InputValidationError("Name is required")
            if self._name_taken(Location, changes["name"], exclude_id=location.id):
                raise InputValidationError("A location with this name already exists")
        for field, value in changes.items():
            setattr(location, field, value)
        location.updated_at = utcnow()
        self._save(location, "update location")
        self.audit.record_event("location.update", "location", location.id, actor, {"fields": sorted(changes)})
        return location

    def toggle_location(self, actor: Actor, location_id: UUID, is_active: bool) -> Location:
        return self.update_location(actor, location_id, LocationUpdate(is_active=is_active))

    def bulk_toggle_locations(self, actor: Actor, ids: Sequence[UUID], is_active: bool) -> BulkResult:
        require(access.can_manage_locations(actor))
        result = toggle_active_in_batches(self.session, Location, ids, is_active, label="location")
        self.audit.record_event(
            "location.bulk_toggle",
            "location",
            None,
            actor,
            {"is_active": is_active, "successful": result.successful, "failed": result.failed},
        )
        return result

    def delete_location(self, actor: Actor, location_id: UUID) -> None:
        require(access.can_manage_locations(actor))
        location = self.get_location(location_id)
        in_use = self.session.exec(select(Subscription.id).where(Subscription.location_id == location_id)).first()
        if in_use:
            raise InvalidStateError("Cannot delete location that is used in subscriptions. Deactivate it instead.")
        try:
            self.session.delete(location)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to delete location %s", location_id)
            raise StorageError() from exc
        self.audit.record_event("location.delete", "location", location_id, actor)

    # Vendors and products ---------------------------------------------------
    def _create_master(self, actor: Actor, model: type[Vendor] | type[Product], name: str) -> Vendor | Product:
        require(access.can_manage_subscriptions(actor))
        label = model.__name__
        cleaned = (name or "").strip()
        if not cleaned:
            raise InputValidationError(f"{label} name is required")
        if len(cleaned) > MASTER_NAME_MAX_LENGTH:
            raise InputValidationError(f"{label} name is too long (max {MASTER_NAME_MAX_LENGTH} characters)")
        duplicate = f"A {label.lower()} with this name already exists"
        if self._name_taken(model, cleaned):
            raise InputValidationError(duplicate)
        item = model(name=cleaned)
        self._save(item, f"create {label.lower()}", duplicate)
        self.audit.record_event(f"{label.lower()}.create", label.lower(), item.id, actor, {"name": cleaned})
        return item

    def create_vendor(self, actor: Actor, name: str) -> Vendor:
        return self._create_master(actor, Vendor, name)

    def create_product(self, actor: Actor, name: str) -> Product:
        return self._create_master(actor, Product, name)

    def list_vendors(self, include_inactive: bool = False) -> list[Vendor]:
        statement = select(Vendor).order_by(Vendor.name)
        if not include_inactive:
            statement = statement.where(Vendor.is_active.is_(True))
        return list(self.session.exec(statement).all())

    def list_products(self, include_inactive: bool = False) -> list[Product]:
        statement = select(Product).order_by(Product.name)
        if not include_inactive:
            statement = statement.where(Product.is_active.is_(True))
        return list(self.session.exec(statement).all())

    # Assignments ------------------------------------------------------------
    def _user_with_role(self, user_id: UUID, role: UserRole) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        if user.role != role:
            raise InputValidationError(f"User does not have {role.value} role")
        return user

    def grant_poc_access(self, actor: Actor, user_id: UUID, department_id: UUID) -> PocDepartmentAccess:
        require(access.can_administer(actor))
        self._user_with_role(user_id, UserRole.POC)
        self.get_department(department_id)
        existing = self.session.exec(
            select(PocDepartmentAccess).where(
                PocDepartmentAccess.poc_id == user_id, PocDepartmentAccess.department_id == department_id
            )
        ).first()
        if existing:
            raise InputValidationError("POC already has access to this department")
        grant = PocDepartmentAccess(poc_id=user_id, department_id=department_id)
        self._save(grant, "grant POC access to department", "POC already has access to this department")
        self.audit.record_event(
            "department.poc.grant", "department", department_id, actor, {"poc_id": str(user_id)}
        )
        return grant

    def revoke_poc_access(self, actor: Actor, user_id: UUID, department_id: UUID) -> None:
        require(access.can_administer(actor))
        grant = self.session.exec(
            select(PocDepartmentAccess).where(
                PocDepartmentAccess.poc_id == user_id, PocDepartmentAccess.department_id == department_id
            )
        ).first()
        if not grant:
            raise NotFoundError("POC access not found")
        self.session.delete(grant)
        self.session.commit()
        self.audit.record_event(
            "department.poc.revoke", "department", department_id, actor, {"poc_id": str(user_id)}
        )

    def assign_hod(self, actor: Actor, user_id: UUID, department_id: UUID) -> HodDepartment:
        require(access.can_administer(actor))
        self._user_with_role(user_id, UserRole.HOD)
        self.get_department(department_id)
        existing = self.session.exec(
            select(HodDepartment).where(HodDepartment.hod_id == user_id, HodDepartment.department_id == department_id)
        ).first()
        if existing:
            raise InputValidationError("HOD is already assigned to this department")
        assignment = HodDepartment(hod_id=user_id, department_id=department_id)
        self._save(assignment, "assign HOD to department", "HOD is already assigned to this department")
        self.audit.record_event(
            "department.hod.assign", "department", department_id, actor, {"hod_id": str(user_id)}
        )
        return assignment

    def remove_hod(self, actor: Actor, user_id: UUID, department_id: UUID) -> None:
        require(access.can_administer(actor))
        assignment = self.session.exec(
            select(HodDepartment).where(HodDepartment.hod_id == user_id, HodDepartment.department_id == department_id)
        ).first()
        if not assignment:
            raise NotFoundError("HOD assignment not found")
        self.session.delete(assignment)
        self.session.commit()
        self.audit.record_event(
            "department.hod.remove", "department", department_id, actor, {"hod_id": str(user_id)}
        )

    def list_department_members(self, department_id: UUID) -> dict[str, list[User]]:
        self.get_department(department_id)
        pocs = self.session.exec(
            select(User)
            .join(PocDepartmentAccess, PocDepartmentAccess.poc_id == User.id)
            .where(PocDepartmentAccess.department_id == department_id)
            .order_by(User.full_name)
        ).all()
        hods = self.session.exec(
            select(User)
            .join(HodDepartment, HodDepartment.hod_id == User.id)
            .where(HodDepartment.department_id == department_id)
            .order_by(User.full_name)
        ).all()
        return {"pocs": list(pocs), "hods": list(hods)}
