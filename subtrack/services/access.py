"""Role and department authorization.

The capability checks are pure functions of the caller and the department
that owns the resource, so the whole matrix can be tested without a
database. ``AccessService`` only resolves department scope from storage.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from sqlmodel import Session, select

from subtrack.core.errors import PermissionDeniedError
from subtrack.models.user import HodDepartment, PocDepartmentAccess, User, UserRole

INSUFFICIENT_PERMISSIONS = "Insufficient permissions"


@dataclass(frozen=True)
class Actor:
    user_id: UUID
    role: UserRole | None
    department_ids: frozenset[UUID] = field(default_factory=frozenset)

    @property
    def role_name(self) -> str | None:
        return self.role.value if self.role else None


def _in_scope(actor: Actor, department_id: UUID | None) -> bool:
    return department_id is not None and department_id in actor.department_ids


def can_administer(actor: Actor) -> bool:
    return actor.role == UserRole.ADMIN


def can_manage_subscriptions(actor: Actor) -> bool:
    """Create, edit, cancel and finance status updates."""
    return actor.role in (UserRole.ADMIN, UserRole.FINANCE)


def can_delete_subscription(actor: Actor) -> bool:
    return actor.role == UserRole.ADMIN


def can_decide_subscription(actor: Actor, department_id: UUID | None) -> bool:
    if actor.role == UserRole.ADMIN:
        return True
    return actor.role == UserRole.POC and _in_scope(actor, department_id)


def can_manage_payment_cycles(actor: Actor) -> bool:
    return actor.role in (UserRole.ADMIN, UserRole.FINANCE)


def can_decide_renewal(actor: Actor, department_id: UUID | None) -> bool:
    return can_decide_subscription(actor, department_id)


def can_upload_invoice(actor: Actor, department_id: UUID | None) -> bool:
    return can_decide_subscription(actor, department_id)


def can_view_subscription(actor: Actor, department_id: UUID | None) -> bool:
    if actor.role in (UserRole.ADMIN, UserRole.FINANCE):
        return True
    if actor.role in (UserRole.POC, UserRole.HOD):
        return _in_scope(actor, department_id)
    return False


def can_access_files(actor: Actor, department_id: UUID | None) -> bool:
    if actor.role in (UserRole.ADMIN, UserRole.FINANCE):
        return True
    return actor.role == UserRole.POC and _in_scope(actor, department_id)


def can_manage_locations(actor: Actor) -> bool:
    return actor.role in (UserRole.ADMIN, UserRole.FINANCE)


def visible_department_ids(actor: Actor) -> frozenset[UUID] | None:
    """``None`` means unrestricted; otherwise reads are limited to this set."""
    if actor.role in (UserRole.ADMIN, UserRole.FINANCE):
        return None
    if actor.role in (UserRole.POC, UserRole.HOD):
        return actor.department_ids
    return frozenset()


def require(allowed: bool, message: str = INSUFFICIENT_PERMISSIONS) -> None:
    if not allowed:
        raise PermissionDeniedError(message)


class AccessService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def poc_department_ids(self, user_id: UUID) -> frozenset[UUID]:
        rows = self.session.exec(
            select(PocDepartmentAccess.department_id).where(PocDepartmentAccess.poc_id == user_id)
        ).all()
        return frozenset(rows)

    def hod_department_ids(self, user_id: UUID) -> frozenset[UUID]:
        rows = self.session.exec(
            select(HodDepartment.department_id).where(HodDepartment.hod_id == user_id)
        ).all()
        return frozenset(rows)

    def actor_for(self, user: User) -> Actor:
        departments: Iterable[UUID] = ()
        if user.role == UserRole.POC:
            departments = self.poc_department_ids(user.id)
        elif user.role == UserRole.HOD:
            departments = self.hod_department_ids(user.id)
        return Actor(user_id=user.id, role=user.role, department_ids=frozenset(departments))

    def department_poc_ids(self, department_id: UUID) -> list[UUID]:
        statement = (
            select(PocDepartmentAccess.poc_id)
            .join(User, User.id == PocDepartmentAccess.poc_id)
            .where(PocDepartmentAccess.department_id == department_id, User.is_active.is_(True))
        )
        return list(self.session.exec(statement).all())
