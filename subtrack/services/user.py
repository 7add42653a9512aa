from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from subtrack.core.errors import InputValidationError, InvalidStateError, NotFoundError, StorageError
from subtrack.core.logging_setup import logger
from subtrack.models.base import utcnow
from subtrack.models.notification import UserNotification
from subtrack.models.subscription import Subscription
from subtrack.models.user import HodDepartment, PocDepartmentAccess, User, UserRole
from subtrack.schemas.common import BulkResult, Pagination
from subtrack.schemas.user import UserCreate, UserUpdate
from subtrack.services import access
from subtrack.services.access import Actor, require
from subtrack.services.audit import AuditService
from subtrack.services.bulk import toggle_active_in_batches
from subtrack.utils.security import get_password_hash


class UserService:
    def __init__(self, session: Session, audit_service: AuditService | None = None) -> None:
        self.session = session
        self.audit = audit_service or AuditService(session)

    def list_users(
        self,
        search: str | None = None,
        role: UserRole | None = None,
        is_active: bool | None = None,
        pagination: Pagination | None = None,
    ) -> tuple[list[User], int]:
        pagination = pagination or Pagination()
        query = select(User)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(User.email.ilike(pattern) | User.full_name.ilike(pattern))
        if role:
            query = query.where(User.role == role)
        if is_active is not None:
            query = query.where(User.is_active.is_(is_active))
        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = self.session.exec(
            query.order_by(User.full_name).offset(pagination.effective_offset).limit(pagination.effective_limit)
        ).all()
        return list(items), total

    def get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _commit(self, user: User, operation: str) -> User:
        try:
            self.session.add(user)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to %s", operation)
            raise StorageError() from exc
        self.session.refresh(user)
        return user

    def create_user(self, actor: Actor, payload: UserCreate) -> User:
        require(access.can_administer(actor))
        normalized_email = payload.email.strip().lower()
        existing = self.session.exec(select(User).where(func.lower(User.email) == normalized_email)).first()
        if existing:
            raise InputValidationError("User with this email already exists")

        user = User(
            email=normalized_email,
            full_name=payload.full_name.strip(),
            password_hash=get_password_hash(payload.password),
            role=payload.role,
        )
        user = self._commit(user, "create user")
        self.audit.record_event(
            "user.create", "user", user.id, actor, {"email": user.email, "role": user.role.value if user.role else None}
        )
        return user

    def update_user(self, actor: Actor, user_id: UUID, payload: UserUpdate) -> User:
        if actor.user_id != user_id:
            require(access.can_administer(actor))
        user = self.get_user(user_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("full_name") is not None:
            user.full_name = changes["full_name"].strip()
        if changes.get("password"):
            user.password_hash = get_password_hash(changes["password"])
        user.updated_at = utcnow()
        user = self._commit(user, "update user")
        self.audit.record_event("user.update", "user", user.id, actor, {"fields": sorted(changes)})
        return user

    def assign_role(self, actor: Actor, user_id: UUID, role: UserRole | None) -> User:
        """Users hold at most one role. Changing it drops department scope of the old role."""
        require(access.can_administer(actor))
        user = self.get_user(user_id)
        if user.id == actor.user_id and role != UserRole.ADMIN:
            raise InputValidationError("You cannot change your own role to a non-admin role")
        if user.role == role:
            raise InputValidationError("User already has this role")

        previous = user.role
        try:
            if previous == UserRole.POC:
                self.session.exec(delete(PocDepartmentAccess).where(PocDepartmentAccess.poc_id == user.id))
            if previous == UserRole.HOD:
                self.session.exec(delete(HodDepartment).where(HodDepartment.hod_id == user.id))
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to clear department scope for user %s", user.id)
            raise StorageError() from exc
        user.role = role
        user.updated_at = utcnow()
        user = self._commit(user, "assign role")
        self.audit.record_event(
            "user.role.assign",
            "user",
            user.id,
            actor,
            {"previous": previous.value if previous else None, "role": role.value if role else None},
        )
        return user

    def toggle_active(self, actor: Actor, user_id: UUID, is_active: bool) -> User:
        require(access.can_administer(actor))
        if user_id == actor.user_id and not is_active:
            raise InputValidationError("You cannot deactivate your own account")
        user = self.get_user(user_id)
        user.is_active = is_active
        user.updated_at = utcnow()
        user = self._commit(user, "toggle user status")
        self.audit.record_event("user.toggle", "user", user.id, actor, {"is_active": is_active})
        return user

    def bulk_toggle_active(self, actor: Actor, ids: Sequence[UUID], is_active: bool) -> BulkResult:
        require(access.can_administer(actor))
        protected = {}
        if not is_active:
            protected[actor.user_id] = "You cannot deactivate your own account"
        result = toggle_active_in_batches(
            self.session, User, ids, is_active, label="user", protected=protected
        )
        self.audit.record_event(
            "user.bulk_toggle",
            "user",
            None,
            actor,
            {"is_active": is_active, "successful": result.successful, "failed": result.failed},
        )
        return result

    def delete_user(self, actor: Actor, user_id: UUID) -> None:
        require(access.can_administer(actor))
        if user_id == actor.user_id:
            raise InputValidationError("You cannot delete your own account")
        user = self.get_user(user_id)
        owns_subscriptions = self.session.exec(
            select(Subscription.id).where(Subscription.created_by == user_id)
        ).first()
        if owns_subscriptions:
            raise InvalidStateError("User has created subscriptions. Deactivate the account instead.")
        try:
            self.session.exec(delete(PocDepartmentAccess).where(PocDepartmentAccess.poc_id == user_id))
            self.session.exec(delete(HodDepartment).where(HodDepartment.hod_id == user_id))
            self.session.exec(delete(UserNotification).where(UserNotification.recipient_id == user_id))
            self.session.delete(user)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise InvalidStateError("User is referenced by existing records. Deactivate the account instead.") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to delete user %s", user_id)
            raise StorageError() from exc
        self.audit.record_event("user.delete", "user", user_id, actor)
