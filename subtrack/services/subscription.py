from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import delete, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from subtrack.core.config import settings
from subtrack.core.errors import (
    ConcurrencyConflictError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
    StorageError,
)
from subtrack.core.logging_setup import logger
from subtrack.db.concurrency import commit_or_raise, guarded_update
from subtrack.models.base import today, utcnow
from subtrack.models.notification import NotificationType, UserNotification
from subtrack.models.organization import Department, Location, SubscriptionSequence
from subtrack.models.payment_cycle import PaymentCycle
from subtrack.models.user import UserRole
from subtrack.models.subscription import (
    ApprovalAction,
    Subscription,
    SubscriptionApproval,
    SubscriptionFile,
    SubscriptionStatus,
)
from subtrack.schemas.common import Pagination
from subtrack.schemas.subscription import (
    AccountingStatusUpdate,
    PaymentStatusUpdate,
    SubscriptionCreate,
    SubscriptionFilters,
    SubscriptionUpdate,
)
from subtrack.services import access
from subtrack.services.access import AccessService, Actor, require
from subtrack.services.audit import AuditService
from subtrack.services.files import SubscriptionFileService
from subtrack.services.notification import NotificationService
from subtrack.services.transitions import (
    DELETABLE_SUBSCRIPTION_STATUSES,
    SubscriptionAction,
    next_subscription_status,
)
from subtrack.utils.dates import fiscal_year

REAPPROVAL_WARNING = "Subscription requires re-approval due to changes"
ENTITY = "subscription"


class SubscriptionService:
    def __init__(
        self,
        session: Session,
        audit_service: AuditService | None = None,
        notification_service: NotificationService | None = None,
    ) -> None:
        self.session = session
        self.access = AccessService(session)
        self.audit = audit_service or AuditService(session)
        self.notifications = notification_service or NotificationService(session)

    # Reads ---------------------------------------------------------------
    def _load(self, subscription_id: UUID) -> Subscription:
        subscription = self.session.get(Subscription, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    def get_subscription(self, actor: Actor, subscription_id: UUID) -> Subscription:
        subscription = self._load(subscription_id)
        require(access.can_view_subscription(actor, subscription.department_id))
        return subscription

    def list_subscriptions(
        self,
        actor: Actor,
        filters: SubscriptionFilters | None = None,
        pagination: Pagination | None = None,
    ) -> tuple[list[Subscription], int]:
        filters = filters or SubscriptionFilters()
        pagination = pagination or Pagination()

        query = select(Subscription)
        visible = access.visible_department_ids(actor)
        if visible is not None:
            if not visible:
                return [], 0
            query = query.where(Subscription.department_id.in_(visible))

        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(
                    Subscription.tool_name.ilike(pattern),
                    Subscription.vendor_name.ilike(pattern),
                    Subscription.subscription_code.ilike(pattern),
                )
            )
        if filters.status:
            query = query.where(Subscription.status == filters.status)
        if filters.payment_status:
            query = query.where(Subscription.payment_status == filters.payment_status)
        if filters.accounting_status:
            query = query.where(Subscription.accounting_status == filters.accounting_status)
        if filters.billing_frequency:
            query = query.where(Subscription.billing_frequency == filters.billing_frequency)
        if filters.request_type:
            query = query.where(Subscription.request_type == filters.request_type)
        if filters.department_id:
            query = query.where(Subscription.department_id == filters.department_id)
        if filters.created_by:
            query = query.where(Subscription.created_by == filters.created_by)
        if filters.start_date_from:
            query = query.where(Subscription.start_date >= filters.start_date_from)
        if filters.start_date_to:
            query = query.where(Subscription.start_date <= filters.start_date_to)
        if filters.end_date_from:
            query = query.where(Subscription.end_date >= filters.end_date_from)
        if filters.end_date_to:
            query = query.where(Subscription.end_date <= filters.end_date_to)

        total = self.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = self.session.exec(
            query.order_by(Subscription.created_at.desc())
            .offset(pagination.effective_offset)
            .limit(pagination.effective_limit)
        ).all()
        return list(items), total

    def pending_approvals(self, actor: Actor, pagination: Pagination | None = None) -> tuple[list[Subscription], int]:
        """Subscriptions waiting on a decision the caller is allowed to make."""
        if not (access.can_administer(actor) or actor.role == UserRole.POC):
            return [], 0
        return self.list_subscriptions(
            actor, SubscriptionFilters(status=SubscriptionStatus.PENDING), pagination
        )

    def count_by_status(self, actor: Actor) -> dict[str, int]:
        query = select(Subscription.status, func.count()).group_by(Subscription.status)
        visible = access.visible_department_ids(actor)
        if visible is not None:
            if not visible:
                return {}
            query = query.where(Subscription.department_id.in_(visible))
        return {status.value: count for status, count in self.session.exec(query).all()}

    def list_approvals(self, actor: Actor, subscription_id: UUID) -> list[SubscriptionApproval]:
        self.get_subscription(actor, subscription_id)
        statement = (
            select(SubscriptionApproval)
            .where(SubscriptionApproval.subscription_id == subscription_id)
            .order_by(SubscriptionApproval.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    # Validation helpers ---------------------------------------------------
    @staticmethod
    def _validate_dates(start_date: date | None, end_date: date | None) -> None:
        if start_date is None:
            raise InputValidationError("Start date is required")
        if end_date is not None and end_date <= start_date:
            raise InputValidationError("End date must be after start date")

    def _active_department(self, department_id: UUID) -> Department:
        department = self.session.get(Department, department_id)
        if not department or not department.is_active:
            raise InputValidationError("Invalid or inactive department")
        return department

    def _check_location(self, location_id: UUID | None) -> None:
        if location_id is None:
            return
        location = self.session.get(Location, location_id)
        if not location or not location.is_active:
            raise InputValidationError("Invalid or inactive location")

    def _next_code(self, department: Department, on: date) -> str:
        year = fiscal_year(on)
        prefix = department.short_code or "UNK"
        guards = (
            SubscriptionSequence.prefix == prefix,
            SubscriptionSequence.fiscal_year == year,
        )
        bumped = self.session.exec(
            update(SubscriptionSequence)
            .where(*guards)
            .values(last_value=SubscriptionSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            self.session.add(SubscriptionSequence(prefix=prefix, fiscal_year=year, last_value=1))
            self.session.flush()
        value = self.session.exec(select(SubscriptionSequence.last_value).where(*guards)).one()
        return f"{prefix}/FY{year:02d}/{value:03d}"

    # Mutations ------------------------------------------------------------
    def create_subscription(self, actor: Actor, payload: SubscriptionCreate) -> Subscription:
        require(access.can_manage_subscriptions(actor))
        self._validate_dates(payload.start_date, payload.end_date)
        department = self._active_department(payload.department_id)
        self._check_location(payload.location_id)

        try:
            subscription = Subscription(
                **payload.model_dump(),
                subscription_code=self._next_code(department, today()),
                status=SubscriptionStatus.PENDING,
                version=1,
                created_by=actor.user_id,
            )
            self.session.add(subscription)
            self.session.commit()
        except IntegrityError as exc:
            # another request opened the same fiscal-year sequence first
            self.session.rollback()
            raise ConcurrencyConflictError(ENTITY) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to create subscription for department %s", department.id)
            raise StorageError() from exc
        self.session.refresh(subscription)

        logger.info("Subscription %s created by %s", subscription.subscription_code, actor.user_id)
        self.audit.record_event(
            "subscription.create",
            ENTITY,
            subscription.id,
            actor,
            {"subscription_code": subscription.subscription_code, "tool_name": subscription.tool_name},
        )
        self._notify_approvers(subscription, "New subscription awaiting approval")
        return subscription

    def update_subscription(
        self, actor: Actor, subscription_id: UUID, payload: SubscriptionUpdate
    ) -> tuple[Subscription, str | None]:
        require(access.can_manage_subscriptions(actor))
        subscription = self._load(subscription_id)
        expected_version = payload.version
        if subscription.version != expected_version:
            raise ConcurrencyConflictError(ENTITY)

        changes = payload.model_dump(exclude_unset=True, exclude={"version"})
        self._validate_dates(
            changes.get("start_date", subscription.start_date),
            changes.get("end_date", subscription.end_date),
        )
        if "department_id" in changes and changes["department_id"] != subscription.department_id:
            self._active_department(changes["department_id"])
        if changes.get("location_id") and changes["location_id"] != subscription.location_id:
            self._check_location(changes["location_id"])

        warning = None
        values = {**changes, "version": expected_version + 1}
        if subscription.status == SubscriptionStatus.ACTIVE:
            values["status"] = SubscriptionStatus.PENDING
            warning = REAPPROVAL_WARNING

        guarded_update(
            self.session,
            Subscription,
            subscription_id,
            [Subscription.version == expected_version],
            values,
            entity=ENTITY,
        )
        commit_or_raise(self.session, "subscription update")
        self.session.refresh(subscription)

        self.audit.record_event(
            "subscription.update",
            ENTITY,
            subscription.id,
            actor,
            {"fields": sorted(changes), "reapproval_required": warning is not None},
        )
        if warning:
            self._notify_approvers(subscription, "Subscription changed and needs re-approval")
        return subscription, warning

    def _decide(
        self,
        actor: Actor,
        subscription_id: UUID,
        action: SubscriptionAction,
        comments: str | None,
    ) -> Subscription:
        subscription = self._load(subscription_id)
        require(access.can_decide_subscription(actor, subscription.department_id))
        target = next_subscription_status(action, subscription.status)
        expected_version = subscription.version

        guarded_update(
            self.session,
            Subscription,
            subscription_id,
            [Subscription.version == expected_version, Subscription.status == subscription.status],
            {"status": target, "version": expected_version + 1},
            entity=ENTITY,
        )
        decision = ApprovalAction.APPROVED if action == SubscriptionAction.APPROVE else ApprovalAction.REJECTED
        self.session.add(
            SubscriptionApproval(
                subscription_id=subscription_id,
                approver_id=actor.user_id,
                action=decision,
                comments=comments,
                created_at=utcnow(),
            )
        )
        commit_or_raise(self.session, f"subscription {action.value}")
        self.session.refresh(subscription)

        self.audit.record_event(
            f"subscription.{action.value}",
            ENTITY,
            subscription.id,
            actor,
            {"comments": comments, "version": subscription.version},
        )
        self.notifications.notify(
            [subscription.created_by],
            NotificationType.APPROVAL_DECISION,
            title=f"Subscription {decision.value.lower()}",
            message=f"{subscription.subscription_code} ({subscription.tool_name}) was {decision.value.lower()}.",
            subscription=subscription,
            payload={"action": decision.value, "comments": comments},
        )
        return subscription

    def approve_subscription(self, actor: Actor, subscription_id: UUID, comments: str | None = None) -> Subscription:
        return self._decide(actor, subscription_id, SubscriptionAction.APPROVE, (comments or "").strip() or None)

    def reject_subscription(self, actor: Actor, subscription_id: UUID, comments: str | None) -> Subscription:
        cleaned = (comments or "").strip()
        if len(cleaned) < settings.reject_comment_min_length:
            raise InputValidationError(
                f"Rejection comments must be at least {settings.reject_comment_min_length} characters"
            )
        return self._decide(actor, subscription_id, SubscriptionAction.REJECT, cleaned)

    def cancel_subscription(self, actor: Actor, subscription_id: UUID) -> Subscription:
        require(access.can_manage_subscriptions(actor))
        subscription = self._load(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise InvalidStateError("Subscription is already cancelled")
        target = next_subscription_status(SubscriptionAction.CANCEL, subscription.status)
        expected_version = subscription.version

        guarded_update(
            self.session,
            Subscription,
            subscription_id,
            [Subscription.version == expected_version, Subscription.status == subscription.status],
            {"status": target, "version": expected_version + 1},
            entity=ENTITY,
        )
        commit_or_raise(self.session, "subscription cancel")
        self.session.refresh(subscription)
        self.audit.record_event("subscription.cancel", ENTITY, subscription.id, actor)
        return subscription

    def _update_finance_field(self, actor: Actor, subscription_id: UUID, version: int, field: str, value) -> Subscription:
        require(access.can_manage_subscriptions(actor))
        subscription = self._load(subscription_id)
        if subscription.version != version:
            raise ConcurrencyConflictError(ENTITY)
        guarded_update(
            self.session,
            Subscription,
            subscription_id,
            [Subscription.version == version],
            {field: value, "version": version + 1},
            entity=ENTITY,
        )
        commit_or_raise(self.session, f"subscription {field} update")
        self.session.refresh(subscription)
        self.audit.record_event(
            f"subscription.{field}.update", ENTITY, subscription.id, actor, {field: value.value}
        )
        return subscription

    def update_payment_status(self, actor: Actor, subscription_id: UUID, payload: PaymentStatusUpdate) -> Subscription:
        return self._update_finance_field(
            actor, subscription_id, payload.version, "payment_status", payload.payment_status
        )

    def update_accounting_status(
        self, actor: Actor, subscription_id: UUID, payload: AccountingStatusUpdate
    ) -> Subscription:
        return self._update_finance_field(
            actor, subscription_id, payload.version, "accounting_status", payload.accounting_status
        )

    def delete_subscription(self, actor: Actor, subscription_id: UUID) -> None:
        require(access.can_delete_subscription(actor))
        subscription = self._load(subscription_id)
        if subscription.status not in DELETABLE_SUBSCRIPTION_STATUSES:
            raise InvalidStateError(
                f"Only PENDING or REJECTED subscriptions can be deleted. Current status: {subscription.status.value}"
            )
        cycle_count = self.session.exec(
            select(func.count()).where(PaymentCycle.subscription_id == subscription_id)
        ).one()
        if cycle_count:
            raise InvalidStateError("Subscription has payment cycles and cannot be deleted")

        code = subscription.subscription_code
        stored_paths = list(
            self.session.exec(
                select(SubscriptionFile.storage_path).where(SubscriptionFile.subscription_id == subscription_id)
            ).all()
        )
        try:
            self.session.exec(
                update(UserNotification)
                .where(UserNotification.subscription_id == subscription_id)
                .values(subscription_id=None)
            )
            self.session.exec(delete(SubscriptionApproval).where(SubscriptionApproval.subscription_id == subscription_id))
            self.session.exec(delete(SubscriptionFile).where(SubscriptionFile.subscription_id == subscription_id))
            removed = self.session.exec(
                delete(Subscription).where(
                    Subscription.id == subscription_id,
                    Subscription.version == subscription.version,
                )
            )
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to delete subscription %s", subscription_id)
            raise StorageError() from exc
        if removed.rowcount != 1:
            self.session.rollback()
            raise ConcurrencyConflictError(ENTITY)
        commit_or_raise(self.session, "subscription delete")

        self._discard_blobs(stored_paths)
        self.audit.record_event("subscription.delete", ENTITY, subscription_id, actor, {"subscription_code": code})

    # Side channels ----------------------------------------------------------
    def _discard_blobs(self, paths: list[str]) -> None:
        if not paths:
            return
        files = SubscriptionFileService(self.session, audit_service=self.audit)
        for path in paths:
            files.discard_blob(path)

    def _notify_approvers(self, subscription: Subscription, title: str) -> None:
        poc_ids = self.access.department_poc_ids(subscription.department_id)
        self.notifications.notify(
            poc_ids,
            NotificationType.APPROVAL_REQUEST,
            title=title,
            message=f"{subscription.subscription_code}: {subscription.tool_name} from {subscription.vendor_name}",
            subscription=subscription,
        )
