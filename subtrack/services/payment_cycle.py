from __future__ import annotations

from datetime import date, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import false, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from subtrack.core.config import settings
from subtrack.core.errors import (
    ConcurrencyConflictError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
    ServiceError,
    StorageError,
)
from subtrack.core.logging_setup import logger
from subtrack.db.concurrency import commit_or_raise, guarded_update
from subtrack.models.base import utcnow
from subtrack.models.notification import NotificationType
from subtrack.models.payment_cycle import CycleStatus, PaymentCycle, PocApprovalStatus
from subtrack.models.subscription import FileType, Subscription, SubscriptionFile, SubscriptionStatus
from subtrack.schemas.payment_cycle import CycleCreate, CyclePaymentStatusUpdate, RecordPaymentRequest
from subtrack.services import access
from subtrack.services.access import Actor, require
from subtrack.services.audit import AuditService
from subtrack.services.files import SubscriptionFileService, decode_base64_content
from subtrack.services.notification import NotificationService
from subtrack.services.transitions import (
    TERMINAL_CYCLE_STATUSES,
    CycleAction,
    canonical_cycle_status,
    next_cycle_status,
)
from subtrack.utils.dates import invoice_deadline

ENTITY = "payment cycle"
AUTO_CANCEL_REASON = "Invoice not uploaded by deadline - auto-cancelled"
RENEWAL_REJECTED_WARNING = "Subscription has been cancelled because the renewal was rejected"


class PaymentCycleService:
    """Drives payment cycles through their lifecycle.

    Each transition reads the cycle, checks the caller and the transition
    table, then writes with a single UPDATE guarded on the status it read.
    A concurrent writer that got there first makes the UPDATE match zero
    rows, which surfaces as ``ConcurrencyConflictError``.
    """

    def __init__(
        self,
        session: Session,
        file_service: SubscriptionFileService | None = None,
        audit_service: AuditService | None = None,
        notification_service: NotificationService | None = None,
    ) -> None:
        self.session = session
        self.audit = audit_service or AuditService(session)
        self.files = file_service or SubscriptionFileService(session, audit_service=self.audit)
        self.notifications = notification_service or NotificationService(session)

    # Reads ---------------------------------------------------------------
    def _load(self, cycle_id: UUID) -> tuple[PaymentCycle, Subscription]:
        cycle = self.session.get(PaymentCycle, cycle_id)
        if not cycle:
            raise NotFoundError("Payment cycle not found")
        subscription = self.session.get(Subscription, cycle.subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return cycle, subscription

    def get_cycle(self, actor: Actor, cycle_id: UUID) -> PaymentCycle:
        cycle, subscription = self._load(cycle_id)
        require(access.can_view_subscription(actor, subscription.department_id))
        return cycle

    def list_cycles(self, actor: Actor, subscription_id: UUID, status: str | None = None) -> list[PaymentCycle]:
        """Cycles in cycle-number order. ``status`` also accepts the short legacy names."""
        subscription = self.session.get(Subscription, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        require(access.can_view_subscription(actor, subscription.department_id))
        statement = select(PaymentCycle).where(PaymentCycle.subscription_id == subscription_id)
        if status:
            try:
                statement = statement.where(PaymentCycle.cycle_status == canonical_cycle_status(status.upper()))
            except ValueError as exc:
                raise InputValidationError(f"Unknown payment cycle status: {status}") from exc
        statement = statement.order_by(PaymentCycle.cycle_number)
        return list(self.session.exec(statement).all())

    def _scoped(self, actor: Actor, query):
        visible = access.visible_department_ids(actor)
        if visible is None:
            return query
        if not visible:
            return query.where(false())
        return query.where(Subscription.department_id.in_(visible))

    def _queue(self, actor: Actor, *conditions: Any) -> list[PaymentCycle]:
        query = (
            select(PaymentCycle)
            .join(Subscription, Subscription.id == PaymentCycle.subscription_id)
            .where(*conditions)
            .order_by(PaymentCycle.cycle_end_date, PaymentCycle.cycle_number)
        )
        return list(self.session.exec(self._scoped(actor, query)).all())

    def pending_renewal_approvals(self, actor: Actor, today: date) -> list[PaymentCycle]:
        horizon = today + timedelta(days=settings.renewal_reminder_days)
        return self._queue(
            actor,
            PaymentCycle.cycle_status.in_([CycleStatus.PENDING_APPROVAL, CycleStatus.PAYMENT_RECORDED]),
            PaymentCycle.poc_approval_status == PocApprovalStatus.PENDING,
            PaymentCycle.cycle_start_date <= horizon,
        )

    def pending_invoice_uploads(self, actor: Actor, today: date) -> list[PaymentCycle]:
        return self._queue(
            actor,
            PaymentCycle.cycle_status.in_([CycleStatus.APPROVED, CycleStatus.PAYMENT_RECORDED]),
            PaymentCycle.invoice_file_id.is_(None),
            PaymentCycle.invoice_deadline >= today,
        )

    def overdue_invoices(self, actor: Actor, today: date) -> list[PaymentCycle]:
        return self._queue(
            actor,
            PaymentCycle.cycle_status.in_([CycleStatus.APPROVED, CycleStatus.PAYMENT_RECORDED]),
            PaymentCycle.invoice_file_id.is_(None),
            PaymentCycle.invoice_deadline < today,
        )

    def count_by_status(self, actor: Actor) -> dict[str, int]:
        query = (
            select(PaymentCycle.cycle_status, func.count())
            .join(Subscription, Subscription.id == PaymentCycle.subscription_id)
            .group_by(PaymentCycle.cycle_status)
        )
        return {status.value: count for status, count in self.session.exec(self._scoped(actor, query)).all()}

    # Creation ---------------------------------------------------------------
    def create_cycle(self, actor: Actor, subscription_id: UUID, payload: CycleCreate) -> PaymentCycle:
        require(access.can_manage_payment_cycles(actor))
        if payload.cycle_end_date <= payload.cycle_start_date:
            raise InputValidationError("Cycle end date must be after start date")
        subscription = self.session.get(Subscription, subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        cycle = self.open_cycle(
            subscription,
            payload.cycle_start_date,
            payload.cycle_end_date,
            CycleStatus.PENDING_PAYMENT,
        )
        self.audit.record_event(
            "payment_cycle.create",
            "payment_cycle",
            cycle.id,
            actor,
            {"subscription_id": str(subscription.id), "cycle_number": cycle.cycle_number},
        )
        return cycle

    def open_cycle(
        self,
        subscription: Subscription,
        start: date,
        end: date,
        status: CycleStatus,
    ) -> PaymentCycle:
        """Insert the next cycle for ``subscription``. Callers check permissions."""
        if end <= start:
            raise InputValidationError("Cycle end date must be after start date")
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStateError(
                f"Cannot create payment cycle for subscription with status: {subscription.status.value}"
            )
        existing = self.session.exec(
            select(PaymentCycle.cycle_number, PaymentCycle.cycle_status).where(
                PaymentCycle.subscription_id == subscription.id
            )
        ).all()
        open_numbers = [number for number, status_ in existing if status_ not in TERMINAL_CYCLE_STATUSES]
        if open_numbers:
            raise InvalidStateError(f"Subscription already has an open payment cycle (#{max(open_numbers)})")
        next_number = max((number for number, _ in existing), default=0) + 1

        cycle = PaymentCycle(
            subscription_id=subscription.id,
            cycle_number=next_number,
            cycle_start_date=start,
            cycle_end_date=end,
            invoice_deadline=invoice_deadline(end),
            cycle_status=status,
        )
        try:
            self.session.add(cycle)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.info("Cycle number %d already taken for subscription %s", next_number, subscription.id)
            raise ConcurrencyConflictError(ENTITY) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to create payment cycle for subscription %s", subscription.id)
            raise StorageError() from exc
        self.session.refresh(cycle)
        logger.info("Payment cycle #%d opened for subscription %s", cycle.cycle_number, subscription.id)
        return cycle

    # Transitions ------------------------------------------------------------
    def _transition(
        self,
        cycle: PaymentCycle,
        action: CycleAction,
        values: dict[str, Any],
        extra_guards: list[Any] | None = None,
    ) -> CycleStatus:
        current = canonical_cycle_status(cycle.cycle_status)
        target = next_cycle_status(action, current)
        guarded_update(
            self.session,
            PaymentCycle,
            cycle.id,
            [PaymentCycle.cycle_status == current, *(extra_guards or [])],
            {**values, "cycle_status": target},
            entity=ENTITY,
        )
        return target

    def _finish(self, cycle: PaymentCycle, operation: str) -> PaymentCycle:
        commit_or_raise(self.session, operation)
        self.session.refresh(cycle)
        return cycle

    def record_payment(self, actor: Actor, cycle_id: UUID, payload: RecordPaymentRequest) -> PaymentCycle:
        require(access.can_manage_payment_cycles(actor))
        utr = payload.payment_utr.strip()
        if not utr:
            raise InputValidationError("Payment UTR is required")
        cycle, _ = self._load(cycle_id)
        if cycle.payment_recorded_at is not None:
            raise InvalidStateError("Payment has already been recorded for this cycle")

        self._transition(
            cycle,
            CycleAction.RECORD_PAYMENT,
            {
                "payment_utr": utr,
                "payment_status": payload.payment_status,
                "accounting_status": payload.accounting_status,
                "mandate_id": (payload.mandate_id or "").strip() or None,
                "payment_recorded_by": actor.user_id,
                "payment_recorded_at": utcnow(),
            },
            [PaymentCycle.payment_recorded_at.is_(None)],
        )
        cycle = self._finish(cycle, "payment record")
        self.audit.record_event(
            "payment_cycle.payment.record",
            "payment_cycle",
            cycle.id,
            actor,
            {"payment_utr": utr, "payment_status": payload.payment_status.value},
        )
        return cycle

    def update_payment_status(self, actor: Actor, cycle_id: UUID, payload: CyclePaymentStatusUpdate) -> PaymentCycle:
        require(access.can_manage_payment_cycles(actor))
        changes = payload.model_dump(exclude_none=True)
        if not changes:
            raise InputValidationError("Nothing to update")
        cycle, _ = self._load(cycle_id)
        guarded_update(
            self.session,
            PaymentCycle,
            cycle.id,
            [PaymentCycle.cycle_status == cycle.cycle_status],
            changes,
            entity=ENTITY,
        )
        cycle = self._finish(cycle, "payment status update")
        self.audit.record_event(
            "payment_cycle.payment_status.update",
            "payment_cycle",
            cycle.id,
            actor,
            {key: value.value for key, value in changes.items()},
        )
        return cycle

    def approve_renewal(self, actor: Actor, cycle_id: UUID, comments: str | None = None) -> PaymentCycle:
        cycle, subscription = self._load(cycle_id)
        require(access.can_decide_renewal(actor, subscription.department_id))
        self._transition(
            cycle,
            CycleAction.APPROVE,
            {
                "poc_approval_status": PocApprovalStatus.APPROVED,
                "poc_approved_by": actor.user_id,
                "poc_approved_at": utcnow(),
            },
        )
        cycle = self._finish(cycle, "renewal approval")
        self.audit.record_event(
            "payment_cycle.renewal.approve",
            "payment_cycle",
            cycle.id,
            actor,
            {"comments": (comments or "").strip() or None},
        )
        return cycle

    def reject_renewal(self, actor: Actor, cycle_id: UUID, reason: str | None) -> tuple[PaymentCycle, str | None]:
        """Reject a renewal. An ACTIVE parent subscription is discontinued."""
        cleaned = (reason or "").strip()
        if not cleaned:
            raise InputValidationError("Rejection reason is required")
        cycle, subscription = self._load(cycle_id)
        require(access.can_decide_renewal(actor, subscription.department_id))

        self._transition(
            cycle,
            CycleAction.REJECT,
            {
                "poc_approval_status": PocApprovalStatus.REJECTED,
                "poc_approved_by": actor.user_id,
                "poc_approved_at": utcnow(),
                "poc_rejection_reason": cleaned,
            },
        )
        warning = None
        if subscription.status == SubscriptionStatus.ACTIVE:
            guarded_update(
                self.session,
                Subscription,
                subscription.id,
                [Subscription.version == subscription.version, Subscription.status == SubscriptionStatus.ACTIVE],
                {"status": SubscriptionStatus.CANCELLED, "version": subscription.version + 1},
                entity="subscription",
            )
            warning = RENEWAL_REJECTED_WARNING
        cycle = self._finish(cycle, "renewal rejection")
        self.session.refresh(subscription)

        self.audit.record_event(
            "payment_cycle.renewal.reject",
            "payment_cycle",
            cycle.id,
            actor,
            {"reason": cleaned, "subscription_cancelled": warning is not None},
        )
        self.notifications.notify(
            [subscription.created_by],
            NotificationType.RENEWAL_REJECTED,
            title="Renewal rejected",
            message=f"Cycle #{cycle.cycle_number} of {subscription.subscription_code} was rejected: {cleaned}",
            subscription=subscription,
        )
        return cycle, warning

    def upload_invoice(self, actor: Actor, cycle_id: UUID, file_id: UUID) -> PaymentCycle:
        cycle, subscription = self._load(cycle_id)
        require(access.can_upload_invoice(actor, subscription.department_id))
        invoice = self.session.get(SubscriptionFile, file_id)
        if not invoice:
            raise NotFoundError("File not found")
        if invoice.subscription_id != cycle.subscription_id:
            raise InputValidationError("File does not belong to this subscription")
        if invoice.file_type != FileType.INVOICE:
            raise InputValidationError("File is not an invoice")

        self._transition(
            cycle,
            CycleAction.UPLOAD_INVOICE,
            {"invoice_file_id": invoice.id, "invoice_uploaded_at": utcnow()},
        )
        cycle = self._finish(cycle, "invoice upload")
        self.audit.record_event(
            "payment_cycle.invoice.upload",
            "payment_cycle",
            cycle.id,
            actor,
            {"file_id": str(invoice.id)},
        )
        return cycle

    def upload_and_link_invoice(
        self,
        actor: Actor,
        cycle_id: UUID,
        *,
        filename: str,
        data: bytes | None = None,
        content: str | None = None,
        mime_type: str | None = None,
    ) -> PaymentCycle:
        """Store the invoice file, then link it. The file is removed if linking fails."""
        cycle, subscription = self._load(cycle_id)
        require(access.can_upload_invoice(actor, subscription.department_id))
        next_cycle_status(CycleAction.UPLOAD_INVOICE, cycle.cycle_status)
        if data is None:
            data = decode_base64_content(content or "")

        record = self.files.upload(
            actor,
            subscription.id,
            file_type=FileType.INVOICE,
            filename=filename,
            data=data,
            mime_type=mime_type,
        )
        try:
            return self.upload_invoice(actor, cycle_id, record.id)
        except ServiceError:
            self.files.discard(record)
            raise

    def complete_cycle(self, actor: Actor, cycle_id: UUID) -> PaymentCycle:
        require(access.can_manage_payment_cycles(actor))
        cycle, _ = self._load(cycle_id)
        if cycle.payment_recorded_at is None:
            raise InvalidStateError("Payment must be recorded before the cycle can be completed")
        self._transition(cycle, CycleAction.COMPLETE, {})
        cycle = self._finish(cycle, "cycle completion")
        self.audit.record_event("payment_cycle.complete", "payment_cycle", cycle.id, actor)
        return cycle

    def cancel_cycle(self, actor: Actor | None, cycle_id: UUID, reason: str | None) -> PaymentCycle:
        """Cancel a cycle. ``actor`` is ``None`` only for scheduled jobs."""
        if actor is not None:
            require(access.can_manage_payment_cycles(actor))
        cleaned = (reason or "").strip()
        if not cleaned:
            raise InputValidationError("Cancellation reason is required")
        cycle, subscription = self._load(cycle_id)

        self._transition(cycle, CycleAction.CANCEL, {"cancellation_reason": cleaned})
        cycle = self._finish(cycle, "cycle cancellation")
        self.audit.record_event(
            "payment_cycle.cancel" if actor else "payment_cycle.auto_cancel",
            "payment_cycle",
            cycle.id,
            actor,
            {"reason": cleaned},
        )
        self.notifications.notify(
            [subscription.created_by],
            NotificationType.CYCLE_CANCELLED,
            title="Payment cycle cancelled",
            message=f"Cycle #{cycle.cycle_number} of {subscription.subscription_code} was cancelled: {cleaned}",
            subscription=subscription,
        )
        return cycle
