from datetime import date

import pytest
from sqlmodel import Session, select

from subtrack.core.errors import (
    ConcurrencyConflictError,
    InputValidationError,
    InvalidStateError,
    PermissionDeniedError,
)
from subtrack.models.audit import AuditLog
from subtrack.models.notification import NotificationType, UserNotification
from subtrack.models.payment_cycle import CycleStatus, PaymentCycle, PocApprovalStatus
from subtrack.models.subscription import FileType, PaymentStatus, Subscription, SubscriptionFile, SubscriptionStatus
from subtrack.models.user import UserRole
from subtrack.schemas.payment_cycle import CycleCreate, RecordPaymentRequest
from subtrack.services.files import SubscriptionFileService
from subtrack.services.payment_cycle import RENEWAL_REJECTED_WARNING, PaymentCycleService
from tests.conftest import actor_for, make_department, make_subscription, make_user

JANUARY = CycleCreate(cycle_start_date=date(2026, 1, 1), cycle_end_date=date(2026, 1, 15))


@pytest.fixture()
def ctx(db_session: Session, storage_env) -> dict:
    department = make_department(db_session, short_code="FIN")
    other_department = make_department(db_session, short_code="MKT")
    finance = actor_for(db_session, make_user(db_session, UserRole.FINANCE))
    poc = actor_for(db_session, make_user(db_session, UserRole.POC, (department,)))
    other_poc = actor_for(db_session, make_user(db_session, UserRole.POC, (other_department,)))
    subscription = make_subscription(db_session, finance, department, activate_with=poc)
    return {
        "department": department,
        "finance": finance,
        "poc": poc,
        "other_poc": other_poc,
        "subscription": subscription,
        "service": PaymentCycleService(db_session),
    }


def _record(service: PaymentCycleService, actor, cycle_id, utr: str = "UTR-0001") -> PaymentCycle:
    return service.record_payment(actor, cycle_id, RecordPaymentRequest(payment_utr=utr))


def test_create_cycle_computes_deadline(ctx: dict) -> None:
    cycle = ctx["service"].create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    assert cycle.cycle_number == 1
    assert cycle.cycle_status == CycleStatus.PENDING_PAYMENT
    assert cycle.invoice_deadline == date(2026, 1, 31)


def test_cycle_numbers_are_sequential(ctx: dict) -> None:
    service = ctx["service"]
    numbers = []
    for month in (1, 2, 3):
        cycle = service.create_cycle(
            ctx["finance"],
            ctx["subscription"].id,
            CycleCreate(cycle_start_date=date(2026, month, 1), cycle_end_date=date(2026, month, 20)),
        )
        numbers.append(cycle.cycle_number)
        service.cancel_cycle(ctx["finance"], cycle.id, "Superseded")
    assert numbers == [1, 2, 3]


def test_only_one_open_cycle_per_subscription(ctx: dict) -> None:
    ctx["service"].create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    with pytest.raises(InvalidStateError, match="already has an open payment cycle"):
        ctx["service"].create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)


def test_create_cycle_requires_active_subscription(db_session: Session, ctx: dict) -> None:
    pending = make_subscription(db_session, ctx["finance"], ctx["department"])
    with pytest.raises(InvalidStateError, match="status: PENDING"):
        ctx["service"].create_cycle(ctx["finance"], pending.id, JANUARY)
    with pytest.raises(PermissionDeniedError):
        ctx["service"].create_cycle(ctx["poc"], ctx["subscription"].id, JANUARY)
    with pytest.raises(InputValidationError, match="Cycle end date must be after start date"):
        ctx["service"].create_cycle(
            ctx["finance"],
            ctx["subscription"].id,
            CycleCreate(cycle_start_date=date(2026, 1, 15), cycle_end_date=date(2026, 1, 1)),
        )


def test_full_cycle_flow(db_session: Session, ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)

    cycle = _record(service, ctx["finance"], cycle.id)
    assert cycle.cycle_status == CycleStatus.PAYMENT_RECORDED
    assert cycle.payment_status == PaymentStatus.PAID
    assert cycle.payment_recorded_by == ctx["finance"].user_id

    cycle = service.approve_renewal(ctx["poc"], cycle.id)
    assert cycle.cycle_status == CycleStatus.APPROVED
    assert cycle.poc_approval_status == PocApprovalStatus.APPROVED

    cycle = service.upload_and_link_invoice(ctx["poc"], cycle.id, filename="invoice jan.pdf", data=b"%PDF-1.4")
    assert cycle.cycle_status == CycleStatus.INVOICE_UPLOADED
    invoice = db_session.get(SubscriptionFile, cycle.invoice_file_id)
    assert invoice.file_type == FileType.INVOICE
    assert invoice.storage_path.endswith("_invoice_jan.pdf")

    cycle = service.complete_cycle(ctx["finance"], cycle.id)
    assert cycle.cycle_status == CycleStatus.COMPLETED

    actions = [log.action for log in db_session.exec(select(AuditLog).order_by(AuditLog.created_at)).all()]
    assert "payment_cycle.payment.record" in actions
    assert "payment_cycle.complete" in actions


def test_record_payment_twice_is_refused(ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)
    with pytest.raises(InvalidStateError, match="already been recorded"):
        _record(service, ctx["finance"], cycle.id, "UTR-0002")


def test_stale_cycle_status_conflicts(db_engine, db_session: Session, ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)

    with Session(db_engine) as other_session:
        stale = other_session.get(PaymentCycle, cycle.id)
        assert stale.cycle_status == CycleStatus.PAYMENT_RECORDED

        service.approve_renewal(ctx["poc"], cycle.id)

        with pytest.raises(ConcurrencyConflictError) as excinfo:
            PaymentCycleService(other_session).reject_renewal(ctx["poc"], cycle.id, "Budget cut")
    assert excinfo.value.message == "This payment cycle was modified by another user. Please refresh and try again."

    db_session.expire_all()
    assert db_session.get(PaymentCycle, cycle.id).cycle_status == CycleStatus.APPROVED
    assert db_session.get(Subscription, ctx["subscription"].id).status == SubscriptionStatus.ACTIVE


def test_reject_renewal_cancels_subscription(db_session: Session, ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)

    with pytest.raises(InputValidationError, match="Rejection reason is required"):
        service.reject_renewal(ctx["poc"], cycle.id, "   ")
    with pytest.raises(PermissionDeniedError):
        service.reject_renewal(ctx["other_poc"], cycle.id, "Not ours")

    cycle, warning = service.reject_renewal(ctx["poc"], cycle.id, "Tool no longer used")

    assert cycle.cycle_status == CycleStatus.REJECTED
    assert cycle.poc_rejection_reason == "Tool no longer used"
    assert warning == RENEWAL_REJECTED_WARNING
    subscription = db_session.get(Subscription, ctx["subscription"].id)
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert subscription.version == 3
    notice = db_session.exec(
        select(UserNotification).where(UserNotification.event_type == NotificationType.RENEWAL_REJECTED)
    ).one()
    assert notice.recipient_id == ctx["finance"].user_id


@pytest.mark.parametrize("advance", ["none", "paid"])
def test_cancel_allowed_before_approval(ctx: dict, advance: str) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    if advance == "paid":
        _record(service, ctx["finance"], cycle.id)
    cancelled = service.cancel_cycle(ctx["finance"], cycle.id, "Vendor switched")
    assert cancelled.cycle_status == CycleStatus.CANCELLED
    assert cancelled.cancellation_reason == "Vendor switched"
    assert cancelled.poc_rejection_reason is None


def test_cancel_refused_after_approval(ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)
    service.approve_renewal(ctx["poc"], cycle.id)

    with pytest.raises(InvalidStateError, match="Cannot cancel payment cycle with status: APPROVED"):
        service.cancel_cycle(ctx["finance"], cycle.id, "Too late")
    with pytest.raises(InputValidationError, match="Cancellation reason is required"):
        service.cancel_cycle(ctx["finance"], cycle.id, "")


def test_invoice_must_belong_to_the_cycle_subscription(db_session: Session, ctx: dict) -> None:
    service = ctx["service"]
    files = SubscriptionFileService(db_session)
    other = make_subscription(db_session, ctx["finance"], ctx["department"], tool_name="Miro", activate_with=ctx["poc"])
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)

    foreign_invoice = files.upload(ctx["poc"], other.id, file_type=FileType.INVOICE, filename="a.pdf", data=b"x")
    with pytest.raises(InputValidationError, match="File does not belong to this subscription"):
        service.upload_invoice(ctx["poc"], cycle.id, foreign_invoice.id)

    proof = files.upload(
        ctx["poc"], ctx["subscription"].id, file_type=FileType.PROOF_OF_PAYMENT, filename="p.pdf", data=b"x"
    )
    with pytest.raises(InputValidationError, match="File is not an invoice"):
        service.upload_invoice(ctx["poc"], cycle.id, proof.id)

    invoice = files.upload(ctx["poc"], ctx["subscription"].id, file_type=FileType.INVOICE, filename="i.pdf", data=b"x")
    linked = service.upload_invoice(ctx["poc"], cycle.id, invoice.id)
    assert linked.invoice_file_id == invoice.id
    assert linked.cycle_status == CycleStatus.INVOICE_UPLOADED


def test_failed_invoice_link_discards_the_file(db_session: Session, ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)

    with pytest.raises(InvalidStateError, match="Cannot upload invoice for payment cycle with status: PENDING_PAYMENT"):
        service.upload_and_link_invoice(ctx["poc"], cycle.id, filename="i.pdf", data=b"x")
    assert db_session.exec(select(SubscriptionFile)).all() == []


def test_complete_requires_recorded_payment(db_session: Session, ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.open_cycle(
        ctx["subscription"], date(2026, 1, 1), date(2026, 1, 15), CycleStatus.PENDING_APPROVAL
    )
    service.approve_renewal(ctx["poc"], cycle.id)
    service.upload_and_link_invoice(ctx["poc"], cycle.id, filename="i.pdf", data=b"x")

    with pytest.raises(InvalidStateError, match="Payment must be recorded"):
        service.complete_cycle(ctx["finance"], cycle.id)

    cycle = _record(service, ctx["finance"], cycle.id)
    assert cycle.cycle_status == CycleStatus.INVOICE_UPLOADED
    assert service.complete_cycle(ctx["finance"], cycle.id).cycle_status == CycleStatus.COMPLETED


def test_list_cycles_accepts_legacy_status_names(ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)

    assert [item.id for item in service.list_cycles(ctx["poc"], ctx["subscription"].id, "paid")] == [cycle.id]
    assert service.list_cycles(ctx["poc"], ctx["subscription"].id, "PENDING") == []
    with pytest.raises(InputValidationError, match="Unknown payment cycle status: bogus"):
        service.list_cycles(ctx["poc"], ctx["subscription"].id, "bogus")
    with pytest.raises(PermissionDeniedError):
        service.list_cycles(ctx["other_poc"], ctx["subscription"].id)


def test_invoice_queues(ctx: dict) -> None:
    service = ctx["service"]
    cycle = service.create_cycle(ctx["finance"], ctx["subscription"].id, JANUARY)
    _record(service, ctx["finance"], cycle.id)

    assert [item.id for item in service.pending_invoice_uploads(ctx["poc"], date(2026, 1, 20))] == [cycle.id]
    assert service.overdue_invoices(ctx["poc"], date(2026, 1, 20)) == []
    assert [item.id for item in service.overdue_invoices(ctx["poc"], date(2026, 2, 1))] == [cycle.id]
    assert service.overdue_invoices(ctx["other_poc"], date(2026, 2, 1)) == []
    assert service.count_by_status(ctx["finance"]) == {"PAYMENT_RECORDED": 1}
