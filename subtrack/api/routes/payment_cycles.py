from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlmodel import Session

from subtrack.api.deps import get_current_actor, get_db
from subtrack.models.base import today
from subtrack.models.payment_cycle import PaymentCycle
from subtrack.schemas.common import ActionResult
from subtrack.schemas.payment_cycle import (
    CycleCreate,
    CyclePaymentStatusUpdate,
    InvoiceLinkRequest,
    InvoiceUploadRequest,
    PaymentCycleRead,
    ReasonRequest,
    RecordPaymentRequest,
    RenewalApproveRequest,
)
from subtrack.services.access import Actor
from subtrack.services.payment_cycle import PaymentCycleService

router = APIRouter(tags=["payment-cycles"])


def _service(session: Session) -> PaymentCycleService:
    return PaymentCycleService(session)


def _ok(cycle: PaymentCycle, warning: str | None = None) -> ActionResult[PaymentCycleRead]:
    return ActionResult[PaymentCycleRead](success=True, data=PaymentCycleRead.model_validate(cycle), warning=warning)


def _read_all(cycles: list[PaymentCycle]) -> list[PaymentCycleRead]:
    return [PaymentCycleRead.model_validate(cycle) for cycle in cycles]


@router.get("/subscriptions/{subscription_id}/payment-cycles", response_model=list[PaymentCycleRead])
def list_cycles(
    subscription_id: UUID,
    status: str | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[PaymentCycleRead]:
    return _read_all(_service(session).list_cycles(actor, subscription_id, status))


@router.post(
    "/subscriptions/{subscription_id}/payment-cycles",
    response_model=ActionResult[PaymentCycleRead],
    status_code=status.HTTP_201_CREATED,
)
def create_cycle(
    subscription_id: UUID,
    payload: CycleCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    return _ok(_service(session).create_cycle(actor, subscription_id, payload))


@router.get("/payment-cycles/queues/pending-approvals", response_model=list[PaymentCycleRead])
def pending_renewal_approvals(
    on: date | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[PaymentCycleRead]:
    return _read_all(_service(session).pending_renewal_approvals(actor, on or today()))


@router.get("/payment-cycles/queues/pending-invoices", response_model=list[PaymentCycleRead])
def pending_invoice_uploads(
    on: date | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[PaymentCycleRead]:
    return _read_all(_service(session).pending_invoice_uploads(actor, on or today()))


@router.get("/payment-cycles/queues/overdue-invoices", response_model=list[PaymentCycleRead])
def overdue_invoices(
    on: date | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[PaymentCycleRead]:
    return _read_all(_service(session).overdue_invoices(actor, on or today()))


@router.get("/payment-cycles/counts", response_model=dict[str, int])
def cycle_counts(
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> dict[str, int]:
    return _service(session).count_by_status(actor)


@router.get("/payment-cycles/{cycle_id}", response_model=PaymentCycleRead)
def get_cycle(
    cycle_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PaymentCycleRead:
    return PaymentCycleRead.model_validate(_service(session).get_cycle(actor, cycle_id))


@router.post("/payment-cycles/{cycle_id}/record-payment", response_model=ActionResult[PaymentCycleRead])
def record_payment(
    cycle_id: UUID,
    payload: RecordPaymentRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    return _ok(_service(session).record_payment(actor, cycle_id, payload))


@router.patch("/payment-cycles/{cycle_id}/payment-status", response_model=ActionResult[PaymentCycleRead])
def update_cycle_payment_status(
    cycle_id: UUID,
    payload: CyclePaymentStatusUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    return _ok(_service(session).update_payment_status(actor, cycle_id, payload))


@router.post("/payment-cycles/{cycle_id}/approve", response_model=ActionResult[PaymentCycleRead])
def approve_renewal(
    cycle_id: UUID,
    payload: RenewalApproveRequest | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    comments = payload.comments if payload else None
    return _ok(_service(session).approve_renewal(actor, cycle_id, comments))


@router.post("/payment-cycles/{cycle_id}/reject", response_model=ActionResult[PaymentCycleRead])
def reject_renewal(
    cycle_id: UUID,
    payload: ReasonRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    cycle, warning = _service(session).reject_renewal(actor, cycle_id, payload.reason)
    return _ok(cycle, warning)


@router.post("/payment-cycles/{cycle_id}/invoice", response_model=ActionResult[PaymentCycleRead])
def link_invoice(
    cycle_id: UUID,
    payload: InvoiceLinkRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    return _ok(_service(session).upload_invoice(actor, cycle_id, payload.file_id))


@router.post("/payment-cycles/{cycle_id}/invoice/base64", response_model=ActionResult[PaymentCycleRead])
def upload_invoice_base64(
    cycle_id: UUID,
    payload: InvoiceUploadRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    cycle = _service(session).upload_and_link_invoice(
        actor,
        cycle_id,
        filename=payload.filename,
        content=payload.content,
        mime_type=payload.mime_type,
    )
    return _ok(cycle)


@router.post("/payment-cycles/{cycle_id}/invoice/upload", response_model=ActionResult[PaymentCycleRead])
async def upload_invoice_file(
    cycle_id: UUID,
    file: UploadFile = File(...),
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    data = await file.read()
    cycle = _service(session).upload_and_link_invoice(
        actor,
        cycle_id,
        filename=file.filename or "invoice",
        data=data,
        mime_type=file.content_type,
    )
    return _ok(cycle)


@router.post("/payment-cycles/{cycle_id}/complete", response_model=ActionResult[PaymentCycleRead])
def complete_cycle(
    cycle_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    return _ok(_service(session).complete_cycle(actor, cycle_id))


@router.post("/payment-cycles/{cycle_id}/cancel", response_model=ActionResult[PaymentCycleRead])
def cancel_cycle(
    cycle_id: UUID,
    payload: ReasonRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[PaymentCycleRead]:
    return _ok(_service(session).cancel_cycle(actor, cycle_id, payload.reason))
