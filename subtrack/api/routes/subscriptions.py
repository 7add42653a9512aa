from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import Response
from sqlmodel import Session

from subtrack.api.deps import get_current_actor, get_db
from subtrack.models.subscription import FileType
from subtrack.schemas.common import ActionResult, Page, Pagination
from subtrack.schemas.subscription import (
    AccountingStatusUpdate,
    ApprovalRead,
    DecisionRequest,
    FileUploadRequest,
    PaymentStatusUpdate,
    SubscriptionCreate,
    SubscriptionFileRead,
    SubscriptionFilters,
    SubscriptionRead,
    SubscriptionUpdate,
)
from subtrack.services.access import Actor
from subtrack.services.files import SubscriptionFileService
from subtrack.services.subscription import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _service(session: Session) -> SubscriptionService:
    return SubscriptionService(session)


def _ok(subscription, warning: str | None = None) -> ActionResult[SubscriptionRead]:
    return ActionResult[SubscriptionRead](
        success=True,
        data=SubscriptionRead.model_validate(subscription),
        warning=warning,
    )


@router.get("", response_model=Page[SubscriptionRead])
def list_subscriptions(
    filters: SubscriptionFilters = Depends(),
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Page[SubscriptionRead]:
    items, total = _service(session).list_subscriptions(actor, filters, pagination)
    return Page[SubscriptionRead](
        items=[SubscriptionRead.model_validate(item) for item in items],
        total_count=total,
    )


@router.get("/counts", response_model=dict[str, int])
def subscription_counts(
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> dict[str, int]:
    return _service(session).count_by_status(actor)


@router.get("/pending-approvals", response_model=Page[SubscriptionRead])
def pending_approvals(
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Page[SubscriptionRead]:
    items, total = _service(session).pending_approvals(actor, pagination)
    return Page[SubscriptionRead](
        items=[SubscriptionRead.model_validate(item) for item in items],
        total_count=total,
    )


@router.post("", response_model=ActionResult[SubscriptionRead], status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: SubscriptionCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    return _ok(_service(session).create_subscription(actor, payload))


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> SubscriptionRead:
    return SubscriptionRead.model_validate(_service(session).get_subscription(actor, subscription_id))


@router.patch("/{subscription_id}", response_model=ActionResult[SubscriptionRead])
def update_subscription(
    subscription_id: UUID,
    payload: SubscriptionUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    subscription, warning = _service(session).update_subscription(actor, subscription_id, payload)
    return _ok(subscription, warning)


@router.post("/{subscription_id}/approve", response_model=ActionResult[SubscriptionRead])
def approve_subscription(
    subscription_id: UUID,
    payload: DecisionRequest | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    comments = payload.comments if payload else None
    return _ok(_service(session).approve_subscription(actor, subscription_id, comments))


@router.post("/{subscription_id}/reject", response_model=ActionResult[SubscriptionRead])
def reject_subscription(
    subscription_id: UUID,
    payload: DecisionRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    return _ok(_service(session).reject_subscription(actor, subscription_id, payload.comments))


@router.post("/{subscription_id}/cancel", response_model=ActionResult[SubscriptionRead])
def cancel_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    return _ok(_service(session).cancel_subscription(actor, subscription_id))


@router.patch("/{subscription_id}/payment-status", response_model=ActionResult[SubscriptionRead])
def update_payment_status(
    subscription_id: UUID,
    payload: PaymentStatusUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    return _ok(_service(session).update_payment_status(actor, subscription_id, payload))


@router.patch("/{subscription_id}/accounting-status", response_model=ActionResult[SubscriptionRead])
def update_accounting_status(
    subscription_id: UUID,
    payload: AccountingStatusUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionRead]:
    return _ok(_service(session).update_accounting_status(actor, subscription_id, payload))


@router.delete("/{subscription_id}", response_model=ActionResult[None])
def delete_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).delete_subscription(actor, subscription_id)
    return ActionResult[None](success=True)


@router.get("/{subscription_id}/approvals", response_model=list[ApprovalRead])
def list_approvals(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[ApprovalRead]:
    approvals = _service(session).list_approvals(actor, subscription_id)
    return [ApprovalRead.model_validate(item) for item in approvals]


# Files -------------------------------------------------------------------

@router.get("/{subscription_id}/files", response_model=list[SubscriptionFileRead])
def list_files(
    subscription_id: UUID,
    file_type: FileType | None = None,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[SubscriptionFileRead]:
    files = SubscriptionFileService(session).list_files(actor, subscription_id, file_type)
    return [SubscriptionFileRead.model_validate(item) for item in files]


@router.post(
    "/{subscription_id}/files",
    response_model=ActionResult[SubscriptionFileRead],
    status_code=status.HTTP_201_CREATED,
)
def upload_file_base64(
    subscription_id: UUID,
    payload: FileUploadRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionFileRead]:
    record = SubscriptionFileService(session).upload_base64(
        actor,
        subscription_id,
        file_type=payload.file_type,
        filename=payload.filename,
        content=payload.content,
        mime_type=payload.mime_type,
    )
    return ActionResult[SubscriptionFileRead](success=True, data=SubscriptionFileRead.model_validate(record))


@router.post(
    "/{subscription_id}/files/upload",
    response_model=ActionResult[SubscriptionFileRead],
    status_code=status.HTTP_201_CREATED,
)
async def upload_file(
    subscription_id: UUID,
    file_type: FileType = Form(...),
    file: UploadFile = File(...),
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[SubscriptionFileRead]:
    data = await file.read()
    record = SubscriptionFileService(session).upload(
        actor,
        subscription_id,
        file_type=file_type,
        filename=file.filename or "file",
        data=data,
        mime_type=file.content_type,
    )
    return ActionResult[SubscriptionFileRead](success=True, data=SubscriptionFileRead.model_validate(record))


@router.get("/files/{file_id}/download")
def download_file(
    file_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Response:
    record, data = SubscriptionFileService(session).download(actor, file_id)
    headers = {"Content-Disposition": f'attachment; filename="{record.original_filename}"'}
    return Response(content=data, media_type=record.mime_type, headers=headers)


@router.delete("/files/{file_id}", response_model=ActionResult[None])
def delete_file(
    file_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    SubscriptionFileService(session).delete_file(actor, file_id)
    return ActionResult[None](success=True)
