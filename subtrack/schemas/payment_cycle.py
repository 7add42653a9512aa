from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from subtrack.models.payment_cycle import CycleStatus, PocApprovalStatus
from subtrack.models.subscription import AccountingStatus, PaymentStatus
from subtrack.schemas.common import IDModel, Timestamped


class CycleCreate(BaseModel):
    cycle_start_date: date
    cycle_end_date: date


class RecordPaymentRequest(BaseModel):
    payment_utr: str = Field(min_length=1, max_length=100)
    payment_status: PaymentStatus = PaymentStatus.PAID
    accounting_status: AccountingStatus = AccountingStatus.PENDING
    mandate_id: str | None = Field(default=None, max_length=100)


class CyclePaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus | None = None
    accounting_status: AccountingStatus | None = None


class RenewalApproveRequest(BaseModel):
    comments: str | None = None


class ReasonRequest(BaseModel):
    reason: str


class InvoiceLinkRequest(BaseModel):
    file_id: UUID


class InvoiceUploadRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    mime_type: str | None = None
    content: str = Field(min_length=1)


class PaymentCycleRead(IDModel, Timestamped):
    subscription_id: UUID
    cycle_number: int
    cycle_start_date: date
    cycle_end_date: date
    invoice_deadline: date
    cycle_status: CycleStatus
    payment_status: PaymentStatus
    accounting_status: AccountingStatus
    payment_utr: str | None
    mandate_id: str | None
    payment_recorded_by: UUID | None
    payment_recorded_at: datetime | None
    poc_approval_status: PocApprovalStatus
    poc_approved_by: UUID | None
    poc_approved_at: datetime | None
    poc_rejection_reason: str | None
    cancellation_reason: str | None
    invoice_file_id: UUID | None
    invoice_uploaded_at: datetime | None


class JobReport(BaseModel):
    checked: int = 0
    changed: int = 0
    errors: list[str] = Field(default_factory=list)
