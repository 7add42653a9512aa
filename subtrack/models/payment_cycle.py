from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from subtrack.models.base import TimestampedModel, UUIDModel
from subtrack.models.subscription import AccountingStatus, PaymentStatus


class CycleStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    INVOICE_UPLOADED = "INVOICE_UPLOADED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PocApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PaymentCycle(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "subscription_payments"
    __table_args__ = (UniqueConstraint("subscription_id", "cycle_number", name="uq_cycle_number"),)

    subscription_id: UUID = Field(foreign_key="subscriptions.id", index=True)
    cycle_number: int
    cycle_start_date: date
    cycle_end_date: date
    invoice_deadline: date = Field(index=True)
    cycle_status: CycleStatus = Field(default=CycleStatus.PENDING_PAYMENT, index=True)

    payment_status: PaymentStatus = Field(default=PaymentStatus.IN_PROGRESS)
    accounting_status: AccountingStatus = Field(default=AccountingStatus.PENDING)
    payment_utr: str | None = Field(default=None, max_length=100)
    mandate_id: str | None = Field(default=None, max_length=100)
    payment_recorded_by: UUID | None = Field(default=None, foreign_key="users.id")
    payment_recorded_at: datetime | None = Field(default=None)

    poc_approval_status: PocApprovalStatus = Field(default=PocApprovalStatus.PENDING)
    poc_approved_by: UUID | None = Field(default=None, foreign_key="users.id")
    poc_approved_at: datetime | None = Field(default=None)
    poc_rejection_reason: str | None = Field(default=None)
    cancellation_reason: str | None = Field(default=None)

    invoice_file_id: UUID | None = Field(default=None, foreign_key="subscription_files.id")
    invoice_uploaded_at: datetime | None = Field(default=None)
