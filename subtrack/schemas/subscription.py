from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from subtrack.models.subscription import (
    AccountingStatus,
    ApprovalAction,
    BillingFrequency,
    Currency,
    FileType,
    PaymentStatus,
    RequestType,
    SubscriptionStatus,
)
from subtrack.schemas.common import IDModel, Timestamped


class SubscriptionBase(BaseModel):
    request_type: RequestType = RequestType.INVOICE
    tool_name: str = Field(min_length=1, max_length=255)
    vendor_name: str = Field(min_length=1, max_length=255)
    product_id: UUID | None = None
    vendor_id: UUID | None = None
    department_id: UUID
    location_id: UUID | None = None
    amount: Decimal = Field(gt=0)
    currency: Currency = Currency.INR
    equivalent_inr_amount: Decimal | None = Field(default=None, ge=0)
    billing_frequency: BillingFrequency = BillingFrequency.MONTHLY
    start_date: date
    end_date: date | None = None
    login_url: str | None = Field(default=None, max_length=500)
    subscription_email: EmailStr | None = None
    poc_email: EmailStr | None = None
    mandate_id: str | None = Field(default=None, max_length=100)
    requester_remarks: str | None = None


class SubscriptionCreate(SubscriptionBase):
    pass


# Columns that are NOT NULL; a partial edit may omit them but never clear them.
REQUIRED_ON_UPDATE = frozenset(
    {
        "request_type",
        "tool_name",
        "vendor_name",
        "department_id",
        "amount",
        "currency",
        "billing_frequency",
        "start_date",
    }
)


class SubscriptionUpdate(BaseModel):
    """Partial edit. ``version`` is the version the caller last read."""

    version: int = Field(ge=1)
    request_type: RequestType | None = None
    tool_name: str | None = Field(default=None, min_length=1, max_length=255)
    vendor_name: str | None = Field(default=None, min_length=1, max_length=255)
    product_id: UUID | None = None
    vendor_id: UUID | None = None
    department_id: UUID | None = None
    location_id: UUID | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    currency: Currency | None = None
    equivalent_inr_amount: Decimal | None = Field(default=None, ge=0)
    billing_frequency: BillingFrequency | None = None
    start_date: date | None = None
    end_date: date | None = None
    login_url: str | None = Field(default=None, max_length=500)
    subscription_email: EmailStr | None = None
    poc_email: EmailStr | None = None
    mandate_id: str | None = Field(default=None, max_length=100)
    requester_remarks: str | None = None

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "SubscriptionUpdate":
        for name in sorted(self.model_fields_set & REQUIRED_ON_UPDATE):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class SubscriptionRead(IDModel, Timestamped):
    subscription_code: str
    request_type: RequestType
    tool_name: str
    vendor_name: str
    product_id: UUID | None
    vendor_id: UUID | None
    department_id: UUID
    location_id: UUID | None
    amount: Decimal
    currency: Currency
    equivalent_inr_amount: Decimal | None
    billing_frequency: BillingFrequency
    start_date: date
    end_date: date | None
    login_url: str | None
    subscription_email: str | None
    poc_email: str | None
    mandate_id: str | None
    requester_remarks: str | None
    status: SubscriptionStatus
    payment_status: PaymentStatus
    accounting_status: AccountingStatus
    version: int
    created_by: UUID


class SubscriptionFilters(BaseModel):
    search: str | None = None
    status: SubscriptionStatus | None = None
    payment_status: PaymentStatus | None = None
    accounting_status: AccountingStatus | None = None
    billing_frequency: BillingFrequency | None = None
    request_type: RequestType | None = None
    department_id: UUID | None = None
    created_by: UUID | None = None
    start_date_from: date | None = None
    start_date_to: date | None = None
    end_date_from: date | None = None
    end_date_to: date | None = None


class DecisionRequest(BaseModel):
    comments: str | None = None


class PaymentStatusUpdate(BaseModel):
    version: int = Field(ge=1)
    payment_status: PaymentStatus


class AccountingStatusUpdate(BaseModel):
    version: int = Field(ge=1)
    accounting_status: AccountingStatus


class ApprovalRead(IDModel):
    subscription_id: UUID
    approver_id: UUID
    action: ApprovalAction
    comments: str | None
    created_at: datetime


class SubscriptionFileRead(IDModel, Timestamped):
    subscription_id: UUID
    file_type: FileType
    original_filename: str
    file_size: int
    mime_type: str
    uploaded_by: UUID


class FileUploadRequest(BaseModel):
    """JSON upload body. ``content`` is base64, a data-URL prefix is accepted."""

    file_type: FileType
    filename: str = Field(min_length=1, max_length=255)
    mime_type: str | None = None
    content: str = Field(min_length=1)


class StatusCount(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    count: int
