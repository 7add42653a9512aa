from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from subtrack.models.base import TimestampedModel, UUIDModel, utcnow


class SubscriptionStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class RequestType(str, Enum):
    INVOICE = "INVOICE"
    QUOTATION = "QUOTATION"


class BillingFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"
    USAGE_BASED = "USAGE_BASED"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    INR = "INR"
    SGD = "SGD"
    CHF = "CHF"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PAID = "PAID"
    DECLINED = "DECLINED"


class AccountingStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"


class ApprovalAction(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class FileType(str, Enum):
    PROOF_OF_PAYMENT = "PROOF_OF_PAYMENT"
    INVOICE = "INVOICE"


class Subscription(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "subscriptions"

    subscription_code: str = Field(index=True, unique=True, max_length=64)
    request_type: RequestType = Field(default=RequestType.INVOICE)
    tool_name: str = Field(index=True, max_length=255)
    vendor_name: str = Field(index=True, max_length=255)
    product_id: UUID | None = Field(default=None, foreign_key="products.id")
    vendor_id: UUID | None = Field(default=None, foreign_key="vendors.id")
    department_id: UUID = Field(foreign_key="departments.id", index=True)
    location_id: UUID | None = Field(default=None, foreign_key="locations.id", index=True)

    amount: Decimal = Field(max_digits=14, decimal_places=2)
    currency: Currency = Field(default=Currency.INR)
    equivalent_inr_amount: Decimal | None = Field(default=None, max_digits=14, decimal_places=2)
    billing_frequency: BillingFrequency = Field(default=BillingFrequency.MONTHLY)
    start_date: date
    end_date: date | None = Field(default=None)

    login_url: str | None = Field(default=None, max_length=500)
    subscription_email: str | None = Field(default=None, max_length=255)
    poc_email: str | None = Field(default=None, max_length=255)
    mandate_id: str | None = Field(default=None, max_length=100)
    requester_remarks: str | None = Field(default=None)

    status: SubscriptionStatus = Field(default=SubscriptionStatus.PENDING, index=True)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    accounting_status: AccountingStatus = Field(default=AccountingStatus.PENDING)
    version: int = Field(default=1, nullable=False)

    created_by: UUID = Field(foreign_key="users.id", index=True)


class SubscriptionApproval(UUIDModel, table=True):
    """Append-only decision trail. Rows are never updated."""

    __tablename__ = "subscription_approvals"

    subscription_id: UUID = Field(foreign_key="subscriptions.id", index=True, ondelete="CASCADE")
    approver_id: UUID = Field(foreign_key="users.id")
    action: ApprovalAction
    comments: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class SubscriptionFile(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "subscription_files"

    subscription_id: UUID = Field(foreign_key="subscriptions.id", index=True, ondelete="CASCADE")
    file_type: FileType
    storage_path: str
    original_filename: str = Field(max_length=255)
    file_size: int
    mime_type: str = Field(default="application/octet-stream", max_length=128)
    uploaded_by: UUID = Field(foreign_key="users.id")
