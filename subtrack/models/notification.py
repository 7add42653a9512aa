from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Field

from subtrack.models.base import TimestampedModel, UUIDModel


class NotificationType(str, Enum):
    APPROVAL_REQUEST = "APPROVAL_REQUEST"
    APPROVAL_DECISION = "APPROVAL_DECISION"
    RENEWAL_REJECTED = "RENEWAL_REJECTED"
    CYCLE_CANCELLED = "CYCLE_CANCELLED"
    RENEWAL_REMINDER = "RENEWAL_REMINDER"


class UserNotification(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "user_notifications"

    recipient_id: UUID = Field(foreign_key="users.id", index=True)
    subscription_id: UUID | None = Field(default=None, foreign_key="subscriptions.id", index=True)
    cycle_id: UUID | None = Field(default=None, foreign_key="subscription_payments.id", index=True)
    event_type: NotificationType
    title: str = Field(max_length=255)
    message: str
    payload: dict | None = Field(default=None, sa_type=JSON)
    read_at: datetime | None = Field(default=None, index=True)
