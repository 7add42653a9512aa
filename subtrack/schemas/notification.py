from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from subtrack.models.notification import NotificationType
from subtrack.schemas.common import IDModel, Timestamped


class NotificationRead(IDModel, Timestamped):
    subscription_id: UUID | None
    cycle_id: UUID | None = None
    event_type: NotificationType
    title: str
    message: str
    read_at: datetime | None = None
    payload: dict[str, Any] | None = None


class NotificationList(BaseModel):
    items: list[NotificationRead]
    unread_count: int


class NotificationMarkAllResponse(BaseModel):
    updated: int
