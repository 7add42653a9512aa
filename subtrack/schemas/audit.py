from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditEventRead(BaseModel):
    """One state change: ``action`` is dotted, e.g. ``subscription.approve``."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    action: str
    entity_type: str
    entity_id: UUID | None
    actor_id: UUID | None
    actor_role: str | None
    details: dict[str, Any] | None


class AuthLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    user_id: UUID | None
    email: str | None
    event_type: str
    ip_address: str | None
    user_agent: str | None
    success: bool
