from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Field

from subtrack.models.base import TimestampedModel, UUIDModel


class AuditLog(UUIDModel, TimestampedModel, table=True):
    """Append-only record of a state change made by a user or a scheduled job."""

    __tablename__ = "audit_logs"

    action: str = Field(index=True, max_length=64)
    entity_type: str = Field(index=True, max_length=64)
    entity_id: UUID | None = Field(default=None, index=True)
    # Null for scheduled jobs.
    actor_id: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    actor_role: str | None = Field(default=None, max_length=16)
    details: dict | None = Field(default_factory=dict, sa_type=JSON)


class AuthLog(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "auth_logs"

    user_id: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    # Address typed at login, kept for failed attempts that match no user.
    email: str | None = Field(default=None, index=True, max_length=255)
    event_type: str = Field(index=True, max_length=32)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=512)
    success: bool = Field(default=True)
