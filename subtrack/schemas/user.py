from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from subtrack.models.user import UserRole
from subtrack.schemas.common import IDModel, Timestamped


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1)
    password: str = Field(min_length=8)
    role: UserRole | None = None


class UserRead(IDModel, Timestamped):
    email: EmailStr
    full_name: str
    role: UserRole | None
    is_active: bool
    last_login_at: datetime | None


class UserUpdate(BaseModel):
    full_name: str | None = None
    password: str | None = Field(default=None, min_length=8)


class RoleAssignment(BaseModel):
    role: UserRole | None


class UserScope(BaseModel):
    user_id: UUID
    role: UserRole | None
    department_ids: list[UUID]
