from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from subtrack.models.base import TimestampedModel, UUIDModel


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    FINANCE = "FINANCE"
    HOD = "HOD"
    POC = "POC"


class User(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "users"

    email: str = Field(index=True, unique=True)
    full_name: str
    password_hash: str
    role: UserRole | None = Field(default=None, index=True)
    is_active: bool = Field(default=True)
    last_login_at: datetime | None = Field(default=None)


class PocDepartmentAccess(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "poc_department_access"
    __table_args__ = (UniqueConstraint("poc_id", "department_id", name="uq_poc_department"),)

    poc_id: UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    department_id: UUID = Field(foreign_key="departments.id", index=True, ondelete="CASCADE")


class HodDepartment(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "hod_departments"
    __table_args__ = (UniqueConstraint("hod_id", "department_id", name="uq_hod_department"),)

    hod_id: UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    department_id: UUID = Field(foreign_key="departments.id", index=True, ondelete="CASCADE")
