from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from subtrack.schemas.common import IDModel, Timestamped


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    short_code: str | None = Field(default=None, max_length=16)

    @field_validator("short_code")
    @classmethod
    def normalize_short_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip().upper()
        return cleaned or None


class DepartmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    short_code: str | None = Field(default=None, max_length=16)
    is_active: bool | None = None

    @field_validator("short_code")
    @classmethod
    def normalize_short_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().upper() or None


class DepartmentRead(IDModel, Timestamped):
    name: str
    short_code: str | None
    is_active: bool


class LocationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    location_type: str | None = Field(default=None, max_length=64)


class LocationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    location_type: str | None = Field(default=None, max_length=64)
    is_active: bool | None = None


class LocationRead(IDModel, Timestamped):
    name: str
    location_type: str | None
    is_active: bool


class DepartmentAssignment(BaseModel):
    user_id: UUID
    department_id: UUID


class MasterDataCreate(BaseModel):
    name: str


class MasterDataRead(IDModel, Timestamped):
    name: str
    is_active: bool
