from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from subtrack.core.config import settings

T = TypeVar("T")


class Timestamped(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created_at: datetime
    updated_at: datetime | None = None


class IDModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID


class ActionResult(BaseModel, Generic[T]):
    """Envelope returned by every mutating endpoint."""

    success: bool
    error: str | None = None
    data: T | None = None
    warning: str | None = None


class Page(BaseModel, Generic[T]):
    items: list[T]
    total_count: int


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=settings.default_page_size, ge=1)
    offset: int | None = Field(default=None, ge=0)

    @property
    def effective_limit(self) -> int:
        return min(self.limit, settings.max_page_size)

    @property
    def effective_offset(self) -> int:
        if self.offset is not None:
            return self.offset
        return (self.page - 1) * self.effective_limit


class BulkItemError(BaseModel):
    id: UUID
    message: str


class BulkResult(BaseModel):
    successful: int = 0
    failed: int = 0
    errors: list[BulkItemError] = Field(default_factory=list)


class BulkToggleRequest(BaseModel):
    ids: list[UUID] = Field(default_factory=list)
    is_active: bool
