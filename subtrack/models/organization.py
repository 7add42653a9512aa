from sqlalchemy import UniqueConstraint
from sqlmodel import Field

from subtrack.models.base import TimestampedModel, UUIDModel


class Department(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "departments"

    name: str = Field(index=True, unique=True, max_length=255)
    short_code: str | None = Field(default=None, max_length=16)
    is_active: bool = Field(default=True)


class Location(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "locations"

    name: str = Field(index=True, max_length=255)
    location_type: str | None = Field(default=None, max_length=64)
    is_active: bool = Field(default=True)


class Vendor(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "vendors"

    name: str = Field(index=True, unique=True, max_length=255)
    is_active: bool = Field(default=True)


class Product(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "products"

    name: str = Field(index=True, unique=True, max_length=255)
    is_active: bool = Field(default=True)


class SubscriptionSequence(UUIDModel, table=True):
    """Last issued subscription code number per code prefix and fiscal year.

    Keyed by prefix rather than department: departments without a short code
    all issue `UNK/...` codes, and two departments may share a short code.
    """

    __tablename__ = "subscription_sequences"
    __table_args__ = (UniqueConstraint("prefix", "fiscal_year", name="uq_sequence_prefix_year"),)

    prefix: str = Field(max_length=16)
    fiscal_year: int
    last_value: int = Field(default=0)
