"""Tenant model — owns a private inventory and serial-number sequence."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class TenantPlan(StrEnum):
    FREE = "free"
    INDIVIDUAL = "individual"
    TEAM = "team"
    STORE = "store"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    is_active: bool = Field(default=True)
    plan: TenantPlan = Field(default=TenantPlan.FREE)


class TenantRead(SQLModel):
    id: uuid.UUID
    name: str
    slug: str
    is_active: bool
    plan: TenantPlan
