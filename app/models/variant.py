"""Variant model — one physical unit of inventory, serial-numbered per tenant."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import SmallInteger, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from app.models.base import TimestampMixin, new_uuid

# Serial numbers live in a SMALLINT column.
SERIAL_CEILING = 32767

SERIAL_UNIQUE_CONSTRAINT = "uq_variants_tenant_serial"


class VariantStatus(StrEnum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    SOLD = "Sold"


class Variant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "variants"
    __table_args__ = (
        UniqueConstraint("tenant_id", "serial_number", name=SERIAL_UNIQUE_CONSTRAINT),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    serial_number: int = Field(sa_column=Column(SmallInteger, nullable=False))

    variant_sku: str = Field(default="", max_length=255)
    size: str = Field(default="", max_length=50)
    size_label: str = Field(default="US", max_length=20)
    location: str | None = Field(default=None, max_length=255)
    status: VariantStatus = Field(default=VariantStatus.AVAILABLE)
    condition: str | None = Field(default=None, max_length=50)
    cost_price: Decimal = Field(default=Decimal("0.00"), max_digits=10, decimal_places=2)
    date_added: date | None = Field(default=None)
    is_archived: bool = Field(default=False)


# ── Pydantic schemas ─────────────────────────────────────────

class VariantCreate(SQLModel):
    """Caller-supplied payload. Serial number and tenant are assigned server-side."""
    variant_sku: str = Field(default="", max_length=255)
    size: str = Field(default="", max_length=50)
    size_label: str = Field(default="US", max_length=20)
    location: str | None = Field(default=None, max_length=255)
    status: VariantStatus = VariantStatus.AVAILABLE
    condition: str | None = Field(default=None, max_length=50)
    cost_price: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=10, decimal_places=2)
    date_added: date | None = None
    quantity: int = Field(default=1, ge=1, le=500)


class VariantRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    serial_number: int
    variant_sku: str
    size: str
    size_label: str
    location: str | None
    status: VariantStatus
    condition: str | None
    cost_price: Decimal
    date_added: date | None
    is_archived: bool
    created_at: datetime
