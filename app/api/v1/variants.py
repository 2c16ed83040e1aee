"""Inventory variants — serial-numbered creation and lookup."""

import logging
import re
import uuid
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlmodel import select

from app.api.deps import Allocator, Auth, Session
from app.core.config import get_settings
from app.models.tenant import Tenant, TenantPlan
from app.models.variant import SERIAL_CEILING, Variant, VariantCreate, VariantRead, VariantStatus
from app.services.serial_allocator import (
    AllocationResult,
    SerialLimitExceededError,
    SerialRetriesExhaustedError,
)
from app.services.variant_limits import VariantUsage, get_variant_usage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/variants", tags=["variants"])

_DIGITS = re.compile(r"^\d+$")


# ── Schemas ──────────────────────────────────────────────────

class VariantBatchCreate(BaseModel):
    items: list[VariantCreate] = Field(min_length=1)


class VariantBatchResponse(BaseModel):
    requested: int
    inserted_count: int
    serial_numbers: list[int]
    error: str | None = None


class VariantLimitsResponse(BaseModel):
    plan: TenantPlan
    limit: int
    current: int
    remaining: int


class NextSerialResponse(BaseModel):
    next_serial_number: int


class SerialCheckRequest(BaseModel):
    serial_number: int = Field(ge=1, le=SERIAL_CEILING)


class SerialCheckResponse(BaseModel):
    serial_number: int
    is_unique: bool


# ── Routes ───────────────────────────────────────────────────

@router.post(
    "",
    response_model=VariantBatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add variants with sequential serial numbers",
    responses={207: {"model": VariantBatchResponse, "description": "Partially inserted"}},
)
async def create_variants(
    body: VariantBatchCreate,
    auth: Auth,
    session: Session,
    allocator: Allocator,
):
    """Expand each item by its quantity and insert all units in one allocation.

    A partial insert answers 207 with the number of units committed; the
    committed rows are left in place.
    """
    rows = []
    for item in body.items:
        payload = item.model_dump(exclude={"quantity"})
        rows.extend(dict(payload) for _ in range(item.quantity))

    max_batch = get_settings().max_batch_size
    if len(rows) > max_batch:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {max_batch} units can be added per request",
        )

    usage = await _usage(auth.tenant_id, session)
    adding = sum(1 for row in rows if row["status"] == VariantStatus.AVAILABLE)
    if usage.current + adding > usage.limit:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": (
                    f"Variant limit exceeded. The {usage.plan} plan allows up to {usage.limit} "
                    f"available variants; {usage.remaining} slots remaining."
                ),
                "limit": usage.limit,
                "current": usage.current,
                "remaining": usage.remaining,
                "attempted": adding,
            },
        )

    result = await allocator.allocate_batch(rows, auth.tenant_id)
    response = VariantBatchResponse(
        requested=len(rows),
        inserted_count=result.inserted_count,
        serial_numbers=result.serials,
        error=str(result.error) if result.error else None,
    )

    if result.ok:
        return response
    if result.inserted_count == 0:
        raise HTTPException(status_code=_error_status(result), detail=response.error)
    return JSONResponse(status_code=status.HTTP_207_MULTI_STATUS, content=response.model_dump())


@router.get("", response_model=list[VariantRead])
async def list_variants(
    auth: Auth,
    session: Session,
    variant_status: Annotated[VariantStatus | None, Query(alias="status")] = None,
    include_archived: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> list[VariantRead]:
    stmt = select(Variant).where(Variant.tenant_id == auth.tenant_id)
    if variant_status is not None:
        stmt = stmt.where(Variant.status == variant_status)
    if not include_archived:
        stmt = stmt.where(Variant.is_archived.is_(False))  # type: ignore[attr-defined]
    stmt = (
        stmt.order_by(Variant.serial_number.asc())  # type: ignore[attr-defined]
        .limit(min(limit, 500))
        .offset(offset)
    )
    result = await session.execute(stmt)
    return [VariantRead.model_validate(v) for v in result.scalars().all()]


@router.get("/limits", response_model=VariantLimitsResponse)
async def get_variant_limits(auth: Auth, session: Session) -> VariantLimitsResponse:
    """Plan allowance for Available variants and how much of it is used."""
    usage = await _usage(auth.tenant_id, session)
    return VariantLimitsResponse(
        plan=usage.plan,
        limit=usage.limit,
        current=usage.current,
        remaining=usage.remaining,
    )


@router.get("/next-serial", response_model=NextSerialResponse)
async def get_next_serial(auth: Auth, allocator: Allocator) -> NextSerialResponse:
    """Preview the serial the next unit would receive. Not a reservation."""
    try:
        serial = await allocator.next_serial_number(auth.tenant_id)
    except SerialLimitExceededError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return NextSerialResponse(next_serial_number=serial)


@router.post("/check-serial", response_model=SerialCheckResponse)
async def check_serial(
    body: SerialCheckRequest,
    auth: Auth,
    session: Session,
) -> SerialCheckResponse:
    """Whether a serial number is still free within the tenant (any status)."""
    stmt = select(Variant.id).where(
        Variant.tenant_id == auth.tenant_id,
        Variant.serial_number == body.serial_number,
    )
    result = await session.execute(stmt)
    return SerialCheckResponse(
        serial_number=body.serial_number,
        is_unique=result.first() is None,
    )


@router.get("/by-serial/{value}", response_model=VariantRead)
async def get_by_serial(value: str, auth: Auth, session: Session) -> VariantRead:
    """Resolve a scanned label: either a variant UUID or a serial number."""
    stmt = select(Variant).where(
        Variant.tenant_id == auth.tenant_id,
        Variant.is_archived.is_(False),  # type: ignore[attr-defined]
    )
    if _DIGITS.match(value):
        serial = int(value)
        if serial > SERIAL_CEILING:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variant not found")
        stmt = stmt.where(Variant.serial_number == serial)
    else:
        try:
            variant_id = uuid.UUID(value)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid label format: expected a variant ID or serial number",
            ) from exc
        stmt = stmt.where(Variant.id == variant_id)

    result = await session.execute(stmt)
    variant = result.scalar_one_or_none()
    if variant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variant not found")
    return VariantRead.model_validate(variant)


# ── Internal helper ───────────────────────────────────────────

def _error_status(result: AllocationResult) -> int:
    if isinstance(result.error, (SerialLimitExceededError, SerialRetriesExhaustedError)):
        return status.HTTP_409_CONFLICT
    logger.error("Variant insert failed: %s", result.error)
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _usage(tenant_id: uuid.UUID, session) -> VariantUsage:
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return await get_variant_usage(session, tenant_id, tenant.plan)
