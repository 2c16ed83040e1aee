"""Per-plan caps on how many Available variants a tenant may hold."""

import uuid
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.tenant import TenantPlan
from app.models.variant import Variant, VariantStatus

PLAN_VARIANT_LIMITS: dict[TenantPlan, int] = {
    TenantPlan.FREE: 100,
    TenantPlan.INDIVIDUAL: 500,
    TenantPlan.TEAM: 1500,
    TenantPlan.STORE: 5000,
}


def limit_for_plan(plan: TenantPlan | str | None) -> int:
    """Unknown or missing plans get the free allowance."""
    try:
        return PLAN_VARIANT_LIMITS[TenantPlan(str(plan).lower())]
    except ValueError:
        return PLAN_VARIANT_LIMITS[TenantPlan.FREE]


@dataclass
class VariantUsage:
    plan: TenantPlan
    limit: int
    current: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current)


async def get_variant_usage(
    session: AsyncSession, tenant_id: uuid.UUID, plan: TenantPlan
) -> VariantUsage:
    stmt = select(func.count(Variant.id)).where(
        Variant.tenant_id == tenant_id,
        Variant.status == VariantStatus.AVAILABLE,
        Variant.is_archived.is_(False),  # type: ignore[attr-defined]
    )
    current = (await session.execute(stmt)).scalar_one()
    return VariantUsage(plan=plan, limit=limit_for_plan(plan), current=current)
