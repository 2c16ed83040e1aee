"""Import all models so SQLModel.metadata picks them up."""

from app.models.api_token import ApiToken, ApiTokenCreate, ApiTokenCreated, ApiTokenRead
from app.models.tenant import Tenant, TenantPlan, TenantRead
from app.models.user import User, UserRead, UserRole
from app.models.variant import Variant, VariantCreate, VariantRead, VariantStatus

__all__ = [
    "ApiToken",
    "ApiTokenCreate",
    "ApiTokenCreated",
    "ApiTokenRead",
    "Tenant",
    "TenantPlan",
    "TenantRead",
    "User",
    "UserRead",
    "UserRole",
    "Variant",
    "VariantCreate",
    "VariantRead",
    "VariantStatus",
]
