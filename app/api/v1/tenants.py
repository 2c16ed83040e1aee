"""Tenant sign-up and account summary."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func
from sqlmodel import select

from app.api.deps import Auth, Session
from app.core.security import generate_api_token, hash_api_token, hash_password
from app.models.api_token import ApiToken
from app.models.tenant import Tenant, TenantRead
from app.models.user import User, UserRole
from app.models.variant import Variant

router = APIRouter(prefix="/tenants", tags=["tenants"])


class TenantSignupRequest(BaseModel):
    tenant_name: str = Field(max_length=255)
    tenant_slug: str = Field(max_length=100, pattern=r"^[a-z0-9\-]+$")
    owner_email: EmailStr
    owner_password: str = Field(min_length=8, max_length=128)
    owner_display_name: str = Field(default="", max_length=255)


class TenantSignupResponse(BaseModel):
    tenant: TenantRead
    api_token: str = Field(description="Shown once; store it securely")
    token_prefix: str


class TenantSummary(TenantRead):
    variant_count: int
    highest_serial: int | None


@router.post(
    "",
    response_model=TenantSignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new tenant",
)
async def signup_tenant(body: TenantSignupRequest, session: Session) -> TenantSignupResponse:
    """Create the tenant, its owner account and a first API token in one commit.

    Unauthenticated. The raw token is only ever returned here.
    """
    taken = await session.execute(select(Tenant.id).where(Tenant.slug == body.tenant_slug))
    if taken.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Slug '{body.tenant_slug}' is already taken",
        )

    tenant = Tenant(name=body.tenant_name, slug=body.tenant_slug)
    session.add(tenant)
    await session.flush()

    owner = User(
        tenant_id=tenant.id,
        email=body.owner_email,
        password_hash=hash_password(body.owner_password),
        display_name=body.owner_display_name,
        role=UserRole.OWNER,
    )
    session.add(owner)
    await session.flush()

    raw_token = generate_api_token()
    session.add(
        ApiToken(
            tenant_id=tenant.id,
            user_id=owner.id,
            name="default",
            token_hash=hash_api_token(raw_token),
            token_prefix=raw_token[:8],
        )
    )
    await session.commit()
    await session.refresh(tenant)

    return TenantSignupResponse(
        tenant=TenantRead.model_validate(tenant),
        api_token=raw_token,
        token_prefix=raw_token[:8],
    )


@router.get("/me", response_model=TenantSummary, summary="Current tenant and inventory totals")
async def get_current_tenant(auth: Auth, session: Session) -> TenantSummary:
    tenant = await session.get(Tenant, auth.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")

    stmt = select(func.count(Variant.id), func.max(Variant.serial_number)).where(
        Variant.tenant_id == auth.tenant_id
    )
    count, highest = (await session.execute(stmt)).one()
    return TenantSummary(
        **TenantRead.model_validate(tenant).model_dump(),
        variant_count=count,
        highest_serial=highest,
    )
