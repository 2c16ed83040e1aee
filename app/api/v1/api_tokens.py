"""API tokens for scanners and integrations — create, list, revoke."""

import uuid
from datetime import timezone

from fastapi import APIRouter, HTTPException, status
from sqlmodel import select

from app.api.deps import Auth, Session
from app.core.security import generate_api_token, hash_api_token
from app.models.api_token import ApiToken, ApiTokenCreate, ApiTokenCreated, ApiTokenRead

router = APIRouter(prefix="/api-tokens", tags=["api-tokens"])


@router.post("", response_model=ApiTokenCreated, status_code=status.HTTP_201_CREATED)
async def create_api_token(body: ApiTokenCreate, auth: Auth, session: Session) -> ApiTokenCreated:
    """Issue a token bound to the caller's tenant. The raw value is returned once."""
    raw_token = generate_api_token()
    expires_at = body.expires_at
    if expires_at is not None and expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)

    token = ApiToken(
        tenant_id=auth.tenant_id,
        user_id=auth.user_id,
        name=body.name,
        token_hash=hash_api_token(raw_token),
        token_prefix=raw_token[:8],
        expires_at=expires_at,
    )
    session.add(token)
    await session.commit()
    await session.refresh(token)

    return ApiTokenCreated(
        **ApiTokenRead.model_validate(token).model_dump(),
        raw_token=raw_token,
    )


@router.get("", response_model=list[ApiTokenRead])
async def list_api_tokens(auth: Auth, session: Session) -> list[ApiTokenRead]:
    stmt = (
        select(ApiToken)
        .where(ApiToken.tenant_id == auth.tenant_id)
        .order_by(ApiToken.created_at.desc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    return [ApiTokenRead.model_validate(t) for t in result.scalars().all()]


@router.delete("/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_token(token_id: uuid.UUID, auth: Auth, session: Session) -> None:
    # Soft delete: the row stays for auditing but can no longer authenticate
    stmt = select(ApiToken).where(
        ApiToken.id == token_id,
        ApiToken.tenant_id == auth.tenant_id,
    )
    token = (await session.execute(stmt)).scalar_one_or_none()
    if token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")

    token.is_active = False
    session.add(token)
    await session.commit()
