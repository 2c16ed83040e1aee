"""Request dependencies: bearer-token identity, DB session, serial allocator."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.database import get_session
from app.core.security import decode_jwt, hash_api_token
from app.models.api_token import ApiToken
from app.models.base import utcnow
from app.models.tenant import Tenant
from app.models.user import User
from app.services.serial_allocator import SerialAllocator
from app.services.variant_store import SqlVariantStore

bearer_scheme = HTTPBearer()


class AuthContext:
    """Who is calling, and which tenant's inventory they act on."""

    __slots__ = ("tenant_id", "user_id", "token_id", "user_role")

    def __init__(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        user_role: str,
        token_id: uuid.UUID | None = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.user_role = user_role
        self.token_id = token_id


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def _from_api_token(raw_token: str, session: AsyncSession) -> AuthContext:
    stmt = select(ApiToken).where(
        ApiToken.token_hash == hash_api_token(raw_token),
        ApiToken.is_active.is_(True),  # type: ignore[union-attr]
    )
    api_token = (await session.execute(stmt)).scalar_one_or_none()
    if api_token is None:
        raise _unauthorized("Invalid or revoked API token")
    if api_token.expires_at and api_token.expires_at < utcnow():
        raise _unauthorized("API token has expired")

    user = await session.get(User, api_token.user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Token owner account is disabled")
    tenant = await session.get(Tenant, api_token.tenant_id)
    if tenant is None or not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant is disabled")

    api_token.last_used_at = utcnow()
    session.add(api_token)
    await session.commit()

    return AuthContext(
        tenant_id=api_token.tenant_id,
        user_id=api_token.user_id,
        user_role=user.role,
        token_id=api_token.id,
    )


def _from_jwt(token: str) -> AuthContext:
    try:
        claims = decode_jwt(token)
    except JWTError as exc:
        raise _unauthorized("Invalid or expired JWT") from exc

    try:
        return AuthContext(
            tenant_id=uuid.UUID(claims["tid"]),
            user_id=uuid.UUID(claims["sub"]),
            user_role=claims.get("role", "staff"),
        )
    except (KeyError, ValueError) as exc:
        raise _unauthorized("Malformed JWT payload") from exc


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AuthContext:
    """Accept either a login JWT (three dot-separated parts) or an opaque API token."""
    raw = credentials.credentials
    if raw.count(".") == 2:
        return _from_jwt(raw)
    return await _from_api_token(raw, session)


async def get_serial_allocator(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SerialAllocator:
    return SerialAllocator(SqlVariantStore(session))


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
Session = Annotated[AsyncSession, Depends(get_session)]
Allocator = Annotated[SerialAllocator, Depends(get_serial_allocator)]
