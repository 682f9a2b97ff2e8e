"""API dependencies for authentication and common operations."""

import hmac
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import verify_token
from app.database import get_db
from app.models.user import ServicePro, User
from app.services.transition_authorizer import PRO_ROLE, CallerContext

# Missing credentials are reported as 401 by get_current_user, not 403 by FastAPI.
security = HTTPBearer(auto_error=False)

__all__ = ["get_db", "get_current_user", "get_caller_context", "require_internal_caller"]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if credentials is None:
        raise AuthenticationError("Authentication required")

    payload = verify_token(credentials.credentials, token_type="access")
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_caller_context(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CallerContext:
    """Resolve the caller's role and, for pros, their pro-profile id."""
    pro_id = None
    if current_user.role == PRO_ROLE:
        result = await db.execute(
            select(ServicePro.id).where(ServicePro.user_id == current_user.id)
        )
        pro_id = result.scalar_one_or_none()

    return CallerContext(user_id=current_user.id, role=current_user.role, pro_id=pro_id)


async def require_internal_caller(
    x_internal_key: Annotated[str | None, Header()] = None,
) -> None:
    """Accept only trusted internal callers presenting the shared key."""
    expected = settings.internal_api_key
    if not expected or not x_internal_key:
        raise AuthenticationError("Internal key required")
    if not hmac.compare_digest(x_internal_key.encode(), expected.encode()):
        raise AuthenticationError("Invalid internal key")
