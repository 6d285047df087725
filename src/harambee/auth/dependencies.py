"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.auth.jwt import verify_token
from harambee.auth.service import get_user_by_id
from harambee.database import get_session
from harambee.db.models import User
from harambee.errors import AuthenticationError, AuthorizationError

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the bearer token to a User.

    401 for a missing/invalid token or unknown user, 403 for blocked accounts.
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("No token provided", code="unauthenticated")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(str(e) or "Token is not valid", code="invalid_token") from e

    user = await get_user_by_id(db, int(payload["sub"]))
    if user is None:
        raise AuthenticationError("User not found", code="invalid_token")
    if user.is_blocked:
        raise AuthorizationError("Account is blocked", code="account_blocked")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Same as get_current_user, additionally requiring the system ``admin`` role."""
    if user.role != "admin":
        raise AuthorizationError("Admin access required", code="admin_required")
    return user
