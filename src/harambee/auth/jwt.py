"""
HS256 JWT token management.

Access tokens are signed with the shared ``jwt_secret`` and live for
``jwt_expire_days`` days. The payload carries the user id under both ``sub``
(registered claim) and ``userId`` (what the SPA reads), plus email and role.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import jwt

from harambee.config import get_settings
from harambee.timeutils import utcnow


def create_access_token(user_id: int, email: str, role: str) -> str:
    """
    Create a signed access token.

    Args:
        user_id: The user's database ID.
        email: The user's (normalized) email.
        role: System role, "user" or "admin".

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = utcnow()
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "userId": user_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expire_days),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, expired, or not an access token.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != "access":
        msg = "Token is not valid"
        raise jwt.InvalidTokenError(msg)
    return payload
