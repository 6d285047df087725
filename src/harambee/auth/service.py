"""
Authentication business logic.

Handles registration, credential checks, login lockout and password changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from harambee.auth.password import hash_password, needs_rehash, password_problems, verify_password
from harambee.config import get_settings
from harambee.db.models import User
from harambee.errors import AuthenticationError, AuthorizationError, ConflictError, RateLimitedError, ValidationError
from harambee.timeutils import utcnow

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def ensure_strong_password(password: str) -> None:
    problems = password_problems(password)
    if problems:
        raise ValidationError(problems[0], code="weak_password")


async def register_user(db: AsyncSession, name: str, email: str, password: str) -> User:
    """
    Create an account with the default ``user`` role.

    Raises:
        ValidationError: weak password.
        ConflictError: email already registered.
    """
    ensure_strong_password(password)

    if await get_user_by_email(db, email) is not None:
        raise ConflictError("Email already registered", code="email_taken")

    user = User(
        name=name.strip(),
        email=email.lower().strip(),
        password_hash=hash_password(password),
        role="user",
        last_login=utcnow(),
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, email=user.email)
    return user


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate_user(db: AsyncSession, redis: Redis | None, email: str, password: str) -> User:
    """
    Check credentials and stamp ``last_login``.

    Raises:
        AuthenticationError: unknown email or wrong password.
        RateLimitedError: too many recent failures for this account.
        AuthorizationError: the account is blocked.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        raise AuthenticationError("Invalid email or password", code="invalid_credentials")

    if redis is not None and await check_account_lockout(redis, user.id):
        raise RateLimitedError("Account temporarily locked. Try again later.", code="account_locked")

    if not verify_password(password, user.password_hash):
        if redis is not None:
            await increment_failed_login(redis, user.id)
        logger.info("login_failed", user_id=user.id)
        raise AuthenticationError("Invalid email or password", code="invalid_credentials")

    if user.is_blocked:
        raise AuthorizationError("Account is blocked", code="account_blocked")

    if redis is not None:
        await clear_failed_login(redis, user.id)

    user.last_login = utcnow()
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        logger.info("password_rehashed", user_id=user.id)
    await db.flush()
    return user


async def change_password(db: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    """Replace the password after checking the current one."""
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect", code="invalid_credentials")
    ensure_strong_password(new_password)
    user.password_hash = hash_password(new_password)
    await db.flush()
    logger.info("password_changed", user_id=user.id)


# ---------------------------------------------------------------------------
# Account lockout
# ---------------------------------------------------------------------------


async def check_account_lockout(redis: Redis, user_id: int) -> bool:
    """Check if the account is locked due to too many failed login attempts."""
    settings = get_settings()
    count_str = await redis.get(f"login_attempts:{user_id}")
    if count_str is None:
        return False
    return int(count_str) >= settings.account_lockout_threshold


async def increment_failed_login(redis: Redis, user_id: int) -> int:
    """Increment failed login counter. Returns the new count."""
    settings = get_settings()
    key = f"login_attempts:{user_id}"
    count = await redis.incr(key)
    if count == 1:
        await redis.expire(key, settings.account_lockout_duration_minutes * 60)
    return int(count)


async def clear_failed_login(redis: Redis, user_id: int) -> None:
    await redis.delete(f"login_attempts:{user_id}")
