"""Authentication router: all /api/auth/* endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.auth.dependencies import get_current_user
from harambee.auth.jwt import create_access_token
from harambee.auth.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    UserResponse,
)
from harambee.auth.service import authenticate_user, change_password, register_user
from harambee.database import get_session
from harambee.db.models import User
from harambee.redis_client import get_optional_redis
from harambee.schemas import Envelope, Message

logger = structlog.get_logger()

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


def _auth_payload(user: User) -> dict:
    token = create_access_token(user.id, user.email, user.role)
    return {"data": AuthResponse(token=token, user=UserResponse.model_validate(user))}


@router.post("/register", response_model=Envelope[AuthResponse], status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Register with name, email and password. Returns a token like login does."""
    user = await register_user(db, body.name, body.email, body.password)
    await db.commit()
    return _auth_payload(user)


@router.post("/login", response_model=Envelope[AuthResponse])
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
    redis: Redis | None = Depends(get_optional_redis),
) -> dict:
    """Login with email + password."""
    user = await authenticate_user(db, redis, body.email, body.password)
    await db.commit()
    logger.info("user_logged_in", user_id=user.id)
    return _auth_payload(user)


@router.get("/me", response_model=Envelope[UserResponse])
async def me(user: User = Depends(get_current_user)) -> dict:
    return {"data": UserResponse.model_validate(user)}


@router.put("/change-password", response_model=Envelope[Message])
async def change_password_endpoint(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Change password for the logged-in user."""
    await change_password(db, user, body.current_password, body.new_password)
    await db.commit()
    return {"data": Message(message="Password changed successfully")}
