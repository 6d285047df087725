"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import EmailStr, Field, field_validator

from harambee.schemas import CamelModel


class RegisterRequest(CamelModel):
    """Email + password registration."""

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name is required")
        return v.strip()


class LoginRequest(CamelModel):
    """Login with email + password."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class ChangePasswordRequest(CamelModel):
    """Change password (requires current password)."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class UserResponse(CamelModel):
    """Private view of the caller's own account."""

    id: int
    name: str
    email: str
    role: str
    is_blocked: bool
    phone: str | None = None
    bio: str | None = None
    preferences: dict[str, Any]
    created_at: datetime
    last_login: datetime | None = None


class PublicUserResponse(CamelModel):
    """Fields other members may see."""

    id: int
    name: str
    email: str


class AuthResponse(CamelModel):
    token: str
    user: UserResponse
