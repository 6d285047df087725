"""
Password hashing and validation using argon2id.
"""

from __future__ import annotations

import argon2

from harambee.config import get_settings

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full encoded hash."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """True if the password matches. Never raises on mismatch or a corrupt hash."""
    try:
        return _hasher.verify(password_hash, password)
    except (argon2.exceptions.VerifyMismatchError, argon2.exceptions.InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    return _hasher.check_needs_rehash(password_hash)


def password_problems(password: str) -> list[str]:
    """
    List the strength rules the password breaks (empty when acceptable).

    Length bounds come from settings; the upper bound keeps hashing cost bounded.
    """
    settings = get_settings()
    problems: list[str] = []
    if not password or not password.strip():
        return ["Password cannot be empty"]
    if len(password) < settings.password_min_length:
        problems.append(f"Password must be at least {settings.password_min_length} characters")
    if len(password) > settings.password_max_length:
        problems.append(f"Password must not exceed {settings.password_max_length} characters")
    if not any(c.isalpha() for c in password):
        problems.append("Password must contain a letter")
    if not any(c.isdigit() for c in password):
        problems.append("Password must contain a digit")
    return problems
