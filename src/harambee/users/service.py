"""User profile and preference logic."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

import structlog

from harambee.db.models import User, default_preferences
from harambee.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

ALLOWED_THEMES = {"light", "dark", "system"}


async def update_profile(
    db: AsyncSession,
    user: User,
    name: str | None = None,
    phone: str | None = None,
    bio: str | None = None,
) -> User:
    """Update editable profile fields. ``None`` leaves a field unchanged."""
    if name is not None:
        user.name = name.strip()
    if phone is not None:
        user.phone = phone.strip() or None
    if bio is not None:
        user.bio = bio
    await db.flush()
    return user


def merge_preferences(current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """
    Merge a partial preferences update into the stored document.

    Nested dicts (``notifications``) merge key by key; scalars replace.
    Missing keys fall back to the defaults so old rows gain new settings.
    """
    merged = default_preferences()
    for source in (current or {}, changes):
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
    return merged


def get_preferences(user: User) -> dict[str, Any]:
    return merge_preferences(user.preferences, {})


async def update_preferences(db: AsyncSession, user: User, changes: dict[str, Any]) -> dict[str, Any]:
    """Persist a partial preferences update and return the full document."""
    theme = changes.get("theme")
    if theme is not None and theme not in ALLOWED_THEMES:
        raise ValidationError(f"Theme must be one of {sorted(ALLOWED_THEMES)}")

    # Reassign (not mutate) so the JSON column is flagged dirty.
    user.preferences = copy.deepcopy(merge_preferences(user.preferences, changes))
    await db.flush()
    logger.info("preferences_updated", user_id=user.id, keys=sorted(changes))
    return user.preferences
