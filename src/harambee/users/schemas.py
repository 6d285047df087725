"""Request/response schemas for /api/users."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from harambee.schemas import CamelModel


class ProfileUpdateRequest(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=32)
    bio: str | None = Field(None, max_length=500)


class NotificationPreferences(CamelModel):
    email: bool | None = None
    sms: bool | None = None


class PreferencesUpdateRequest(CamelModel):
    notifications: NotificationPreferences | None = None
    theme: str | None = None
    language: str | None = Field(None, max_length=8)
    timezone: str | None = Field(None, max_length=64)


class PreferencesResponse(CamelModel):
    notifications: dict[str, bool]
    theme: str
    language: str
    timezone: str


class NotificationResponse(CamelModel):
    id: int
    type: str
    title: str | None = None
    message: str
    link: str | None = None
    read: bool
    created_at: datetime


class NotificationPage(CamelModel):
    items: list[NotificationResponse]
    total: int
    unread: int
    page: int


class ActivitySummaryResponse(CamelModel):
    days: int
    total_activities: int
    by_category: dict[str, int]
    last_activity_at: datetime | None = None
    club_id: int | None = None

