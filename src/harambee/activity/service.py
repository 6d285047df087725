"""Activity log: insert-only audit trail for goals, objectives and tasks.

Rows are only ever inserted. Each row carries its own day / ISO week /
month keys so period analytics are plain GROUP BYs.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.db.models import ActivityLog
from harambee.errors import ValidationError
from harambee.timeutils import as_utc, day_key, month_key, utcnow, week_key

logger = structlog.get_logger()

CATEGORIES = {"create", "read", "update", "delete", "assign", "complete", "comment", "attach"}
ENTITY_TYPES = {"club", "goal", "objective", "task", "user", "comment", "attachment"}
VISIBILITIES = {"public", "club", "private"}
SOURCES = {"web", "mobile", "api", "automation"}
PERIODS = {"day": ActivityLog.day, "week": ActivityLog.week, "month": ActivityLog.month}


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    return value


def _field_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, datetime | date):
        return "date"
    if isinstance(value, list | tuple):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def diff_changes(before: dict[str, Any], after: dict[str, Any]) -> list[dict[str, Any]]:
    """Field-level {field, oldValue, newValue, fieldType} entries for keys whose value changed."""
    changes = []
    for field, new in after.items():
        old = before.get(field)
        if old == new:
            continue
        changes.append(
            {
                "field": field,
                "oldValue": _json_value(old),
                "newValue": _json_value(new),
                "fieldType": _field_type(new if new is not None else old),
            }
        )
    return changes


def build_activity(
    *,
    category: str,
    verb: str,
    object_: str,
    actor_id: int | None,
    entity_type: str,
    entity_id: int,
    entity_name: str | None = None,
    description: str | None = None,
    club_id: int | None = None,
    goal_id: int | None = None,
    objective_id: int | None = None,
    task_id: int | None = None,
    changes: list[dict[str, Any]] | None = None,
    metadata: dict[str, Any] | None = None,
    visibility: str = "club",
    source: str = "api",
    timestamp: datetime | None = None,
) -> ActivityLog:
    """Build an unsaved row with its period keys filled in."""
    if category not in CATEGORIES:
        raise ValueError(f"Invalid activity category: {category}")
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Invalid entity type: {entity_type}")
    if visibility not in VISIBILITIES:
        raise ValueError(f"Invalid visibility: {visibility}")

    ts = as_utc(timestamp) or utcnow()
    return ActivityLog(
        action_category=category,
        action_verb=verb,
        action_object=object_,
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=(entity_name or "")[:200] or None,
        description=(description or "")[:1000] or None,
        club_id=club_id,
        goal_id=goal_id,
        objective_id=objective_id,
        task_id=task_id,
        changes=changes or [],
        activity_metadata={k: _json_value(v) for k, v in (metadata or {}).items()},
        visibility=visibility,
        source=source if source in SOURCES else "api",
        timestamp=ts,
        day=day_key(ts),
        week=week_key(ts),
        month=month_key(ts),
    )


async def log_activity(db: AsyncSession, **fields: Any) -> ActivityLog | None:
    """Insert an activity row inside a savepoint; failures are logged and dropped."""
    entry = build_activity(**fields)
    try:
        async with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError:
        logger.warning(
            "activity_log_write_failed", entity_type=entry.entity_type, entity_id=entry.entity_id, exc_info=True
        )
        return None
    return entry


async def get_activity_feed(
    db: AsyncSession,
    club_id: int | None = None,
    actor_id: int | None = None,
    entity_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    visibility: Iterable[str] = ("public", "club"),
    limit: int = 50,
    skip: int = 0,
) -> list[ActivityLog]:
    """Newest first."""
    conditions = [ActivityLog.visibility.in_(list(visibility))]
    if club_id is not None:
        conditions.append(ActivityLog.club_id == club_id)
    if actor_id is not None:
        conditions.append(ActivityLog.actor_id == actor_id)
    if entity_type:
        conditions.append(ActivityLog.entity_type == entity_type)
    if start is not None:
        conditions.append(ActivityLog.timestamp >= start)
    if end is not None:
        conditions.append(ActivityLog.timestamp <= end)

    result = await db.execute(
        select(ActivityLog)
        .where(*conditions)
        .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_activity_analytics(
    db: AsyncSession, club_id: int, period: str = "week", days: int = 30, now: datetime | None = None
) -> list[dict[str, Any]]:
    """
    Activity counts per period bucket over the last ``days`` days.

    Each bucket: ``{"period", "totalActivities", "activities": [{"category",
    "count", "uniqueActors"}]}``; buckets ascend by period key.
    """
    if period not in PERIODS:
        raise ValidationError("Period must be one of: day, week, month")
    bucket = PERIODS[period]
    since = (now or utcnow()) - timedelta(days=days)

    result = await db.execute(
        select(
            bucket,
            ActivityLog.action_category,
            func.count(ActivityLog.id),
            func.count(distinct(ActivityLog.actor_id)),
        )
        .where(ActivityLog.club_id == club_id, ActivityLog.timestamp >= since)
        .group_by(bucket, ActivityLog.action_category)
        .order_by(bucket, ActivityLog.action_category)
    )

    buckets: dict[str, dict[str, Any]] = {}
    for key, category, count, actors in result.all():
        entry = buckets.setdefault(key, {"period": key, "totalActivities": 0, "activities": []})
        entry["activities"].append({"category": category, "count": count, "uniqueActors": actors})
        entry["totalActivities"] += count
    return [buckets[key] for key in sorted(buckets)]


async def get_user_activity_summary(
    db: AsyncSession, user_id: int, club_id: int | None = None, days: int = 30
) -> dict[str, Any]:
    """Per-category counts for one actor over the last ``days`` days."""
    conditions = [ActivityLog.actor_id == user_id, ActivityLog.timestamp >= utcnow() - timedelta(days=days)]
    if club_id is not None:
        conditions.append(ActivityLog.club_id == club_id)

    result = await db.execute(
        select(ActivityLog.action_category, func.count(ActivityLog.id), func.max(ActivityLog.timestamp))
        .where(*conditions)
        .group_by(ActivityLog.action_category)
    )
    by_category: dict[str, int] = {}
    last: datetime | None = None
    for category, count, latest in result.all():
        by_category[category] = count
        latest = as_utc(latest)
        if latest is not None and (last is None or latest > last):
            last = latest
    return {
        "days": days,
        "totalActivities": sum(by_category.values()),
        "byCategory": by_category,
        "lastActivityAt": last,
    }
