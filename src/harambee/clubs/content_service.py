"""Club forum, simple goals and knowledge base."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.clubs.policy import ANY_MEMBER, MANAGERS, enforce_club_role, is_manager
from harambee.clubs.service import record_club_log
from harambee.db.models import Club, ClubGoal, ClubTopic, KnowledgeBaseEntry, TopicReply, User
from harambee.errors import AuthorizationError, NotFoundError, ValidationError

logger = structlog.get_logger()

GOAL_STATUSES = {"active", "completed", "archived"}


def _require_text(value: str | None, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required")
    return value


def _ensure_author_or_manager(club: Club, user: User, author_id: int | None, what: str) -> None:
    if author_id == user.id or is_manager(club, user):
        return
    raise AuthorizationError(f"Only the author or a club admin can modify this {what}", code="insufficient_role")


# ---------------------------------------------------------------------------
# Topics and replies
# ---------------------------------------------------------------------------


async def list_topics(db: AsyncSession, club: Club, user: User) -> list[tuple[ClubTopic, int]]:
    """Topics newest first, each with its reply count."""
    enforce_club_role(club, user, ANY_MEMBER)
    reply_count = (
        select(func.count(TopicReply.id)).where(TopicReply.topic_id == ClubTopic.id).correlate(ClubTopic).scalar_subquery()
    )
    result = await db.execute(
        select(ClubTopic, reply_count)
        .where(ClubTopic.club_id == club.id)
        .order_by(ClubTopic.created_at.desc(), ClubTopic.id.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_topic(db: AsyncSession, club: Club, user: User, topic_id: int) -> ClubTopic:
    enforce_club_role(club, user, ANY_MEMBER)
    topic = await db.get(ClubTopic, topic_id)
    if topic is None or topic.club_id != club.id:
        raise NotFoundError("Topic not found", code="topic_not_found")
    return topic


async def create_topic(db: AsyncSession, club: Club, user: User, title: str, content: str | None) -> ClubTopic:
    enforce_club_role(club, user, ANY_MEMBER)
    topic = ClubTopic(club_id=club.id, title=_require_text(title, "Title"), content=content, created_by=user.id)
    db.add(topic)
    await db.flush()
    await record_club_log(db, club.id, "topic_created", user.id, {"topicId": topic.id, "title": topic.title})
    return topic


async def update_topic(db: AsyncSession, club: Club, user: User, topic_id: int, changes: dict[str, Any]) -> ClubTopic:
    topic = await get_topic(db, club, user, topic_id)
    _ensure_author_or_manager(club, user, topic.created_by, "topic")
    if "title" in changes:
        topic.title = _require_text(changes["title"], "Title")
    if "content" in changes:
        topic.content = changes["content"]
    await db.flush()
    return topic


async def delete_topic(db: AsyncSession, club: Club, user: User, topic_id: int) -> None:
    topic = await get_topic(db, club, user, topic_id)
    _ensure_author_or_manager(club, user, topic.created_by, "topic")
    await db.delete(topic)
    await db.flush()


async def list_replies(db: AsyncSession, club: Club, user: User, topic_id: int) -> list[TopicReply]:
    topic = await get_topic(db, club, user, topic_id)
    result = await db.execute(
        select(TopicReply).where(TopicReply.topic_id == topic.id).order_by(TopicReply.created_at, TopicReply.id)
    )
    return list(result.scalars().all())


async def add_reply(db: AsyncSession, club: Club, user: User, topic_id: int, content: str) -> TopicReply:
    topic = await get_topic(db, club, user, topic_id)
    reply = TopicReply(topic_id=topic.id, content=_require_text(content, "Content"), created_by=user.id)
    db.add(reply)
    await db.flush()
    return reply


async def delete_reply(db: AsyncSession, club: Club, user: User, topic_id: int, reply_id: int) -> None:
    topic = await get_topic(db, club, user, topic_id)
    reply = await db.get(TopicReply, reply_id)
    if reply is None or reply.topic_id != topic.id:
        raise NotFoundError("Reply not found", code="reply_not_found")
    _ensure_author_or_manager(club, user, reply.created_by, "reply")
    await db.delete(reply)
    await db.flush()


# ---------------------------------------------------------------------------
# Club goals (simple form)
# ---------------------------------------------------------------------------


async def list_goals(db: AsyncSession, club: Club, user: User) -> list[ClubGoal]:
    enforce_club_role(club, user, ANY_MEMBER)
    result = await db.execute(
        select(ClubGoal).where(ClubGoal.club_id == club.id).order_by(ClubGoal.created_at.desc(), ClubGoal.id.desc())
    )
    return list(result.scalars().all())


async def _get_goal(db: AsyncSession, club: Club, goal_id: int) -> ClubGoal:
    goal = await db.get(ClubGoal, goal_id)
    if goal is None or goal.club_id != club.id:
        raise NotFoundError("Goal not found", code="goal_not_found")
    return goal


async def create_goal(
    db: AsyncSession,
    club: Club,
    user: User,
    title: str,
    description: str | None = None,
    target_date: datetime | None = None,
) -> ClubGoal:
    enforce_club_role(club, user, MANAGERS)
    goal = ClubGoal(
        club_id=club.id,
        title=_require_text(title, "Title"),
        description=description,
        target_date=target_date,
        created_by=user.id,
    )
    db.add(goal)
    await db.flush()
    await record_club_log(db, club.id, "goal_created", user.id, {"goalId": goal.id, "title": goal.title})
    return goal


async def update_goal(db: AsyncSession, club: Club, user: User, goal_id: int, changes: dict[str, Any]) -> ClubGoal:
    enforce_club_role(club, user, MANAGERS)
    goal = await _get_goal(db, club, goal_id)
    if "title" in changes:
        goal.title = _require_text(changes["title"], "Title")
    if "status" in changes:
        if changes["status"] not in GOAL_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(GOAL_STATUSES))}")
        goal.status = changes["status"]
    for field in ("description", "target_date"):
        if field in changes:
            setattr(goal, field, changes[field])
    await db.flush()
    return goal


async def delete_goal(db: AsyncSession, club: Club, user: User, goal_id: int) -> None:
    enforce_club_role(club, user, MANAGERS)
    goal = await _get_goal(db, club, goal_id)
    await db.delete(goal)
    await db.flush()


# ---------------------------------------------------------------------------
# Knowledge base
# ---------------------------------------------------------------------------


async def list_entries(db: AsyncSession, club: Club, user: User, search: str | None = None) -> list[KnowledgeBaseEntry]:
    enforce_club_role(club, user, ANY_MEMBER)
    query = select(KnowledgeBaseEntry).where(KnowledgeBaseEntry.club_id == club.id)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            func.lower(KnowledgeBaseEntry.title).like(pattern) | func.lower(KnowledgeBaseEntry.content).like(pattern)
        )
    result = await db.execute(query.order_by(KnowledgeBaseEntry.updated_at.desc(), KnowledgeBaseEntry.id.desc()))
    return list(result.scalars().all())


async def _get_entry(db: AsyncSession, club: Club, entry_id: int) -> KnowledgeBaseEntry:
    entry = await db.get(KnowledgeBaseEntry, entry_id)
    if entry is None or entry.club_id != club.id:
        raise NotFoundError("Knowledge base entry not found", code="entry_not_found")
    return entry


async def create_entry(
    db: AsyncSession, club: Club, user: User, title: str, content: str, tags: list[str] | None = None
) -> KnowledgeBaseEntry:
    enforce_club_role(club, user, MANAGERS)
    entry = KnowledgeBaseEntry(
        club_id=club.id,
        title=_require_text(title, "Title"),
        content=_require_text(content, "Content"),
        tags=list(tags or []),
        version=1,
        created_by=user.id,
    )
    db.add(entry)
    await db.flush()
    await record_club_log(db, club.id, "knowledge_base_entry_created", user.id, {"entryId": entry.id})
    return entry


async def update_entry(
    db: AsyncSession, club: Club, user: User, entry_id: int, changes: dict[str, Any]
) -> KnowledgeBaseEntry:
    """Edit an entry; every successful edit bumps ``version``."""
    enforce_club_role(club, user, MANAGERS)
    entry = await _get_entry(db, club, entry_id)
    if "title" in changes:
        entry.title = _require_text(changes["title"], "Title")
    if "content" in changes:
        entry.content = _require_text(changes["content"], "Content")
    if "tags" in changes:
        entry.tags = list(changes["tags"] or [])
    entry.version += 1
    await db.flush()
    logger.info("knowledge_base_entry_updated", club_id=club.id, entry_id=entry.id, version=entry.version)
    return entry


async def delete_entry(db: AsyncSession, club: Club, user: User, entry_id: int) -> None:
    enforce_club_role(club, user, MANAGERS)
    entry = await _get_entry(db, club, entry_id)
    await db.delete(entry)
    await db.flush()
