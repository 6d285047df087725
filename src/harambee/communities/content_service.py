"""Community tasks, chat and polls.

Every write here first checks that the community is operable and that the
caller belongs to it. A poll accepts one vote per user across all of its
options; the (poll_id, user_id) unique constraint backs the in-memory check.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.communities.service import (
    ensure_operable,
    get_visible_community,
    is_community_admin,
    require_community_member,
)
from harambee.db.models import Club, Community, CommunityMessage, CommunityTask, Poll, PollOption, PollVote, User
from harambee.errors import AuthorizationError, NotFoundError, ValidationError

logger = structlog.get_logger()


async def _readable(db: AsyncSession, club: Club, community_id: int, user: User) -> Community:
    """Community content is visible to its members and to community/club admins."""
    community = await get_visible_community(db, club, community_id, user)
    if community.is_archived:
        raise NotFoundError("Community not found", code="community_not_found")
    if not is_community_admin(club, community, user):
        require_community_member(community, user)
    return community


async def _writable(db: AsyncSession, club: Club, community_id: int, user: User) -> Community:
    community = await get_visible_community(db, club, community_id, user)
    ensure_operable(community)
    require_community_member(community, user)
    return community


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


async def list_tasks(db: AsyncSession, club: Club, community_id: int, user: User) -> list[CommunityTask]:
    community = await _readable(db, club, community_id, user)
    result = await db.execute(
        select(CommunityTask)
        .where(CommunityTask.community_id == community.id)
        .order_by(CommunityTask.created_at.asc(), CommunityTask.id.asc())
    )
    return list(result.scalars().all())


async def create_task(
    db: AsyncSession,
    club: Club,
    community_id: int,
    user: User,
    title: str,
    description: str | None = None,
    due_date: datetime | None = None,
) -> CommunityTask:
    community = await _writable(db, club, community_id, user)
    title = (title or "").strip()
    if not title:
        raise ValidationError("Task title is required")
    task = CommunityTask(
        community_id=community.id,
        title=title,
        description=description or "",
        due_date=due_date,
        completed=False,
        created_by=user.id,
    )
    db.add(task)
    await db.flush()
    return task


async def _get_task(db: AsyncSession, community: Community, task_id: int) -> CommunityTask:
    task = await db.get(CommunityTask, task_id)
    if task is None or task.community_id != community.id:
        raise NotFoundError("Task not found", code="task_not_found")
    return task


async def update_task(
    db: AsyncSession, club: Club, community_id: int, task_id: int, user: User, changes: dict[str, Any]
) -> CommunityTask:
    community = await _writable(db, club, community_id, user)
    task = await _get_task(db, community, task_id)
    if "title" in changes:
        title = (changes["title"] or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        task.title = title
    for field in ("description", "due_date", "completed"):
        if field in changes:
            setattr(task, field, changes[field])
    await db.flush()
    return task


async def delete_task(db: AsyncSession, club: Club, community_id: int, task_id: int, user: User) -> None:
    community = await get_visible_community(db, club, community_id, user)
    ensure_operable(community)
    task = await _get_task(db, community, task_id)
    if task.created_by != user.id and not is_community_admin(club, community, user):
        raise AuthorizationError(
            "Only the task creator or a community admin can delete this task", code="insufficient_role"
        )
    await db.delete(task)
    await db.flush()


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


async def list_messages(
    db: AsyncSession, club: Club, community_id: int, user: User, limit: int = 100
) -> list[CommunityMessage]:
    """The latest ``limit`` messages, oldest first."""
    community = await _readable(db, club, community_id, user)
    result = await db.execute(
        select(CommunityMessage)
        .where(CommunityMessage.community_id == community.id)
        .order_by(CommunityMessage.created_at.desc(), CommunityMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def post_message(db: AsyncSession, club: Club, community_id: int, user: User, text: str) -> CommunityMessage:
    community = await _writable(db, club, community_id, user)
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message text is required")
    message = CommunityMessage(community_id=community.id, user_id=user.id, message=text)
    db.add(message)
    await db.flush()
    return message


async def delete_message(db: AsyncSession, club: Club, community_id: int, message_id: int, user: User) -> None:
    community = await get_visible_community(db, club, community_id, user)
    ensure_operable(community)
    message = await db.get(CommunityMessage, message_id)
    if message is None or message.community_id != community.id:
        raise NotFoundError("Message not found", code="message_not_found")
    if message.user_id != user.id and not is_community_admin(club, community, user):
        raise AuthorizationError(
            "Only the sender or a community admin can delete this message", code="insufficient_role"
        )
    await db.delete(message)
    await db.flush()


# ---------------------------------------------------------------------------
# Polls
# ---------------------------------------------------------------------------


def tally(poll: Poll) -> list[list[int]]:
    """Voter ids per option, in option order."""
    by_option: dict[int, list[int]] = {option.id: [] for option in poll.options}
    for vote in poll.votes:
        by_option.setdefault(vote.option_id, []).append(vote.user_id)
    return [by_option[option.id] for option in poll.options]


def has_voted(poll: Poll, user_id: int) -> bool:
    """True when the user appears among the voters of any option."""
    return any(user_id in voters for voters in tally(poll))


async def list_polls(db: AsyncSession, club: Club, community_id: int, user: User) -> list[Poll]:
    community = await _readable(db, club, community_id, user)
    result = await db.execute(
        select(Poll).where(Poll.community_id == community.id).order_by(Poll.created_at.desc(), Poll.id.desc())
    )
    return list(result.scalars().all())


async def create_poll(
    db: AsyncSession, club: Club, community_id: int, user: User, question: str, options: list[str]
) -> Poll:
    community = await _writable(db, club, community_id, user)
    question = (question or "").strip()
    if not question:
        raise ValidationError("Poll question is required")
    cleaned = [opt.strip() for opt in options or [] if opt and opt.strip()]
    if len(cleaned) < 2:
        raise ValidationError("At least two options are required")

    poll = Poll(
        community_id=community.id,
        question=question,
        is_closed=False,
        created_by=user.id,
        options=[PollOption(position=i, text=text) for i, text in enumerate(cleaned)],
        votes=[],
    )
    db.add(poll)
    await db.flush()
    logger.info("poll_created", community_id=community.id, poll_id=poll.id)
    return poll


async def _get_poll(db: AsyncSession, community: Community, poll_id: int) -> Poll:
    result = await db.execute(select(Poll).where(Poll.id == poll_id, Poll.community_id == community.id))
    poll = result.scalar_one_or_none()
    if poll is None:
        raise NotFoundError("Poll not found", code="poll_not_found")
    return poll


async def cast_vote(
    db: AsyncSession, club: Club, community_id: int, poll_id: int, user: User, option_index: int
) -> Poll:
    """
    Record one vote.

    Checks run in order: membership (403), poll open (400), option index in
    range (400), and no earlier vote on any option of this poll (400).
    """
    community = await get_visible_community(db, club, community_id, user)
    ensure_operable(community)
    poll = await _get_poll(db, community, poll_id)
    require_community_member(community, user)

    if poll.is_closed:
        raise ValidationError("Poll is closed", code="poll_closed")
    if not 0 <= option_index < len(poll.options):
        raise ValidationError("Invalid option index", code="invalid_option")
    if has_voted(poll, user.id):
        raise ValidationError("Already voted", code="already_voted")

    vote = PollVote(option_id=poll.options[option_index].id, user_id=user.id)
    try:
        async with db.begin_nested():
            poll.votes.append(vote)
    except IntegrityError:
        # Lost a race with another vote from the same user.
        raise ValidationError("Already voted", code="already_voted") from None

    logger.info("poll_vote_cast", poll_id=poll.id, user_id=user.id, option_index=option_index)
    return poll


async def close_poll(db: AsyncSession, club: Club, community_id: int, poll_id: int, user: User) -> Poll:
    community = await get_visible_community(db, club, community_id, user)
    ensure_operable(community)
    poll = await _get_poll(db, community, poll_id)
    if poll.created_by != user.id and not is_community_admin(club, community, user):
        raise AuthorizationError("Only the poll creator or a community admin can close this poll", code="insufficient_role")
    if poll.is_closed:
        raise ValidationError("Poll is already closed", code="poll_closed")
    poll.is_closed = True
    await db.flush()
    return poll


async def delete_poll(db: AsyncSession, club: Club, community_id: int, poll_id: int, user: User) -> None:
    community = await get_visible_community(db, club, community_id, user)
    ensure_operable(community)
    poll = await _get_poll(db, community, poll_id)
    if poll.created_by != user.id and not is_community_admin(club, community, user):
        raise AuthorizationError(
            "Only the poll creator or a community admin can delete this poll", code="insufficient_role"
        )
    await db.delete(poll)
    await db.flush()
