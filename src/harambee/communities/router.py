"""Community endpoints: /api/clubs/{club_id}/communities/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.auth.dependencies import get_current_user
from harambee.auth.schemas import PublicUserResponse
from harambee.clubs.service import get_club_or_404
from harambee.communities import content_service
from harambee.communities.schemas import (
    ChatMessageRequest,
    ChatMessageResponse,
    CommunityMemberResponse,
    CommunityResponse,
    CommunityTaskRequest,
    CommunityTaskResponse,
    CreateCommunityRequest,
    CreatePollRequest,
    PollOptionResponse,
    PollResponse,
    RejectCommunityRequest,
    UpdateCommunityRequest,
    UpdateCommunityTaskRequest,
    VoteRequest,
)
from harambee.communities.service import (
    archive_community,
    create_community,
    find_community_membership,
    get_visible_community,
    join_community,
    leave_community,
    list_communities,
    list_community_members,
    review_community,
    update_community,
)
from harambee.database import get_session
from harambee.db.models import Community, CommunityMessage, Poll, User
from harambee.schemas import Envelope, Message

router = APIRouter(prefix="/api/clubs/{club_id}/communities", tags=["Communities"])


# ── Helpers ──


def build_community_response(community: Community, user: User) -> CommunityResponse:
    membership = find_community_membership(community, user.id)
    return CommunityResponse(
        id=community.id,
        club_id=community.club_id,
        name=community.name,
        description=community.description,
        status=community.status,
        is_archived=community.is_archived,
        created_by=community.created_by,
        approval_actioned_by=community.approval_actioned_by,
        rejection_reason=community.rejection_reason,
        member_count=len(community.members),
        user_role=membership.role if membership else None,
        created_at=community.created_at,
        updated_at=community.updated_at,
    )


def build_poll_response(poll: Poll, user: User) -> PollResponse:
    voters = content_service.tally(poll)
    user_vote = next((i for i, ids in enumerate(voters) if user.id in ids), None)
    return PollResponse(
        id=poll.id,
        community_id=poll.community_id,
        question=poll.question,
        options=[
            PollOptionResponse(index=i, text=option.text, votes=voters[i], vote_count=len(voters[i]))
            for i, option in enumerate(poll.options)
        ],
        total_votes=len(poll.votes),
        user_vote=user_vote,
        is_closed=poll.is_closed,
        created_by=poll.created_by,
        created_at=poll.created_at,
    )


def build_message_response(message: CommunityMessage) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=message.id,
        community_id=message.community_id,
        sender=message.user_id,
        text=message.message,
        created_at=message.created_at,
    )


# ── Lifecycle ──


@router.post("", response_model=Envelope[CommunityResponse], status_code=201)
async def create_community_endpoint(
    club_id: int,
    body: CreateCommunityRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Propose a community; it waits for a club owner/admin to approve it."""
    club = await get_club_or_404(db, club_id)
    community = await create_community(db, club, user, body.name, body.description)
    await db.commit()
    return {"data": build_community_response(community, user)}


@router.get("", response_model=Envelope[list[CommunityResponse]])
async def list_communities_endpoint(
    club_id: int,
    include_archived: bool = Query(False, alias="includeArchived"),
    status: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    communities = await list_communities(db, club, user, include_archived=include_archived, status=status)
    return {"data": [build_community_response(c, user) for c in communities]}


@router.get("/{community_id}", response_model=Envelope[CommunityResponse])
async def get_community_endpoint(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    community = await get_visible_community(db, club, community_id, user)
    return {"data": build_community_response(community, user)}


@router.patch("/{community_id}/approve", response_model=Envelope[CommunityResponse])
async def approve_community(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    community = await review_community(db, club, community_id, user, approve=True)
    await db.commit()
    return {"data": build_community_response(community, user)}


@router.patch("/{community_id}/reject", response_model=Envelope[CommunityResponse])
async def reject_community(
    club_id: int,
    community_id: int,
    body: RejectCommunityRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    community = await review_community(
        db, club, community_id, user, approve=False, reason=body.reason if body else None
    )
    await db.commit()
    return {"data": build_community_response(community, user)}


@router.patch("/{community_id}", response_model=Envelope[CommunityResponse])
async def update_community_endpoint(
    club_id: int,
    community_id: int,
    body: UpdateCommunityRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    community = await update_community(db, club, community_id, user, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": build_community_response(community, user)}


@router.delete("/{community_id}", response_model=Envelope[CommunityResponse])
async def archive_community_endpoint(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Communities are archived, never hard-deleted."""
    club = await get_club_or_404(db, club_id)
    community = await archive_community(db, club, community_id, user)
    await db.commit()
    return {"data": build_community_response(community, user)}


# ── Membership ──


@router.post("/{community_id}/join", response_model=Envelope[Message], status_code=201)
async def join_community_endpoint(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await join_community(db, club, community_id, user)
    await db.commit()
    return {"data": Message(message="Joined community")}


@router.delete("/{community_id}/leave", response_model=Envelope[Message])
async def leave_community_endpoint(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await leave_community(db, club, community_id, user)
    await db.commit()
    return {"data": Message(message="Left community")}


@router.get("/{community_id}/members", response_model=Envelope[list[CommunityMemberResponse]])
async def community_members(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    rows = await list_community_members(db, club, community_id, user)
    return {
        "data": [
            CommunityMemberResponse(user=PublicUserResponse.model_validate(u), role=cm.role, joined_at=cm.joined_at)
            for cm, u in rows
        ]
    }


# ── Tasks ──


@router.get("/{community_id}/tasks", response_model=Envelope[list[CommunityTaskResponse]])
async def list_tasks(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    tasks = await content_service.list_tasks(db, club, community_id, user)
    return {"data": [CommunityTaskResponse.model_validate(t) for t in tasks]}


@router.post("/{community_id}/tasks", response_model=Envelope[CommunityTaskResponse], status_code=201)
async def create_task(
    club_id: int,
    community_id: int,
    body: CommunityTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    task = await content_service.create_task(db, club, community_id, user, body.title, body.description, body.due_date)
    await db.commit()
    return {"data": CommunityTaskResponse.model_validate(task)}


@router.patch("/{community_id}/tasks/{task_id}", response_model=Envelope[CommunityTaskResponse])
async def update_task(
    club_id: int,
    community_id: int,
    task_id: int,
    body: UpdateCommunityTaskRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    task = await content_service.update_task(
        db, club, community_id, task_id, user, body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return {"data": CommunityTaskResponse.model_validate(task)}


@router.delete("/{community_id}/tasks/{task_id}", response_model=Envelope[Message])
async def delete_task(
    club_id: int,
    community_id: int,
    task_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_task(db, club, community_id, task_id, user)
    await db.commit()
    return {"data": Message(message="Task deleted successfully")}


# ── Chat ──


@router.get("/{community_id}/chat", response_model=Envelope[list[ChatMessageResponse]])
async def list_messages(
    club_id: int,
    community_id: int,
    limit: int = Query(100, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    messages = await content_service.list_messages(db, club, community_id, user, limit)
    return {"data": [build_message_response(m) for m in messages]}


@router.post("/{community_id}/chat", response_model=Envelope[ChatMessageResponse], status_code=201)
async def post_message(
    club_id: int,
    community_id: int,
    body: ChatMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    message = await content_service.post_message(db, club, community_id, user, body.text)
    await db.commit()
    return {"data": build_message_response(message)}


@router.delete("/{community_id}/chat/{message_id}", response_model=Envelope[Message])
async def delete_message(
    club_id: int,
    community_id: int,
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_message(db, club, community_id, message_id, user)
    await db.commit()
    return {"data": Message(message="Message deleted successfully")}


# ── Polls ──


@router.get("/{community_id}/polls", response_model=Envelope[list[PollResponse]])
async def list_polls(
    club_id: int,
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    polls = await content_service.list_polls(db, club, community_id, user)
    return {"data": [build_poll_response(p, user) for p in polls]}


@router.post("/{community_id}/polls", response_model=Envelope[PollResponse], status_code=201)
async def create_poll(
    club_id: int,
    community_id: int,
    body: CreatePollRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    poll = await content_service.create_poll(db, club, community_id, user, body.question, body.options)
    await db.commit()
    return {"data": build_poll_response(poll, user)}


@router.post("/{community_id}/polls/{poll_id}/vote", response_model=Envelope[PollResponse])
async def vote(
    club_id: int,
    community_id: int,
    poll_id: int,
    body: VoteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    poll = await content_service.cast_vote(db, club, community_id, poll_id, user, body.option_index)
    await db.commit()
    return {"data": build_poll_response(poll, user)}


@router.patch("/{community_id}/polls/{poll_id}/close", response_model=Envelope[PollResponse])
async def close_poll(
    club_id: int,
    community_id: int,
    poll_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    poll = await content_service.close_poll(db, club, community_id, poll_id, user)
    await db.commit()
    return {"data": build_poll_response(poll, user)}


@router.delete("/{community_id}/polls/{poll_id}", response_model=Envelope[Message])
async def delete_poll(
    club_id: int,
    community_id: int,
    poll_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_poll(db, club, community_id, poll_id, user)
    await db.commit()
    return {"data": Message(message="Poll deleted successfully")}
