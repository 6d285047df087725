"""Club endpoints: /api/clubs/*.

Club CRUD and listings, join requests and roster, the club log, and the
club's forum, simple goals and knowledge base.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.auth.dependencies import get_current_user
from harambee.auth.schemas import PublicUserResponse
from harambee.clubs import content_service, membership_service
from harambee.clubs.policy import find_membership, is_manager
from harambee.clubs.schemas import (
    ChangeRoleRequest,
    ClubDetailResponse,
    ClubGoalRequest,
    ClubGoalResponse,
    ClubLogResponse,
    ClubMemberResponse,
    ClubResponse,
    CreateClubRequest,
    HandleJoinRequest,
    JoinClubRequest,
    JoinRequestResponse,
    KnowledgeBaseRequest,
    KnowledgeBaseResponse,
    ReplyRequest,
    ReplyResponse,
    TopicRequest,
    TopicResponse,
    UpdateClubGoalRequest,
    UpdateClubRequest,
    UpdateKnowledgeBaseRequest,
    UpdateTopicRequest,
)
from harambee.clubs.service import (
    can_view_club,
    count_pending_join_requests,
    create_club,
    delete_club,
    get_club_logs,
    get_club_members,
    get_club_or_404,
    list_public_clubs,
    list_user_clubs,
    update_club,
)
from harambee.database import get_session
from harambee.db.models import Club, ClubMember, User
from harambee.errors import AuthorizationError
from harambee.schemas import Envelope, Message, Page, paginate, resolve_limit

router = APIRouter(prefix="/api/clubs", tags=["Clubs"])


# ── Helpers ──


def build_club_response(club: Club, membership: ClubMember | None = None) -> ClubResponse:
    return ClubResponse(
        id=club.id,
        name=club.name,
        description=club.description,
        purpose=club.purpose,
        category=club.category,
        status=club.status,
        created_by=club.created_by,
        member_count=len(club.members),
        user_role=membership.role if membership else None,
        joined_at=membership.joined_at if membership else None,
        reviewed_at=club.reviewed_at,
        review_reason=club.review_reason,
        created_at=club.created_at,
        updated_at=club.updated_at,
    )


def build_member_responses(rows: list[tuple[ClubMember, User]]) -> list[ClubMemberResponse]:
    return [
        ClubMemberResponse(user=PublicUserResponse.model_validate(user), role=cm.role, joined_at=cm.joined_at)
        for cm, user in rows
    ]


# ── Listings and CRUD ──


@router.get("/public", response_model=Envelope[Page[ClubResponse]])
async def public_clubs(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    search: str | None = Query(None, max_length=100),
    category: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Approved clubs, newest first."""
    limit = resolve_limit(limit)
    clubs, total = await list_public_clubs(db, page, limit, search=search, category=category)
    items = [build_club_response(c, find_membership(c, user.id)) for c in clubs]
    return {"data": paginate(items, total, page, limit)}


@router.get("/mine", response_model=Envelope[list[ClubResponse]])
async def my_clubs(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    rows = await list_user_clubs(db, user.id)
    return {"data": [build_club_response(club, cm) for club, cm in rows]}


@router.post("", response_model=Envelope[ClubResponse], status_code=201)
async def create_club_endpoint(
    body: CreateClubRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    """Request a new club. It stays pending until a system admin reviews it."""
    club = await create_club(db, user, body.name, body.description, body.purpose, body.category)
    await db.commit()
    return {"data": build_club_response(club, find_membership(club, user.id))}


@router.get("/{club_id}", response_model=Envelope[ClubDetailResponse])
async def get_club_endpoint(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    if not can_view_club(club, user):
        raise AuthorizationError("You do not have access to this club", code="not_a_member")

    membership = find_membership(club, user.id)
    detail = ClubDetailResponse(
        **build_club_response(club, membership).model_dump(),
        members=build_member_responses(await get_club_members(db, club.id)) if membership or user.role == "admin" else [],
        pending_requests=await count_pending_join_requests(db, club.id) if is_manager(club, user) else None,
    )
    return {"data": detail}


@router.put("/{club_id}", response_model=Envelope[ClubResponse])
async def update_club_endpoint(
    club_id: int,
    body: UpdateClubRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    club = await update_club(db, club, user, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": build_club_response(club, find_membership(club, user.id))}


@router.delete("/{club_id}", response_model=Envelope[Message])
async def delete_club_endpoint(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await delete_club(db, club, user)
    await db.commit()
    return {"data": Message(message="Club deleted")}


# ── Join requests and roster ──


@router.post("/{club_id}/join", response_model=Envelope[JoinRequestResponse], status_code=201)
async def join_club(
    club_id: int,
    body: JoinClubRequest | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    join_request = await membership_service.request_join(db, club, user, body.message if body else None)
    await db.commit()
    return {"data": JoinRequestResponse.model_validate(join_request)}


@router.get("/{club_id}/join-requests", response_model=Envelope[list[JoinRequestResponse]])
async def join_requests(
    club_id: int,
    status: str | None = Query("pending"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    rows = await membership_service.list_join_requests(db, club, user, status=status)
    data = []
    for jr, requester in rows:
        item = JoinRequestResponse.model_validate(jr)
        item.user = PublicUserResponse.model_validate(requester)
        data.append(item)
    return {"data": data}


@router.post("/{club_id}/join-requests/{request_id}", response_model=Envelope[JoinRequestResponse])
async def handle_join_request(
    club_id: int,
    request_id: int,
    body: HandleJoinRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    join_request = await membership_service.handle_join_request(db, club, user, request_id, body.action)
    await db.commit()
    return {"data": JoinRequestResponse.model_validate(join_request)}


@router.delete("/{club_id}/leave", response_model=Envelope[Message])
async def leave_club(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await membership_service.leave_club(db, club, user)
    await db.commit()
    return {"data": Message(message="You have left the club")}


@router.get("/{club_id}/members", response_model=Envelope[list[ClubMemberResponse]])
async def club_members(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    rows = await membership_service.list_members(db, club, user)
    return {"data": build_member_responses(rows)}


@router.put("/{club_id}/members/{member_user_id}/role", response_model=Envelope[Message])
async def change_member_role(
    club_id: int,
    member_user_id: int,
    body: ChangeRoleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    member = await membership_service.change_member_role(db, club, user, member_user_id, body.role)
    await db.commit()
    return {"data": Message(message=f"Member role updated to {member.role}")}


@router.delete("/{club_id}/members/{member_user_id}", response_model=Envelope[Message])
async def remove_member(
    club_id: int,
    member_user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await membership_service.remove_member(db, club, user, member_user_id)
    await db.commit()
    return {"data": Message(message="Member removed")}


@router.get("/{club_id}/logs", response_model=Envelope[Page[ClubLogResponse]])
async def club_logs(
    club_id: int,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    limit = resolve_limit(limit, default=20)
    club = await get_club_or_404(db, club_id)
    logs, total = await get_club_logs(db, club, user, page, limit)
    return {"data": paginate([ClubLogResponse.model_validate(entry) for entry in logs], total, page, limit)}


# ── Forum ──


@router.get("/{club_id}/topics", response_model=Envelope[list[TopicResponse]])
async def list_topics(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    rows = await content_service.list_topics(db, club, user)
    data = []
    for topic, replies in rows:
        item = TopicResponse.model_validate(topic)
        item.reply_count = replies
        data.append(item)
    return {"data": data}


@router.post("/{club_id}/topics", response_model=Envelope[TopicResponse], status_code=201)
async def create_topic(
    club_id: int,
    body: TopicRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    topic = await content_service.create_topic(db, club, user, body.title, body.content)
    await db.commit()
    return {"data": TopicResponse.model_validate(topic)}


@router.get("/{club_id}/topics/{topic_id}", response_model=Envelope[TopicResponse])
async def get_topic(
    club_id: int,
    topic_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    topic = await content_service.get_topic(db, club, user, topic_id)
    return {"data": TopicResponse.model_validate(topic)}


@router.put("/{club_id}/topics/{topic_id}", response_model=Envelope[TopicResponse])
async def update_topic(
    club_id: int,
    topic_id: int,
    body: UpdateTopicRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    topic = await content_service.update_topic(db, club, user, topic_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": TopicResponse.model_validate(topic)}


@router.delete("/{club_id}/topics/{topic_id}", response_model=Envelope[Message])
async def delete_topic(
    club_id: int,
    topic_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_topic(db, club, user, topic_id)
    await db.commit()
    return {"data": Message(message="Topic deleted")}


@router.get("/{club_id}/topics/{topic_id}/replies", response_model=Envelope[list[ReplyResponse]])
async def list_replies(
    club_id: int,
    topic_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    replies = await content_service.list_replies(db, club, user, topic_id)
    return {"data": [ReplyResponse.model_validate(r) for r in replies]}


@router.post("/{club_id}/topics/{topic_id}/replies", response_model=Envelope[ReplyResponse], status_code=201)
async def add_reply(
    club_id: int,
    topic_id: int,
    body: ReplyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    reply = await content_service.add_reply(db, club, user, topic_id, body.content)
    await db.commit()
    return {"data": ReplyResponse.model_validate(reply)}


@router.delete("/{club_id}/topics/{topic_id}/replies/{reply_id}", response_model=Envelope[Message])
async def delete_reply(
    club_id: int,
    topic_id: int,
    reply_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_reply(db, club, user, topic_id, reply_id)
    await db.commit()
    return {"data": Message(message="Reply deleted")}


# ── Club goals ──


@router.get("/{club_id}/goals", response_model=Envelope[list[ClubGoalResponse]])
async def list_goals(
    club_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    goals = await content_service.list_goals(db, club, user)
    return {"data": [ClubGoalResponse.model_validate(g) for g in goals]}


@router.post("/{club_id}/goals", response_model=Envelope[ClubGoalResponse], status_code=201)
async def create_goal(
    club_id: int,
    body: ClubGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    goal = await content_service.create_goal(db, club, user, body.title, body.description, body.target_date)
    await db.commit()
    return {"data": ClubGoalResponse.model_validate(goal)}


@router.put("/{club_id}/goals/{goal_id}", response_model=Envelope[ClubGoalResponse])
async def update_goal(
    club_id: int,
    goal_id: int,
    body: UpdateClubGoalRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    goal = await content_service.update_goal(db, club, user, goal_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": ClubGoalResponse.model_validate(goal)}


@router.delete("/{club_id}/goals/{goal_id}", response_model=Envelope[Message])
async def delete_goal(
    club_id: int,
    goal_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_goal(db, club, user, goal_id)
    await db.commit()
    return {"data": Message(message="Goal deleted")}


# ── Knowledge base ──


@router.get("/{club_id}/knowledge-base", response_model=Envelope[list[KnowledgeBaseResponse]])
async def list_entries(
    club_id: int,
    search: str | None = Query(None, max_length=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    entries = await content_service.list_entries(db, club, user, search)
    return {"data": [KnowledgeBaseResponse.model_validate(e) for e in entries]}


@router.post("/{club_id}/knowledge-base", response_model=Envelope[KnowledgeBaseResponse], status_code=201)
async def create_entry(
    club_id: int,
    body: KnowledgeBaseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    entry = await content_service.create_entry(db, club, user, body.title, body.content, body.tags)
    await db.commit()
    return {"data": KnowledgeBaseResponse.model_validate(entry)}


@router.put("/{club_id}/knowledge-base/{entry_id}", response_model=Envelope[KnowledgeBaseResponse])
async def update_entry(
    club_id: int,
    entry_id: int,
    body: UpdateKnowledgeBaseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    entry = await content_service.update_entry(db, club, user, entry_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return {"data": KnowledgeBaseResponse.model_validate(entry)}


@router.delete("/{club_id}/knowledge-base/{entry_id}", response_model=Envelope[Message])
async def delete_entry(
    club_id: int,
    entry_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> dict:
    club = await get_club_or_404(db, club_id)
    await content_service.delete_entry(db, club, user, entry_id)
    await db.commit()
    return {"data": Message(message="Knowledge base entry deleted")}
