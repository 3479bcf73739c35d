"""Challenge and leaderboard endpoints: 9 routes.

Challenges (5), Operator (3), Leaderboard (1).
"""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.auth.dependencies import ActorContext, get_actor, require_operator
from gardennet.competition.challenge_service import (
    close_challenge,
    create_challenge,
    deactivate_challenge,
    get_challenge,
    join_challenge,
    leave_challenge,
    list_active,
    list_my_challenges,
    my_participation,
    participation_count,
    participation_counts,
)
from gardennet.competition.leaderboard_service import LeaderboardFilters, get_leaderboard
from gardennet.competition.schemas import (
    ChallengeListResponse,
    ChallengeResponse,
    ChallengeResultsResponse,
    CreateChallengeRequest,
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ParticipationResponse,
)
from gardennet.database import get_session
from gardennet.db.models import ChallengeParticipation, NetworkChallenge
from gardennet.errors import NotFoundError
from gardennet.redis_client import get_redis_or_none

router = APIRouter(prefix="/api/v1/network", tags=["Challenges"])


# ── Helpers ──


def _build_participation(p: ChallengeParticipation) -> ParticipationResponse:
    return ParticipationResponse(
        classroom_id=p.classroom_id,
        challenge_id=p.challenge_id,
        joined_at=p.joined_at,
        final_score=p.final_score,
        rank=p.rank,
    )


def _build_challenge_response(
    challenge: NetworkChallenge,
    count: int = 0,
    participation: ChallengeParticipation | None = None,
) -> ChallengeResponse:
    return ChallengeResponse(
        id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        challenge_type=challenge.challenge_type,
        start_date=challenge.start_date,
        end_date=challenge.end_date,
        goal_description=challenge.goal_description,
        rewards=list(challenge.rewards or []),
        is_active=challenge.is_active,
        participant_count=count,
        my_participation=_build_participation(participation) if participation else None,
    )


# ── Challenges (5) ──


@router.get("/challenges", response_model=ChallengeListResponse)
async def list_active_challenges_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Active challenges, with participant counts and the classroom's own entry."""
    challenges = await list_active(db)
    counts = await participation_counts(db, [c.id for c in challenges])
    mine = {p.challenge_id: p for _, p in await list_my_challenges(db, actor.classroom_id)}
    return ChallengeListResponse(
        challenges=[
            _build_challenge_response(c, counts.get(c.id, 0), mine.get(c.id))
            for c in challenges
        ],
        total=len(challenges),
    )


@router.get("/challenges/mine", response_model=ChallengeListResponse)
async def list_my_challenges_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Challenges the acting classroom has joined, including finished ones."""
    joined = await list_my_challenges(db, actor.classroom_id)
    counts = await participation_counts(db, [c.id for c, _ in joined])
    return ChallengeListResponse(
        challenges=[_build_challenge_response(c, counts.get(c.id, 0), p) for c, p in joined],
        total=len(joined),
    )


@router.get("/challenges/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge_endpoint(
    challenge_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Challenge detail."""
    challenge = await get_challenge(db, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge not found")
    count = await participation_count(db, challenge_id)
    participation = await my_participation(db, actor.classroom_id, challenge_id)
    return _build_challenge_response(challenge, count, participation)


@router.post("/challenges/{challenge_id}/join", response_model=ChallengeResponse)
async def join_challenge_endpoint(
    challenge_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Join a challenge. Safe to retry."""
    participation = await join_challenge(db, actor.classroom_id, challenge_id)
    await db.commit()
    challenge = await get_challenge(db, challenge_id)
    count = await participation_count(db, challenge_id)
    return _build_challenge_response(challenge, count, participation)


@router.post("/challenges/{challenge_id}/leave", response_model=ChallengeResponse)
async def leave_challenge_endpoint(
    challenge_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Leave a challenge that has not ended."""
    await leave_challenge(db, actor.classroom_id, challenge_id)
    await db.commit()
    challenge = await get_challenge(db, challenge_id)
    count = await participation_count(db, challenge_id)
    return _build_challenge_response(challenge, count)


# ── Operator (3) ──


@router.post(
    "/admin/challenges",
    response_model=ChallengeResponse,
    status_code=201,
    dependencies=[Depends(require_operator)],
)
async def create_challenge_endpoint(
    body: CreateChallengeRequest,
    db: AsyncSession = Depends(get_session),
):
    """Create a platform challenge."""
    challenge = await create_challenge(
        db,
        title=body.title,
        challenge_type=body.challenge_type,
        start_date=body.start_date,
        end_date=body.end_date,
        description=body.description,
        goal_description=body.goal_description,
        rewards=body.rewards,
    )
    await db.commit()
    return _build_challenge_response(challenge)


@router.post(
    "/admin/challenges/{challenge_id}/deactivate",
    response_model=ChallengeResponse,
    dependencies=[Depends(require_operator)],
)
async def deactivate_challenge_endpoint(
    challenge_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Hide a challenge from the active list."""
    challenge = await deactivate_challenge(db, challenge_id)
    await db.commit()
    count = await participation_count(db, challenge_id)
    return _build_challenge_response(challenge, count)


@router.post(
    "/admin/challenges/{challenge_id}/close",
    response_model=ChallengeResultsResponse,
    dependencies=[Depends(require_operator)],
)
async def close_challenge_endpoint(
    challenge_id: str,
    db: AsyncSession = Depends(get_session),
):
    """Score participants, freeze ranks and close the challenge."""
    ranked = await close_challenge(db, challenge_id)
    await db.commit()
    challenge = await get_challenge(db, challenge_id)
    return ChallengeResultsResponse(
        challenge=_build_challenge_response(challenge, len(ranked)),
        results=[_build_participation(p) for p in ranked],
    )


# ── Leaderboard (1) ──


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard_endpoint(
    connected_only: bool = Query(False),
    region: str | None = Query(None),
    grade_level: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Harvest leaderboard across network classrooms sharing harvest data."""
    filters = LeaderboardFilters(
        connected_only=connected_only,
        region=region,
        grade_level=grade_level,
        limit=limit,
    )
    entries = await get_leaderboard(db, actor.classroom_id, filters, get_redis_or_none())
    return LeaderboardResponse(
        entries=[
            LeaderboardEntryResponse(
                **asdict(e),
                is_current_classroom=e.classroom_id == actor.classroom_id,
            )
            for e in entries
        ],
        total=len(entries),
    )
