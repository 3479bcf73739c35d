"""Challenge registry: platform challenges and classroom participation.

Rules:
- Challenges are created, deactivated and closed by platform operators only
- Joining is idempotent (INSERT ... ON CONFLICT DO NOTHING) and not gated by end_date
- Leaving is a hard delete, refused once end_date has passed or the challenge is inactive
- Closing freezes final scores and ranks, then deactivates the challenge
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.classrooms.service import get_classrooms_batch, harvest_totals_by_teacher
from gardennet.db.enums import ChallengeType
from gardennet.db.models import ChallengeParticipation, NetworkChallenge
from gardennet.errors import (
    ChallengeClosedError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _insert_ignore_participation(db: AsyncSession, classroom_id: str, challenge_id: str):
    """Dialect-specific INSERT ... ON CONFLICT DO NOTHING for a participation row."""
    dialect = db.get_bind().dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
    return (
        insert(ChallengeParticipation)
        .values(
            classroom_id=classroom_id,
            challenge_id=challenge_id,
            joined_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(index_elements=["classroom_id", "challenge_id"])
    )


async def get_challenge(db: AsyncSession, challenge_id: str) -> NetworkChallenge | None:
    """Get a challenge by ID."""
    result = await db.execute(
        select(NetworkChallenge).where(NetworkChallenge.id == challenge_id)
    )
    return result.scalar_one_or_none()


async def _require_challenge(db: AsyncSession, challenge_id: str) -> NetworkChallenge:
    challenge = await get_challenge(db, challenge_id)
    if challenge is None:
        raise NotFoundError("Challenge not found")
    return challenge


async def list_active(db: AsyncSession, as_of: date | None = None) -> list[NetworkChallenge]:
    """Active challenges that have not ended as of the given date."""
    as_of = as_of or _today()
    result = await db.execute(
        select(NetworkChallenge)
        .where(
            NetworkChallenge.is_active.is_(True),
            NetworkChallenge.end_date >= as_of,
        )
        .order_by(NetworkChallenge.end_date.asc(), NetworkChallenge.title.asc())
    )
    return list(result.scalars().all())


async def join_challenge(
    db: AsyncSession, classroom_id: str, challenge_id: str,
) -> ChallengeParticipation:
    """Join a challenge. Joining twice is a no-op that returns the existing row."""
    challenge = await _require_challenge(db, challenge_id)
    if not challenge.is_active:
        raise ChallengeClosedError("This challenge is no longer active")

    result = await db.execute(_insert_ignore_participation(db, classroom_id, challenge_id))
    participation = await my_participation(db, classroom_id, challenge_id)
    if result.rowcount:
        logger.info("Classroom %s joined challenge %s", classroom_id, challenge_id)
    return participation


async def leave_challenge(db: AsyncSession, classroom_id: str, challenge_id: str) -> None:
    """Leave a challenge that is still open."""
    challenge = await _require_challenge(db, challenge_id)
    if not challenge.is_active or challenge.end_date < _today():
        raise ChallengeClosedError("This challenge has ended; results are final")

    result = await db.execute(
        delete(ChallengeParticipation).where(
            ChallengeParticipation.classroom_id == classroom_id,
            ChallengeParticipation.challenge_id == challenge_id,
        )
    )
    if not result.rowcount:
        raise InvalidStateTransition("Your classroom has not joined this challenge")
    logger.info("Classroom %s left challenge %s", classroom_id, challenge_id)


async def participation_count(db: AsyncSession, challenge_id: str) -> int:
    """Number of classrooms participating in a challenge."""
    result = await db.execute(
        select(func.count(ChallengeParticipation.id)).where(
            ChallengeParticipation.challenge_id == challenge_id
        )
    )
    return int(result.scalar_one() or 0)


async def participation_counts(
    db: AsyncSession, challenge_ids: list[str],
) -> dict[str, int]:
    """Participant counts for many challenges in one query."""
    if not challenge_ids:
        return {}
    result = await db.execute(
        select(ChallengeParticipation.challenge_id, func.count(ChallengeParticipation.id).label("cnt"))
        .where(ChallengeParticipation.challenge_id.in_(challenge_ids))
        .group_by(ChallengeParticipation.challenge_id)
    )
    return {row.challenge_id: int(row.cnt) for row in result}


async def my_participation(
    db: AsyncSession, classroom_id: str, challenge_id: str,
) -> ChallengeParticipation | None:
    """The classroom's participation row for a challenge, if any."""
    result = await db.execute(
        select(ChallengeParticipation).where(
            ChallengeParticipation.classroom_id == classroom_id,
            ChallengeParticipation.challenge_id == challenge_id,
        )
    )
    return result.scalar_one_or_none()


async def list_my_challenges(
    db: AsyncSession, classroom_id: str,
) -> list[tuple[NetworkChallenge, ChallengeParticipation]]:
    """Challenges the classroom has joined, newest end date first."""
    result = await db.execute(
        select(NetworkChallenge, ChallengeParticipation)
        .join(ChallengeParticipation, ChallengeParticipation.challenge_id == NetworkChallenge.id)
        .where(ChallengeParticipation.classroom_id == classroom_id)
        .order_by(NetworkChallenge.end_date.desc())
    )
    return [(row.NetworkChallenge, row.ChallengeParticipation) for row in result]


async def count_active_joined(db: AsyncSession, classroom_id: str, as_of: date | None = None) -> int:
    """How many currently active challenges the classroom has joined."""
    as_of = as_of or _today()
    result = await db.execute(
        select(func.count(ChallengeParticipation.id))
        .join(NetworkChallenge, ChallengeParticipation.challenge_id == NetworkChallenge.id)
        .where(
            ChallengeParticipation.classroom_id == classroom_id,
            NetworkChallenge.is_active.is_(True),
            NetworkChallenge.end_date >= as_of,
        )
    )
    return int(result.scalar_one() or 0)


# ── Operator actions ──


async def create_challenge(
    db: AsyncSession,
    title: str,
    challenge_type: ChallengeType | str,
    start_date: date,
    end_date: date,
    description: str = "",
    goal_description: str | None = None,
    rewards: list[str] | None = None,
) -> NetworkChallenge:
    """Create a new active challenge."""
    try:
        challenge_type = ChallengeType(challenge_type)
    except ValueError as e:
        raise ValidationError("challenge_type", f"Invalid challenge type: {challenge_type!r}") from e
    if end_date < start_date:
        raise ValidationError("end_date", "End date must not be before start date")

    challenge = NetworkChallenge(
        title=title,
        description=description,
        challenge_type=challenge_type,
        start_date=start_date,
        end_date=end_date,
        goal_description=goal_description,
        rewards=list(rewards or []),
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db.add(challenge)
    await db.flush()
    logger.info("Challenge created: %s (id=%s, %s..%s)", title, challenge.id, start_date, end_date)
    return challenge


async def deactivate_challenge(db: AsyncSession, challenge_id: str) -> NetworkChallenge:
    """Hide a challenge from the active list without scoring it."""
    challenge = await _require_challenge(db, challenge_id)
    challenge.is_active = False
    await db.flush()
    logger.info("Challenge %s deactivated", challenge_id)
    return challenge


async def close_challenge(db: AsyncSession, challenge_id: str) -> list[ChallengeParticipation]:
    """Score every participant, freeze ranks, and deactivate the challenge.

    Harvest challenges score each classroom by the grams its owning teacher
    logged between start_date and end_date (inclusive). Other challenge types
    have no automatic metric: participants score 0 and rank by join order.
    Returns participations in rank order.
    """
    challenge = await _require_challenge(db, challenge_id)
    if challenge.closed_at is not None:
        raise ChallengeClosedError("This challenge has already been closed")

    result = await db.execute(
        select(ChallengeParticipation)
        .where(ChallengeParticipation.challenge_id == challenge_id)
        .order_by(ChallengeParticipation.joined_at.asc())
    )
    participants = list(result.scalars().all())

    scores: dict[str, float] = {p.classroom_id: 0.0 for p in participants}
    if challenge.challenge_type is ChallengeType.HARVEST and participants:
        classrooms = await get_classrooms_batch(db, list(scores))
        teacher_ids = {c.teacher_id for c in classrooms.values()}
        window_start = datetime.combine(challenge.start_date, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(challenge.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        totals = await harvest_totals_by_teacher(db, teacher_ids, since=window_start, until=window_end)
        for classroom_id, ref in classrooms.items():
            t = totals.get(ref.teacher_id)
            scores[classroom_id] = t.total_weight_grams if t else 0.0

    ranked = sorted(participants, key=lambda p: scores[p.classroom_id], reverse=True)
    for position, participation in enumerate(ranked, start=1):
        participation.final_score = scores[participation.classroom_id]
        participation.rank = position

    challenge.is_active = False
    challenge.closed_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Challenge %s closed with %d participants", challenge_id, len(ranked))
    return ranked
