"""Harvest leaderboard: ranked standings across network classrooms.

Join rule: classroom -> owning teacher -> harvest totals. Harvest weight,
plant count and tower count are summed per teacher, so two classrooms run by
the same teacher show the same figures. Per-teacher aggregates are fetched
with grouped queries and may be cached briefly in Redis; standings tolerate
that staleness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.classrooms.service import (
    get_classrooms_batch,
    harvest_totals_by_teacher,
    tower_counts_by_teacher,
)
from gardennet.config import get_settings
from gardennet.db.models import ClassroomProfile
from gardennet.social.connection_service import connected_peer_ids

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardFilters:
    connected_only: bool = False
    region: str | None = None
    grade_level: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class TeacherStats:
    total_harvest_weight: float = 0.0
    total_harvest_plants: int = 0
    tower_count: int = 0


@dataclass
class LeaderboardEntry:
    rank: int
    classroom_id: str
    display_name: str
    total_harvest_weight: float
    total_harvest_plants: int
    tower_count: int
    region: str | None
    grade_level: str | None
    is_connected: bool


def build_teacher_stats_key(teacher_id: str) -> str:
    """Redis hash key for a teacher's cached harvest aggregates."""
    return f"leaderboard:teacher:{teacher_id}"


async def _query_teacher_stats(
    db: AsyncSession, teacher_ids: set[str],
) -> dict[str, TeacherStats]:
    harvests = await harvest_totals_by_teacher(db, teacher_ids)
    towers = await tower_counts_by_teacher(db, teacher_ids)
    stats = {}
    for tid in teacher_ids:
        h = harvests.get(tid)
        stats[tid] = TeacherStats(
            total_harvest_weight=h.total_weight_grams if h else 0.0,
            total_harvest_plants=h.total_plant_count if h else 0,
            tower_count=towers.get(tid, 0),
        )
    return stats


async def load_teacher_stats(
    db: AsyncSession,
    teacher_ids: set[str],
    redis: Redis | None = None,
) -> dict[str, TeacherStats]:
    """Per-teacher aggregates, served from Redis where cached."""
    if not teacher_ids:
        return {}
    if redis is None:
        return await _query_teacher_stats(db, teacher_ids)

    ordered = sorted(teacher_ids)
    stats: dict[str, TeacherStats] = {}
    try:
        pipe = redis.pipeline()
        for tid in ordered:
            pipe.hgetall(build_teacher_stats_key(tid))
        cached = await pipe.execute()
    except RedisError:
        logger.warning("Leaderboard cache unavailable, querying harvest ledger directly", exc_info=True)
        return await _query_teacher_stats(db, teacher_ids)

    for tid, data in zip(ordered, cached):
        if data:
            stats[tid] = TeacherStats(
                total_harvest_weight=float(data.get("weight", 0)),
                total_harvest_plants=int(data.get("plants", 0)),
                tower_count=int(data.get("towers", 0)),
            )

    missing = teacher_ids - stats.keys()
    if missing:
        fresh = await _query_teacher_stats(db, missing)
        stats.update(fresh)
        ttl = get_settings().leaderboard_cache_ttl_seconds
        try:
            pipe = redis.pipeline()
            for tid, s in fresh.items():
                key = build_teacher_stats_key(tid)
                pipe.hset(key, mapping={
                    "weight": s.total_harvest_weight,
                    "plants": s.total_harvest_plants,
                    "towers": s.tower_count,
                })
                pipe.expire(key, ttl)
            await pipe.execute()
        except RedisError:
            logger.warning("Failed to populate leaderboard cache", exc_info=True)

    return stats


def _clamp_limit(limit: int | None) -> int:
    settings = get_settings()
    if limit is None or limit <= 0:
        return settings.leaderboard_default_limit
    return min(limit, settings.leaderboard_max_limit)


async def _ranked_entries(
    db: AsyncSession,
    classroom_id: str,
    filters: LeaderboardFilters,
    redis: Redis | None,
) -> list[LeaderboardEntry]:
    """Every eligible classroom in rank order, without the page limit."""
    stmt = select(ClassroomProfile).where(
        ClassroomProfile.is_network_enabled.is_(True),
        ClassroomProfile.share_harvest_data.is_(True),
    )
    if filters.region:
        stmt = stmt.where(ClassroomProfile.region == filters.region)
    if filters.grade_level:
        stmt = stmt.where(ClassroomProfile.grade_level == filters.grade_level)
    result = await db.execute(stmt.order_by(ClassroomProfile.created_at.asc()))
    candidates = list(result.scalars().all())

    peers = await connected_peer_ids(db, classroom_id)
    if filters.connected_only:
        candidates = [p for p in candidates if p.classroom_id in peers]
    if not candidates:
        return []

    classrooms = await get_classrooms_batch(db, [p.classroom_id for p in candidates])
    teacher_ids = {c.teacher_id for c in classrooms.values()}
    stats = await load_teacher_stats(db, teacher_ids, redis)

    rows: list[tuple[ClassroomProfile, TeacherStats]] = []
    for profile in candidates:
        ref = classrooms.get(profile.classroom_id)
        if ref is None:
            continue
        rows.append((profile, stats.get(ref.teacher_id, TeacherStats())))

    # Stable sort: ties keep query order.
    rows.sort(key=lambda r: r[1].total_harvest_weight, reverse=True)

    return [
        LeaderboardEntry(
            rank=position,
            classroom_id=profile.classroom_id,
            display_name=profile.display_name or classrooms[profile.classroom_id].name,
            total_harvest_weight=s.total_harvest_weight,
            total_harvest_plants=s.total_harvest_plants,
            tower_count=s.tower_count,
            region=profile.region,
            grade_level=profile.grade_level,
            is_connected=profile.classroom_id in peers,
        )
        for position, (profile, s) in enumerate(rows, start=1)
    ]


async def get_leaderboard(
    db: AsyncSession,
    classroom_id: str,
    filters: LeaderboardFilters | None = None,
    redis: Redis | None = None,
) -> list[LeaderboardEntry]:
    """Rank network classrooms that share harvest data, heaviest harvest first."""
    filters = filters or LeaderboardFilters()
    entries = await _ranked_entries(db, classroom_id, filters, redis)
    return entries[:_clamp_limit(filters.limit)]


async def get_network_rank(
    db: AsyncSession, classroom_id: str, redis: Redis | None = None,
) -> int | None:
    """The classroom's position on the global leaderboard, or None if not listed.

    The rank is taken from the full standings, so classrooms below the
    leaderboard page cap still get a position.
    """
    entries = await _ranked_entries(db, classroom_id, LeaderboardFilters(), redis)
    for entry in entries:
        if entry.classroom_id == classroom_id:
            return entry.rank
    return None
