"""Network dashboard counters for a classroom."""

from __future__ import annotations

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.competition.challenge_service import count_active_joined
from gardennet.competition.leaderboard_service import get_network_rank
from gardennet.social.connection_service import list_connections, list_pending
from gardennet.social.profile_service import get_profile


async def get_network_summary(
    db: AsyncSession, classroom_id: str, redis: Redis | None = None,
) -> dict:
    """Connection, request, challenge and rank counters.

    A classroom that is not on the network gets zeroed counters rather than
    an error.
    """
    profile = await get_profile(db, classroom_id)
    if profile is None or not profile.is_network_enabled:
        return {
            "is_network_enabled": False,
            "connection_count": 0,
            "pending_requests": 0,
            "active_challenges": 0,
            "network_rank": None,
        }

    connections = await list_connections(db, classroom_id)
    pending = await list_pending(db, classroom_id)
    active = await count_active_joined(db, classroom_id)
    rank = await get_network_rank(db, classroom_id, redis)

    return {
        "is_network_enabled": True,
        "connection_count": len(connections),
        "pending_requests": len(pending.incoming),
        "active_challenges": active,
        "network_rank": rank,
    }
