"""Classroom discovery with visibility enforcement.

Only enabled profiles with public or network_only visibility are ever
returned. invite_only classrooms are addressable by id (a shared code) but
never discoverable.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.classrooms.service import ClassroomRef, get_classrooms_batch
from gardennet.config import get_settings
from gardennet.db.enums import ConnectionStatus, SchoolType, Visibility
from gardennet.db.models import ClassroomProfile
from gardennet.social.connection_service import connected_peer_ids, connection_statuses_for


@dataclass(frozen=True)
class DiscoveryFilters:
    region: str | None = None
    grade_level: str | None = None
    school_type: SchoolType | None = None
    search: str | None = None
    exclude_connected: bool = False


@dataclass
class DiscoveredClassroom:
    profile: ClassroomProfile
    classroom: ClassroomRef | None
    connection_status: ConnectionStatus | None = None


def is_discoverable(visibility: Visibility) -> bool:
    """Whether a profile with this visibility may appear in discovery results."""
    match visibility:
        case Visibility.PUBLIC | Visibility.NETWORK_ONLY:
            return True
        case Visibility.INVITE_ONLY:
            return False


DISCOVERABLE_VISIBILITY = [v for v in Visibility if is_discoverable(v)]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def discover(
    db: AsyncSession,
    current_classroom_id: str,
    filters: DiscoveryFilters | None = None,
) -> list[DiscoveredClassroom]:
    """Classrooms visible to current_classroom_id, capped at the discovery page size."""
    filters = filters or DiscoveryFilters()
    page_size = get_settings().discovery_page_size

    stmt = select(ClassroomProfile).where(
        ClassroomProfile.is_network_enabled.is_(True),
        ClassroomProfile.visibility.in_(DISCOVERABLE_VISIBILITY),
        ClassroomProfile.classroom_id != current_classroom_id,
    )

    if filters.region:
        stmt = stmt.where(ClassroomProfile.region == filters.region)
    if filters.grade_level:
        stmt = stmt.where(ClassroomProfile.grade_level == filters.grade_level)
    if filters.school_type:
        stmt = stmt.where(ClassroomProfile.school_type == filters.school_type)

    term = (filters.search or "").strip()
    if term:
        pattern = f"%{_escape_like(term.lower())}%"
        stmt = stmt.where(
            or_(
                func.lower(ClassroomProfile.display_name).like(pattern, escape="\\"),
                func.lower(func.coalesce(ClassroomProfile.bio, "")).like(pattern, escape="\\"),
            )
        )

    excluded: set[str] = set()
    if filters.exclude_connected:
        excluded = await connected_peer_ids(db, current_classroom_id)
        if excluded:
            stmt = stmt.where(ClassroomProfile.classroom_id.not_in(list(excluded)))

    stmt = stmt.order_by(ClassroomProfile.display_name.asc()).limit(page_size)
    result = await db.execute(stmt)
    profiles = list(result.scalars().all())
    if not profiles:
        return []

    ids = [p.classroom_id for p in profiles]
    classrooms = await get_classrooms_batch(db, ids)
    statuses = await connection_statuses_for(db, current_classroom_id, ids)

    return [
        DiscoveredClassroom(
            profile=p,
            classroom=classrooms.get(p.classroom_id),
            connection_status=statuses.get(p.classroom_id),
        )
        for p in profiles
    ]
