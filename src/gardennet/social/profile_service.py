"""Network profile store.

Rules:
- One profile per classroom, written only by the owning classroom
- Enabled profiles need a display name (<= 100 chars); bio is optional (<= 500 chars)
- Profiles are disabled, never deleted, so connection history survives
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.classrooms.service import get_classroom
from gardennet.config import get_settings
from gardennet.db.enums import SchoolType, Visibility
from gardennet.db.models import ClassroomProfile
from gardennet.errors import InvalidStateTransition, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def validate_profile_fields(
    is_network_enabled: bool,
    display_name: str | None,
    bio: str | None,
) -> str | None:
    """Check display name and bio. Returns the normalized display name.

    Raises ValidationError naming the offending field.
    """
    settings = get_settings()
    name = display_name.strip() if display_name is not None else None

    if is_network_enabled and not name:
        raise ValidationError("display_name", "Display name is required to join the network")
    if name and len(name) > settings.display_name_max_length:
        raise ValidationError(
            "display_name",
            f"Display name must be at most {settings.display_name_max_length} characters",
        )
    if bio is not None and len(bio) > settings.bio_max_length:
        raise ValidationError("bio", f"Bio must be at most {settings.bio_max_length} characters")

    return name or None


def _coerce_enum(enum_cls, value, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"Invalid {field}: {value!r} (expected one of {allowed})") from e


async def get_profile(db: AsyncSession, classroom_id: str) -> ClassroomProfile | None:
    """Get a classroom's network profile (enabled or not)."""
    result = await db.execute(
        select(ClassroomProfile).where(ClassroomProfile.classroom_id == classroom_id)
    )
    return result.scalar_one_or_none()


async def get_profiles_batch(
    db: AsyncSession, classroom_ids: list[str] | set[str],
) -> dict[str, ClassroomProfile]:
    """Batch-load profiles keyed by classroom id."""
    if not classroom_ids:
        return {}
    result = await db.execute(
        select(ClassroomProfile).where(ClassroomProfile.classroom_id.in_(list(classroom_ids)))
    )
    return {p.classroom_id: p for p in result.scalars()}


async def upsert_profile(
    db: AsyncSession,
    actor_classroom_id: str,
    classroom_id: str,
    *,
    is_network_enabled: bool,
    visibility: Visibility | str = Visibility.PUBLIC,
    display_name: str | None = None,
    bio: str | None = None,
    region: str | None = None,
    grade_level: str | None = None,
    school_type: SchoolType | str | None = None,
    share_harvest_data: bool = True,
    share_photos: bool = False,
    share_growth_tips: bool = True,
) -> ClassroomProfile:
    """Create or replace the classroom's network profile.

    Validation runs before anything is written, so a rejected upsert leaves
    the stored profile untouched.
    """
    if actor_classroom_id != classroom_id:
        raise InvalidStateTransition("Only the owning classroom can edit its network profile")

    name = validate_profile_fields(is_network_enabled, display_name, bio)
    visibility = _coerce_enum(Visibility, visibility, "visibility")
    school_type = _coerce_enum(SchoolType, school_type, "school_type")

    if await get_classroom(db, classroom_id) is None:
        raise NotFoundError("Classroom not found")

    now = datetime.now(timezone.utc)
    profile = await get_profile(db, classroom_id)
    created = profile is None
    if profile is None:
        profile = ClassroomProfile(classroom_id=classroom_id, created_at=now)
        db.add(profile)

    profile.is_network_enabled = is_network_enabled
    profile.visibility = visibility
    profile.display_name = name
    profile.bio = bio or None
    profile.region = region or None
    profile.grade_level = grade_level or None
    profile.school_type = school_type
    profile.share_harvest_data = share_harvest_data
    profile.share_photos = share_photos
    profile.share_growth_tips = share_growth_tips
    profile.updated_at = now

    await db.flush()
    logger.info(
        "Network profile %s for classroom %s (enabled=%s, visibility=%s)",
        "created" if created else "updated", classroom_id, is_network_enabled, visibility.value,
    )
    return profile


async def disable_profile(
    db: AsyncSession, actor_classroom_id: str, classroom_id: str,
) -> ClassroomProfile:
    """Take a classroom off the network. Existing connections are kept."""
    if actor_classroom_id != classroom_id:
        raise InvalidStateTransition("Only the owning classroom can disable its network profile")

    profile = await get_profile(db, classroom_id)
    if profile is None:
        raise NotFoundError("Network profile not found")

    profile.is_network_enabled = False
    profile.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Network profile disabled for classroom %s", classroom_id)
    return profile
