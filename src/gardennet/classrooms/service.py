"""Read-only adapters over the classroom management tables.

Classroom directory: identity and ownership of classrooms.
Harvest ledger: harvest totals and tower counts, keyed by teacher. One teacher
may run several classrooms and towers, so every harvest figure here is a
per-teacher figure.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.db.models import Classroom, Harvest, Tower


@dataclass(frozen=True)
class ClassroomRef:
    id: str
    name: str
    teacher_id: str


@dataclass(frozen=True)
class HarvestTotals:
    total_weight_grams: float = 0.0
    total_plant_count: int = 0


def _ref(classroom: Classroom) -> ClassroomRef:
    return ClassroomRef(id=classroom.id, name=classroom.name, teacher_id=classroom.teacher_id)


# ── Classroom directory ──


async def get_classroom(db: AsyncSession, classroom_id: str) -> ClassroomRef | None:
    """Get a classroom's identity and owning teacher."""
    result = await db.execute(select(Classroom).where(Classroom.id == classroom_id))
    classroom = result.scalar_one_or_none()
    return _ref(classroom) if classroom else None


async def get_classrooms_batch(
    db: AsyncSession, classroom_ids: list[str] | set[str],
) -> dict[str, ClassroomRef]:
    """Batch-load classrooms by id."""
    if not classroom_ids:
        return {}
    result = await db.execute(select(Classroom).where(Classroom.id.in_(list(classroom_ids))))
    return {c.id: _ref(c) for c in result.scalars()}


# ── Harvest ledger ──


async def sum_harvests(db: AsyncSession, teacher_id: str) -> HarvestTotals:
    """Total harvest weight and plant count logged by one teacher."""
    totals = await harvest_totals_by_teacher(db, [teacher_id])
    return totals.get(teacher_id, HarvestTotals())


async def count_towers(db: AsyncSession, teacher_id: str) -> int:
    """Number of towers owned by one teacher."""
    result = await db.execute(
        select(func.count(Tower.id)).where(Tower.teacher_id == teacher_id)
    )
    return int(result.scalar_one() or 0)


async def harvest_totals_by_teacher(
    db: AsyncSession,
    teacher_ids: list[str] | set[str],
    since: datetime | None = None,
    until: datetime | None = None,
) -> dict[str, HarvestTotals]:
    """Grouped harvest totals for many teachers in one query.

    `since`/`until` bound harvested_at (inclusive start, exclusive end).
    Teachers with no harvests are absent from the result.
    """
    if not teacher_ids:
        return {}

    stmt = (
        select(
            Harvest.teacher_id,
            func.coalesce(func.sum(Harvest.weight_grams), 0).label("total_weight"),
            func.coalesce(func.sum(Harvest.plant_quantity), 0).label("total_plants"),
        )
        .where(Harvest.teacher_id.in_(list(teacher_ids)))
        .group_by(Harvest.teacher_id)
    )
    if since is not None:
        stmt = stmt.where(Harvest.harvested_at >= since)
    if until is not None:
        stmt = stmt.where(Harvest.harvested_at < until)

    result = await db.execute(stmt)
    return {
        row.teacher_id: HarvestTotals(
            total_weight_grams=float(row.total_weight or 0),
            total_plant_count=int(row.total_plants or 0),
        )
        for row in result
    }


async def tower_counts_by_teacher(
    db: AsyncSession, teacher_ids: list[str] | set[str],
) -> dict[str, int]:
    """Grouped tower counts for many teachers in one query."""
    if not teacher_ids:
        return {}
    result = await db.execute(
        select(Tower.teacher_id, func.count(Tower.id).label("cnt"))
        .where(Tower.teacher_id.in_(list(teacher_ids)))
        .group_by(Tower.teacher_id)
    )
    return {row.teacher_id: int(row.cnt) for row in result}
