"""Unit tests for challenge participation and closing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from gardennet.competition.challenge_service import (
    close_challenge,
    count_active_joined,
    create_challenge,
    deactivate_challenge,
    join_challenge,
    leave_challenge,
    list_active,
    list_my_challenges,
    participation_count,
    participation_counts,
)
from gardennet.db.enums import ChallengeType
from gardennet.db.models import ChallengeParticipation
from gardennet.errors import (
    ChallengeClosedError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)

pytestmark = pytest.mark.asyncio


def _today():
    return datetime.now(timezone.utc).date()


class TestJoin:
    async def test_join_creates_participation(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge()
        participation = await join_challenge(db, room.id, challenge.id)
        await db.commit()

        assert participation.classroom_id == room.id
        assert participation.final_score is None
        assert await participation_count(db, challenge.id) == 1

    async def test_join_is_idempotent(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge()
        first = await join_challenge(db, room.id, challenge.id)
        second = await join_challenge(db, room.id, challenge.id)
        await db.commit()

        assert first.id == second.id
        rows = await db.execute(
            select(func.count(ChallengeParticipation.id)).where(
                ChallengeParticipation.classroom_id == room.id,
                ChallengeParticipation.challenge_id == challenge.id,
            )
        )
        assert rows.scalar_one() == 1

    async def test_join_after_end_date_allowed_while_active(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge(
            start_date=_today() - timedelta(days=10),
            end_date=_today() - timedelta(days=1),
        )
        participation = await join_challenge(db, room.id, challenge.id)
        assert participation is not None

    async def test_join_inactive_rejected(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge(is_active=False)
        with pytest.raises(ChallengeClosedError):
            await join_challenge(db, room.id, challenge.id)

    async def test_join_unknown_challenge(self, db, make_member):
        room = await make_member("Alpha Room")
        with pytest.raises(NotFoundError):
            await join_challenge(db, room.id, "missing")


class TestLeave:
    async def test_leave_removes_row(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge()
        await join_challenge(db, room.id, challenge.id)
        await leave_challenge(db, room.id, challenge.id)
        await db.commit()
        assert await participation_count(db, challenge.id) == 0

    async def test_leave_after_end_date_rejected(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge(
            start_date=_today() - timedelta(days=10),
            end_date=_today() - timedelta(days=1),
        )
        await join_challenge(db, room.id, challenge.id)
        with pytest.raises(ChallengeClosedError):
            await leave_challenge(db, room.id, challenge.id)
        assert await participation_count(db, challenge.id) == 1

    async def test_leave_on_last_day_allowed(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge(end_date=_today())
        await join_challenge(db, room.id, challenge.id)
        await leave_challenge(db, room.id, challenge.id)

    async def test_leave_without_joining(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge()
        with pytest.raises(InvalidStateTransition):
            await leave_challenge(db, room.id, challenge.id)


class TestListing:
    async def test_list_active_excludes_inactive_and_ended(self, db, make_challenge):
        running = await make_challenge("Running")
        await make_challenge("Inactive", is_active=False)
        await make_challenge(
            "Ended",
            start_date=_today() - timedelta(days=10),
            end_date=_today() - timedelta(days=1),
        )
        assert [c.id for c in await list_active(db)] == [running.id]

    async def test_counts_and_my_challenges(self, db, make_member, make_challenge):
        a = await make_member("Alpha Room")
        b = await make_member("Beta Room")
        first = await make_challenge("First")
        second = await make_challenge("Second")
        await join_challenge(db, a.id, first.id)
        await join_challenge(db, b.id, first.id)
        await join_challenge(db, a.id, second.id)
        await db.commit()

        assert await participation_counts(db, [first.id, second.id]) == {first.id: 2, second.id: 1}
        assert {c.id for c, _ in await list_my_challenges(db, b.id)} == {first.id}
        assert await count_active_joined(db, a.id) == 2


class TestOperatorActions:
    async def test_create_validates_dates(self, db):
        with pytest.raises(ValidationError) as exc_info:
            await create_challenge(
                db, "Backwards", ChallengeType.GROWTH,
                start_date=_today(), end_date=_today() - timedelta(days=1),
            )
        assert exc_info.value.field == "end_date"

    async def test_create_rejects_unknown_type(self, db):
        with pytest.raises(ValidationError):
            await create_challenge(db, "Odd", "speed", start_date=_today(), end_date=_today())

    async def test_deactivate_hides_from_active(self, db, make_challenge):
        challenge = await make_challenge()
        await deactivate_challenge(db, challenge.id)
        await db.commit()
        assert await list_active(db) == []

    async def test_close_scores_harvest_by_owning_teacher(self, db, make_member, make_challenge, add_harvest):
        light = await make_member("Light Room")
        heavy = await make_member("Heavy Room")
        idle = await make_member("Idle Room")
        challenge = await make_challenge("Harvest Sprint", ChallengeType.HARVEST)
        for room in (light, heavy, idle):
            await join_challenge(db, room.id, challenge.id)
        await db.commit()

        await add_harvest(light.teacher_id, 300)
        await add_harvest(heavy.teacher_id, 900)
        await add_harvest(heavy.teacher_id, 100)
        # Outside the challenge window
        await add_harvest(light.teacher_id, 5000, harvested_at=datetime.now(timezone.utc) - timedelta(days=30))

        ranked = await close_challenge(db, challenge.id)
        await db.commit()

        assert [(p.classroom_id, p.final_score, p.rank) for p in ranked] == [
            (heavy.id, 1000.0, 1),
            (light.id, 300.0, 2),
            (idle.id, 0.0, 3),
        ]
        assert challenge.is_active is False
        assert challenge.closed_at is not None

    async def test_close_non_harvest_ranks_by_join_order(self, db, make_member, make_challenge, add_harvest):
        first = await make_member("First Room")
        second = await make_member("Second Room")
        challenge = await make_challenge("Innovation Fair", ChallengeType.INNOVATION)
        await join_challenge(db, first.id, challenge.id)
        await db.commit()
        await join_challenge(db, second.id, challenge.id)
        await db.commit()
        await add_harvest(second.teacher_id, 800)

        ranked = await close_challenge(db, challenge.id)
        assert [p.classroom_id for p in ranked] == [first.id, second.id]
        assert all(p.final_score == 0.0 for p in ranked)

    async def test_close_twice_rejected(self, db, make_challenge):
        challenge = await make_challenge()
        await close_challenge(db, challenge.id)
        await db.commit()
        with pytest.raises(ChallengeClosedError):
            await close_challenge(db, challenge.id)

    async def test_closed_challenge_cannot_be_left(self, db, make_member, make_challenge):
        room = await make_member("Alpha Room")
        challenge = await make_challenge()
        await join_challenge(db, room.id, challenge.id)
        await close_challenge(db, challenge.id)
        with pytest.raises(ChallengeClosedError):
            await leave_challenge(db, room.id, challenge.id)
