"""Unit tests for the network dashboard summary."""

from __future__ import annotations

import pytest

from gardennet.competition.challenge_service import join_challenge
from gardennet.social.connection_service import respond_to_request, send_request
from gardennet.social.summary_service import get_network_summary

pytestmark = pytest.mark.asyncio


async def test_summary_off_network(db, make_member):
    room = await make_member("Dormant", enabled=False)
    summary = await get_network_summary(db, room.id)
    assert summary == {
        "is_network_enabled": False,
        "connection_count": 0,
        "pending_requests": 0,
        "active_challenges": 0,
        "network_rank": None,
    }


async def test_summary_without_profile(db, make_classroom):
    room = await make_classroom()
    summary = await get_network_summary(db, room.id)
    assert summary["is_network_enabled"] is False


async def test_summary_counts(db, make_member, make_challenge, add_harvest):
    me = await make_member("Me")
    friend = await make_member("Friend")
    asker = await make_member("Asker")
    asked = await make_member("Asked")
    await add_harvest(friend.teacher_id, 1000)
    await add_harvest(me.teacher_id, 10)

    conn = await send_request(db, me.id, friend.id)
    await respond_to_request(db, friend.id, conn.id, "accepted")
    await send_request(db, asker.id, me.id)
    await send_request(db, me.id, asked.id)

    running = await make_challenge("Running")
    await join_challenge(db, me.id, running.id)
    await db.commit()

    summary = await get_network_summary(db, me.id)
    assert summary["is_network_enabled"] is True
    assert summary["connection_count"] == 1
    assert summary["pending_requests"] == 1  # incoming only
    assert summary["active_challenges"] == 1
    assert summary["network_rank"] == 2
