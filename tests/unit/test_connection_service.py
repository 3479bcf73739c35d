"""Unit tests for classroom connection requests."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from gardennet.db.enums import ConnectionStatus, ConnectionType, Visibility
from gardennet.errors import (
    DuplicateConnectionError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from gardennet.social.connection_service import (
    block_request,
    connected_peer_ids,
    find_connection_between,
    get_connection,
    list_connections,
    list_pending,
    remove_connection,
    respond_to_request,
    send_request,
)

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def pair(make_member):
    a = await make_member("Alpha Room")
    b = await make_member("Beta Room")
    return a, b


class TestSendRequest:
    async def test_creates_pending_request(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id, ConnectionType.COLLABORATION, "Want to swap seeds?")
        await db.commit()

        assert conn.status is ConnectionStatus.PENDING
        assert conn.requester_classroom_id == a.id
        assert conn.target_classroom_id == b.id
        assert conn.accepted_at is None
        assert conn.message == "Want to swap seeds?"

    async def test_cannot_connect_to_self(self, db, pair):
        a, _ = pair
        with pytest.raises(ValidationError) as exc_info:
            await send_request(db, a.id, a.id)
        assert exc_info.value.field == "target_classroom_id"

    async def test_message_too_long(self, db, pair):
        a, b = pair
        with pytest.raises(ValidationError) as exc_info:
            await send_request(db, a.id, b.id, message="m" * 501)
        assert exc_info.value.field == "message"

    async def test_unknown_connection_type(self, db, pair):
        a, b = pair
        with pytest.raises(ValidationError):
            await send_request(db, a.id, b.id, connection_type="friendship")

    async def test_target_off_network(self, db, make_member):
        a = await make_member("Alpha Room")
        off = await make_member("Offline Room", enabled=False)
        with pytest.raises(NotFoundError):
            await send_request(db, a.id, off.id)

    async def test_invite_only_target_reachable_by_id(self, db, make_member):
        """invite_only hides a classroom from discovery, not from a shared code."""
        a = await make_member("Alpha Room")
        hidden = await make_member("Hidden Room", visibility=Visibility.INVITE_ONLY)
        conn = await send_request(db, a.id, hidden.id)
        assert conn.status is ConnectionStatus.PENDING

    async def test_duplicate_same_direction(self, db, pair):
        a, b = pair
        await send_request(db, a.id, b.id)
        await db.commit()
        with pytest.raises(DuplicateConnectionError, match="already exists"):
            await send_request(db, a.id, b.id)

    async def test_duplicate_reverse_direction(self, db, pair):
        """One record per unordered pair, whichever side asks."""
        a, b = pair
        await send_request(db, a.id, b.id)
        await db.commit()
        with pytest.raises(DuplicateConnectionError):
            await send_request(db, b.id, a.id)

    async def test_declined_pair_cannot_re_request(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "declined")
        await db.commit()
        with pytest.raises(DuplicateConnectionError):
            await send_request(db, a.id, b.id)

    async def test_concurrent_reverse_request_hits_pair_constraint(self, db, pair, monkeypatch):
        """A request that slips past the lookup is still stopped by the unique pair."""
        a, b = pair
        await send_request(db, a.id, b.id)
        await db.commit()
        monkeypatch.setattr(
            "gardennet.social.connection_service.find_connection_between", AsyncMock(return_value=None),
        )
        with pytest.raises(DuplicateConnectionError):
            await send_request(db, b.id, a.id)

    async def test_other_integrity_errors_propagate(self, db, pair, monkeypatch):
        a, b = pair
        fk_violation = IntegrityError(
            "INSERT INTO classroom_connections ...", {},
            Exception(
                'insert or update on table "classroom_connections" violates foreign key '
                'constraint "classroom_connections_requester_classroom_id_fkey"'
            ),
        )
        monkeypatch.setattr(db, "flush", AsyncMock(side_effect=fk_violation))
        with pytest.raises(IntegrityError):
            await send_request(db, a.id, b.id)


class TestRespond:
    async def test_accept_sets_accepted_at(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        accepted = await respond_to_request(db, b.id, conn.id, ConnectionStatus.ACCEPTED)
        await db.commit()

        assert accepted.status is ConnectionStatus.ACCEPTED
        assert accepted.accepted_at is not None

    async def test_decline(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        declined = await respond_to_request(db, b.id, conn.id, "declined")
        assert declined.status is ConnectionStatus.DECLINED
        assert declined.accepted_at is None

    async def test_requester_cannot_accept_own_request(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        with pytest.raises(InvalidStateTransition, match="receiving classroom"):
            await respond_to_request(db, a.id, conn.id, "accepted")

    async def test_cannot_respond_twice(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "declined")
        with pytest.raises(InvalidStateTransition):
            await respond_to_request(db, b.id, conn.id, "accepted")

    async def test_decision_must_be_accept_or_decline(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        with pytest.raises(ValidationError):
            await respond_to_request(db, b.id, conn.id, "blocked")

    async def test_unknown_connection(self, db, pair):
        _, b = pair
        with pytest.raises(NotFoundError):
            await respond_to_request(db, b.id, "no-such-id", "accepted")


class TestBlock:
    async def test_block_pending(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        blocked = await block_request(db, b.id, conn.id)
        await db.commit()
        assert blocked.status is ConnectionStatus.BLOCKED

    async def test_blocked_pair_rejects_both_directions(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await block_request(db, b.id, conn.id)
        await db.commit()

        with pytest.raises(DuplicateConnectionError):
            await send_request(db, a.id, b.id)
        with pytest.raises(DuplicateConnectionError):
            await send_request(db, b.id, a.id)

    async def test_requester_cannot_block(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        with pytest.raises(InvalidStateTransition):
            await block_request(db, a.id, conn.id)

    async def test_accepted_cannot_be_blocked(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "accepted")
        with pytest.raises(InvalidStateTransition):
            await block_request(db, b.id, conn.id)


class TestRemove:
    async def test_either_side_removes_accepted(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "accepted")
        await remove_connection(db, b.id, conn.id)
        await db.commit()

        assert await get_connection(db, conn.id) is None
        assert await find_connection_between(db, a.id, b.id) is None

    async def test_removed_pair_can_reconnect(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "accepted")
        await remove_connection(db, a.id, conn.id)
        await db.commit()

        again = await send_request(db, b.id, a.id)
        assert again.status is ConnectionStatus.PENDING

    async def test_requester_withdraws_pending(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await remove_connection(db, a.id, conn.id)
        assert await get_connection(db, conn.id) is None

    async def test_target_cannot_remove_pending(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        with pytest.raises(InvalidStateTransition):
            await remove_connection(db, b.id, conn.id)

    @pytest.mark.parametrize("decision", ["declined", "blocked"])
    async def test_terminal_records_cannot_be_removed(self, db, pair, decision):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        if decision == "blocked":
            await block_request(db, b.id, conn.id)
        else:
            await respond_to_request(db, b.id, conn.id, decision)

        for actor in (a.id, b.id):
            with pytest.raises(InvalidStateTransition):
                await remove_connection(db, actor, conn.id)

    async def test_outsider_cannot_remove(self, db, pair, make_member):
        a, b = pair
        outsider = await make_member("Gamma Room")
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "accepted")
        with pytest.raises(InvalidStateTransition, match="not part"):
            await remove_connection(db, outsider.id, conn.id)


class TestListings:
    async def test_connected_peers_symmetric(self, db, pair):
        a, b = pair
        conn = await send_request(db, a.id, b.id)
        await respond_to_request(db, b.id, conn.id, "accepted")
        await db.commit()

        assert await connected_peer_ids(db, a.id) == {b.id}
        assert await connected_peer_ids(db, b.id) == {a.id}

    async def test_pending_not_counted_as_connected(self, db, pair):
        a, b = pair
        await send_request(db, a.id, b.id)
        assert await connected_peer_ids(db, a.id) == set()
        assert await list_connections(db, b.id) == []

    async def test_pending_split_by_direction(self, db, pair, make_member):
        a, b = pair
        c = await make_member("Gamma Room")
        await send_request(db, a.id, b.id)
        await send_request(db, c.id, a.id)
        await db.commit()

        pending = await list_pending(db, a.id)
        assert [p.target_classroom_id for p in pending.outgoing] == [b.id]
        assert [p.requester_classroom_id for p in pending.incoming] == [c.id]
