"""Classroom connection state machine.

    (none)   --send-->               pending
    pending  --respond(accepted)-->  accepted  --remove-->  (none)
    pending  --respond(declined)-->  declined  [terminal]
    pending  --block-->              blocked   [terminal]
    pending  --remove (requester)--> (none)

Rules:
- At most one connection per unordered classroom pair, whichever side asked.
  Any existing record (including declined/blocked) rejects a new request.
- Only the target responds to or blocks a request.
- Accepted connections can be removed by either side; a pending request can
  only be withdrawn by its requester.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.config import get_settings
from gardennet.db.enums import ConnectionStatus, ConnectionType
from gardennet.db.models import ClassroomConnection
from gardennet.errors import (
    DuplicateConnectionError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from gardennet.social.profile_service import get_profile

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[ConnectionStatus, list[ConnectionStatus]] = {
    ConnectionStatus.PENDING: [
        ConnectionStatus.ACCEPTED,
        ConnectionStatus.DECLINED,
        ConnectionStatus.BLOCKED,
    ],
    ConnectionStatus.ACCEPTED: [],
    ConnectionStatus.DECLINED: [],
    ConnectionStatus.BLOCKED: [],
}

RESPONSE_DECISIONS = frozenset({ConnectionStatus.ACCEPTED, ConnectionStatus.DECLINED})

PAIR_CONSTRAINT = "uq_classroom_connections_pair"


@dataclass
class PendingRequests:
    incoming: list[ClassroomConnection] = field(default_factory=list)
    outgoing: list[ClassroomConnection] = field(default_factory=list)


def pair_key(a: str, b: str) -> tuple[str, str]:
    """Order-independent key for a classroom pair."""
    return (a, b) if a <= b else (b, a)


def is_pair_conflict(error: IntegrityError) -> bool:
    """True when the violation is the one-connection-per-pair constraint.

    Postgres names the constraint in its message; SQLite names the columns.
    """
    message = str(error.orig)
    return PAIR_CONSTRAINT in message or "classroom_connections.pair_low" in message


def validate_transition(current: ConnectionStatus, target: ConnectionStatus) -> None:
    """Raise InvalidStateTransition unless current -> target is allowed."""
    if target not in VALID_TRANSITIONS.get(current, []):
        raise InvalidStateTransition(
            f"Cannot move a {current.value} connection to {target.value}"
        )


async def get_connection(db: AsyncSession, connection_id: str) -> ClassroomConnection | None:
    """Get a connection by ID."""
    result = await db.execute(
        select(ClassroomConnection).where(ClassroomConnection.id == connection_id)
    )
    return result.scalar_one_or_none()


async def _require_connection(db: AsyncSession, connection_id: str) -> ClassroomConnection:
    connection = await get_connection(db, connection_id)
    if connection is None:
        raise NotFoundError("Connection not found")
    return connection


async def find_connection_between(
    db: AsyncSession, classroom_a: str, classroom_b: str,
) -> ClassroomConnection | None:
    """Find the connection record between two classrooms, in either direction."""
    result = await db.execute(
        select(ClassroomConnection).where(
            or_(
                and_(
                    ClassroomConnection.requester_classroom_id == classroom_a,
                    ClassroomConnection.target_classroom_id == classroom_b,
                ),
                and_(
                    ClassroomConnection.requester_classroom_id == classroom_b,
                    ClassroomConnection.target_classroom_id == classroom_a,
                ),
            )
        )
    )
    return result.scalars().first()


async def send_request(
    db: AsyncSession,
    requester_id: str,
    target_id: str,
    connection_type: ConnectionType | str = ConnectionType.COLLABORATION,
    message: str | None = None,
) -> ClassroomConnection:
    """Send a connection request from requester to target."""
    if requester_id == target_id:
        raise ValidationError("target_classroom_id", "A classroom cannot connect to itself")

    try:
        connection_type = ConnectionType(connection_type)
    except ValueError as e:
        raise ValidationError("connection_type", f"Invalid connection type: {connection_type!r}") from e

    max_len = get_settings().connection_message_max_length
    if message is not None and len(message) > max_len:
        raise ValidationError("message", f"Message must be at most {max_len} characters")

    target_profile = await get_profile(db, target_id)
    if target_profile is None or not target_profile.is_network_enabled:
        raise NotFoundError("Classroom is not on the network")

    existing = await find_connection_between(db, requester_id, target_id)
    if existing is not None:
        raise DuplicateConnectionError("A connection request already exists with this classroom")

    low, high = pair_key(requester_id, target_id)
    connection = ClassroomConnection(
        requester_classroom_id=requester_id,
        target_classroom_id=target_id,
        pair_low=low,
        pair_high=high,
        status=ConnectionStatus.PENDING,
        connection_type=connection_type,
        message=message or None,
        created_at=datetime.now(timezone.utc),
    )
    db.add(connection)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        if not is_pair_conflict(e):
            raise
        # Lost a race with a request from the other side of the pair.
        raise DuplicateConnectionError("A connection request already exists with this classroom") from e

    logger.info(
        "Connection requested: %s -> %s (id=%s, type=%s)",
        requester_id, target_id, connection.id, connection_type.value,
    )
    return connection


async def respond_to_request(
    db: AsyncSession,
    actor_id: str,
    connection_id: str,
    decision: ConnectionStatus | str,
) -> ClassroomConnection:
    """Accept or decline a pending request. Target only."""
    try:
        decision = ConnectionStatus(decision)
    except ValueError as e:
        raise ValidationError("status", f"Invalid decision: {decision!r}") from e
    if decision not in RESPONSE_DECISIONS:
        raise ValidationError("status", "Decision must be 'accepted' or 'declined'")

    connection = await _require_connection(db, connection_id)
    if actor_id != connection.target_classroom_id:
        raise InvalidStateTransition("Only the receiving classroom can respond to this request")
    validate_transition(connection.status, decision)

    connection.status = decision
    if decision is ConnectionStatus.ACCEPTED:
        connection.accepted_at = datetime.now(timezone.utc)

    await db.flush()
    logger.info("Connection %s %s by classroom %s", connection.id, decision.value, actor_id)
    return connection


async def block_request(
    db: AsyncSession, actor_id: str, connection_id: str,
) -> ClassroomConnection:
    """Block a pending request. Target only; blocks all future requests for the pair."""
    connection = await _require_connection(db, connection_id)
    if actor_id != connection.target_classroom_id:
        raise InvalidStateTransition("Only the receiving classroom can block this request")
    validate_transition(connection.status, ConnectionStatus.BLOCKED)

    connection.status = ConnectionStatus.BLOCKED
    await db.flush()
    logger.info(
        "Connection %s blocked by classroom %s (requester=%s)",
        connection.id, actor_id, connection.requester_classroom_id,
    )
    return connection


async def remove_connection(db: AsyncSession, actor_id: str, connection_id: str) -> None:
    """Delete an accepted connection, or withdraw one's own pending request."""
    connection = await _require_connection(db, connection_id)
    is_party = actor_id in (connection.requester_classroom_id, connection.target_classroom_id)
    if not is_party:
        raise InvalidStateTransition("You are not part of this connection")

    if connection.status is ConnectionStatus.ACCEPTED:
        pass
    elif connection.status is ConnectionStatus.PENDING:
        if actor_id != connection.requester_classroom_id:
            raise InvalidStateTransition("Decline or block an incoming request instead of removing it")
    else:
        raise InvalidStateTransition(f"A {connection.status.value} connection cannot be removed")

    await db.delete(connection)
    await db.flush()
    logger.info("Connection %s removed by classroom %s", connection_id, actor_id)


async def list_connections(db: AsyncSession, classroom_id: str) -> list[ClassroomConnection]:
    """Accepted connections where the classroom is on either side."""
    result = await db.execute(
        select(ClassroomConnection)
        .where(
            ClassroomConnection.status == ConnectionStatus.ACCEPTED,
            or_(
                ClassroomConnection.requester_classroom_id == classroom_id,
                ClassroomConnection.target_classroom_id == classroom_id,
            ),
        )
        .order_by(ClassroomConnection.accepted_at.desc())
    )
    return list(result.scalars().all())


async def list_pending(db: AsyncSession, classroom_id: str) -> PendingRequests:
    """Pending requests split into incoming (to classroom) and outgoing (from classroom)."""
    result = await db.execute(
        select(ClassroomConnection)
        .where(
            ClassroomConnection.status == ConnectionStatus.PENDING,
            or_(
                ClassroomConnection.requester_classroom_id == classroom_id,
                ClassroomConnection.target_classroom_id == classroom_id,
            ),
        )
        .order_by(ClassroomConnection.created_at.desc())
    )
    pending = PendingRequests()
    for connection in result.scalars():
        if connection.target_classroom_id == classroom_id:
            pending.incoming.append(connection)
        else:
            pending.outgoing.append(connection)
    return pending


async def connected_peer_ids(db: AsyncSession, classroom_id: str) -> set[str]:
    """Ids of classrooms with an accepted connection to this one, either direction."""
    return {c.peer_of(classroom_id) for c in await list_connections(db, classroom_id)}


async def connection_statuses_for(
    db: AsyncSession, classroom_id: str, peer_ids: list[str] | set[str],
) -> dict[str, ConnectionStatus]:
    """Status of the connection between classroom_id and each peer that has one."""
    if not peer_ids:
        return {}
    peers = list(peer_ids)
    result = await db.execute(
        select(ClassroomConnection).where(
            or_(
                and_(
                    ClassroomConnection.requester_classroom_id == classroom_id,
                    ClassroomConnection.target_classroom_id.in_(peers),
                ),
                and_(
                    ClassroomConnection.target_classroom_id == classroom_id,
                    ClassroomConnection.requester_classroom_id.in_(peers),
                ),
            )
        )
    )
    return {c.peer_of(classroom_id): c.status for c in result.scalars()}
