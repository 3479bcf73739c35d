"""Garden Network social endpoints: 11 routes.

Profile (3), Discovery (1), Connections (6), Summary (1).

Domain errors raised by the services propagate to the handlers registered in
middleware/error_handler.py, which map them to status codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from gardennet.auth.dependencies import ActorContext, get_actor
from gardennet.database import get_session
from gardennet.db.enums import SchoolType
from gardennet.db.models import ClassroomConnection, ClassroomProfile
from gardennet.errors import NotFoundError
from gardennet.redis_client import get_redis_or_none
from gardennet.social.connection_service import (
    block_request,
    list_connections,
    list_pending,
    remove_connection,
    respond_to_request,
    send_request,
)
from gardennet.social.discovery_service import DiscoveryFilters, discover
from gardennet.social.profile_service import (
    disable_profile,
    get_profile,
    get_profiles_batch,
    upsert_profile,
)
from gardennet.social.schemas import (
    ConnectionListResponse,
    ConnectionResponse,
    DiscoveredClassroomResponse,
    DiscoveryResponse,
    NetworkSummaryResponse,
    PendingConnectionsResponse,
    ProfileResponse,
    RespondConnectionRequest,
    SendConnectionRequest,
    UpsertProfileRequest,
)
from gardennet.social.summary_service import get_network_summary

router = APIRouter(prefix="/api/v1/network", tags=["Network"])


# ── Helpers ──


def _build_profile_response(profile: ClassroomProfile) -> ProfileResponse:
    return ProfileResponse(
        classroom_id=profile.classroom_id,
        is_network_enabled=profile.is_network_enabled,
        visibility=profile.visibility,
        display_name=profile.display_name,
        bio=profile.bio,
        region=profile.region,
        grade_level=profile.grade_level,
        school_type=profile.school_type,
        share_harvest_data=profile.share_harvest_data,
        share_photos=profile.share_photos,
        share_growth_tips=profile.share_growth_tips,
        updated_at=profile.updated_at,
    )


def _build_connection_response(
    connection: ClassroomConnection,
    viewer_id: str,
    profiles: dict[str, ClassroomProfile] | None = None,
) -> ConnectionResponse:
    peer_id = connection.peer_of(viewer_id)
    peer = (profiles or {}).get(peer_id)
    return ConnectionResponse(
        id=connection.id,
        requester_classroom_id=connection.requester_classroom_id,
        target_classroom_id=connection.target_classroom_id,
        status=connection.status,
        connection_type=connection.connection_type,
        message=connection.message,
        created_at=connection.created_at,
        accepted_at=connection.accepted_at,
        peer_classroom_id=peer_id,
        peer_display_name=peer.display_name if peer else None,
    )


async def _peer_profiles(
    db: AsyncSession, viewer_id: str, connections: list[ClassroomConnection],
) -> dict[str, ClassroomProfile]:
    return await get_profiles_batch(db, {c.peer_of(viewer_id) for c in connections})


# ── Profile (3) ──


@router.get("/profile", response_model=ProfileResponse)
async def get_profile_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """The acting classroom's network profile."""
    profile = await get_profile(db, actor.classroom_id)
    if profile is None:
        raise NotFoundError("Network profile not found")
    return _build_profile_response(profile)


@router.put("/profile", response_model=ProfileResponse)
async def upsert_profile_endpoint(
    body: UpsertProfileRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Create or update the acting classroom's network profile."""
    profile = await upsert_profile(
        db,
        actor.classroom_id,
        actor.classroom_id,
        **body.model_dump(),
    )
    await db.commit()
    return _build_profile_response(profile)


@router.post("/profile/disable", response_model=ProfileResponse)
async def disable_profile_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Leave the network. Existing connections are kept."""
    profile = await disable_profile(db, actor.classroom_id, actor.classroom_id)
    await db.commit()
    return _build_profile_response(profile)


# ── Discovery (1) ──


@router.get("/discover", response_model=DiscoveryResponse)
async def discover_endpoint(
    region: str | None = Query(None),
    grade_level: str | None = Query(None),
    school_type: SchoolType | None = Query(None),
    search: str | None = Query(None, max_length=100),
    exclude_connected: bool = Query(False),
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Browse or search classrooms visible on the network."""
    filters = DiscoveryFilters(
        region=region,
        grade_level=grade_level,
        school_type=school_type,
        search=search,
        exclude_connected=exclude_connected,
    )
    found = await discover(db, actor.classroom_id, filters)
    items = [
        DiscoveredClassroomResponse(
            classroom_id=d.profile.classroom_id,
            classroom_name=d.classroom.name if d.classroom else None,
            display_name=d.profile.display_name,
            bio=d.profile.bio,
            region=d.profile.region,
            grade_level=d.profile.grade_level,
            school_type=d.profile.school_type,
            visibility=d.profile.visibility,
            connection_status=d.connection_status,
        )
        for d in found
    ]
    return DiscoveryResponse(classrooms=items, total=len(items))


# ── Connections (6) ──


@router.post("/connections", response_model=ConnectionResponse, status_code=201)
async def send_request_endpoint(
    body: SendConnectionRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Send a connection request to another classroom."""
    connection = await send_request(
        db, actor.classroom_id, body.target_classroom_id, body.connection_type, body.message,
    )
    await db.commit()
    profiles = await _peer_profiles(db, actor.classroom_id, [connection])
    return _build_connection_response(connection, actor.classroom_id, profiles)


@router.get("/connections", response_model=ConnectionListResponse)
async def list_connections_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Accepted connections of the acting classroom."""
    connections = await list_connections(db, actor.classroom_id)
    profiles = await _peer_profiles(db, actor.classroom_id, connections)
    return ConnectionListResponse(
        connections=[_build_connection_response(c, actor.classroom_id, profiles) for c in connections],
        total=len(connections),
    )


@router.get("/connections/pending", response_model=PendingConnectionsResponse)
async def list_pending_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Pending requests, split into incoming and outgoing."""
    pending = await list_pending(db, actor.classroom_id)
    profiles = await _peer_profiles(db, actor.classroom_id, pending.incoming + pending.outgoing)
    return PendingConnectionsResponse(
        incoming=[_build_connection_response(c, actor.classroom_id, profiles) for c in pending.incoming],
        outgoing=[_build_connection_response(c, actor.classroom_id, profiles) for c in pending.outgoing],
    )


@router.post("/connections/{connection_id}/respond", response_model=ConnectionResponse)
async def respond_endpoint(
    connection_id: str,
    body: RespondConnectionRequest,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Accept or decline an incoming request."""
    connection = await respond_to_request(db, actor.classroom_id, connection_id, body.status)
    await db.commit()
    profiles = await _peer_profiles(db, actor.classroom_id, [connection])
    return _build_connection_response(connection, actor.classroom_id, profiles)


@router.post("/connections/{connection_id}/block", response_model=ConnectionResponse)
async def block_endpoint(
    connection_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Block an incoming request and any future request from that classroom."""
    connection = await block_request(db, actor.classroom_id, connection_id)
    await db.commit()
    return _build_connection_response(connection, actor.classroom_id)


@router.delete("/connections/{connection_id}", status_code=204)
async def remove_connection_endpoint(
    connection_id: str,
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Remove an accepted connection, or withdraw an outgoing request."""
    await remove_connection(db, actor.classroom_id, connection_id)
    await db.commit()
    return Response(status_code=204)


# ── Summary (1) ──


@router.get("/summary", response_model=NetworkSummaryResponse)
async def summary_endpoint(
    actor: ActorContext = Depends(get_actor),
    db: AsyncSession = Depends(get_session),
):
    """Dashboard counters for the acting classroom."""
    summary = await get_network_summary(db, actor.classroom_id, get_redis_or_none())
    return NetworkSummaryResponse(**summary)
