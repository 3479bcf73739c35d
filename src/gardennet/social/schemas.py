"""Pydantic schemas for network profile, discovery and connection endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from gardennet.db.enums import ConnectionStatus, ConnectionType, SchoolType, Visibility


# --- Profile ---


class UpsertProfileRequest(BaseModel):
    is_network_enabled: bool
    visibility: Visibility = Visibility.PUBLIC
    display_name: str | None = None
    bio: str | None = None
    region: str | None = Field(None, max_length=100)
    grade_level: str | None = Field(None, max_length=50)
    school_type: SchoolType | None = None
    share_harvest_data: bool = True
    share_photos: bool = False
    share_growth_tips: bool = True


class ProfileResponse(BaseModel):
    classroom_id: str
    is_network_enabled: bool
    visibility: Visibility
    display_name: str | None = None
    bio: str | None = None
    region: str | None = None
    grade_level: str | None = None
    school_type: SchoolType | None = None
    share_harvest_data: bool
    share_photos: bool
    share_growth_tips: bool
    updated_at: datetime | None = None


# --- Discovery ---


class DiscoveredClassroomResponse(BaseModel):
    classroom_id: str
    classroom_name: str | None = None
    display_name: str | None = None
    bio: str | None = None
    region: str | None = None
    grade_level: str | None = None
    school_type: SchoolType | None = None
    visibility: Visibility
    connection_status: ConnectionStatus | None = None


class DiscoveryResponse(BaseModel):
    classrooms: list[DiscoveredClassroomResponse]
    total: int


# --- Connections ---


class SendConnectionRequest(BaseModel):
    target_classroom_id: str
    connection_type: ConnectionType = ConnectionType.COLLABORATION
    message: str | None = None


class RespondConnectionRequest(BaseModel):
    status: ConnectionStatus


class ConnectionResponse(BaseModel):
    id: str
    requester_classroom_id: str
    target_classroom_id: str
    status: ConnectionStatus
    connection_type: ConnectionType
    message: str | None = None
    created_at: datetime
    accepted_at: datetime | None = None
    peer_classroom_id: str | None = None
    peer_display_name: str | None = None


class ConnectionListResponse(BaseModel):
    connections: list[ConnectionResponse]
    total: int


class PendingConnectionsResponse(BaseModel):
    incoming: list[ConnectionResponse]
    outgoing: list[ConnectionResponse]


# --- Summary ---


class NetworkSummaryResponse(BaseModel):
    is_network_enabled: bool
    connection_count: int
    pending_requests: int
    active_challenges: int
    network_rank: int | None = None
