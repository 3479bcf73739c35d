"""ORM models for the Garden Network tables.

The classroom, tower and harvest tables belong to the classroom management
app; they are mapped here read-only so the network services can join against
them. The network tables (settings, connections, challenges, participation)
are owned by this service and created by the Alembic migrations.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gardennet.db.base import Base
from gardennet.db.enums import (
    ChallengeType,
    ConnectionStatus,
    ConnectionType,
    SchoolType,
    Visibility,
)


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _str_enum(enum_cls: type[PyEnum], name: str) -> Enum:
    """Store a str enum by value in a VARCHAR column."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=16,
        values_callable=lambda members: [m.value for m in members],
    )


_JSON = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Classroom management tables (external, read-only here)
# ---------------------------------------------------------------------------


class Classroom(Base):
    """Maps to the 'classrooms' table."""

    __tablename__ = "classrooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    network_profile: Mapped[ClassroomProfile | None] = relationship(
        "ClassroomProfile", back_populates="classroom", uselist=False,
    )


class Tower(Base):
    """Maps to the 'towers' table."""

    __tablename__ = "towers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    ports: Mapped[int] = mapped_column(Integer, default=28)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Harvest(Base):
    """Maps to the 'harvests' table."""

    __tablename__ = "harvests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    tower_id: Mapped[str] = mapped_column(String(36), ForeignKey("towers.id"), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    plant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    weight_grams: Mapped[float] = mapped_column(Float, nullable=False)
    plant_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    harvested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ---------------------------------------------------------------------------
# Garden Network
# ---------------------------------------------------------------------------


class ClassroomProfile(Base):
    """A classroom's network participation record. One per classroom."""

    __tablename__ = "classroom_network_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    classroom_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("classrooms.id", ondelete="CASCADE"), unique=True, nullable=False,
    )
    is_network_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    visibility: Mapped[Visibility] = mapped_column(
        _str_enum(Visibility, "visibility_level"), default=Visibility.PUBLIC, nullable=False,
    )
    share_harvest_data: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    share_photos: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    share_growth_tips: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    grade_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    school_type: Mapped[SchoolType | None] = mapped_column(
        _str_enum(SchoolType, "school_type"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    classroom: Mapped[Classroom] = relationship("Classroom", back_populates="network_profile")


class ClassroomConnection(Base):
    """Directed request between two classrooms.

    pair_low/pair_high hold the two classroom ids in sorted order so the
    unique constraint covers the unordered pair regardless of direction.
    """

    __tablename__ = "classroom_connections"
    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_classroom_connections_pair"),
        Index("idx_classroom_connections_requester", "requester_classroom_id", "status"),
        Index("idx_classroom_connections_target", "target_classroom_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    requester_classroom_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False,
    )
    target_classroom_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False,
    )
    pair_low: Mapped[str] = mapped_column(String(36), nullable=False)
    pair_high: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[ConnectionStatus] = mapped_column(
        _str_enum(ConnectionStatus, "connection_status"), default=ConnectionStatus.PENDING, nullable=False,
    )
    connection_type: Mapped[ConnectionType] = mapped_column(
        _str_enum(ConnectionType, "connection_type"), default=ConnectionType.COLLABORATION, nullable=False,
    )
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def peer_of(self, classroom_id: str) -> str:
        """Return the other side of the connection."""
        if classroom_id == self.requester_classroom_id:
            return self.target_classroom_id
        return self.requester_classroom_id


class NetworkChallenge(Base):
    """Platform-owned, time-boxed competition."""

    __tablename__ = "network_challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    challenge_type: Mapped[ChallengeType] = mapped_column(
        _str_enum(ChallengeType, "challenge_type"), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    goal_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rewards: Mapped[list[Any]] = mapped_column(_JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class ChallengeParticipation(Base):
    """Join record between a classroom and a challenge."""

    __tablename__ = "classroom_challenge_participation"
    __table_args__ = (
        UniqueConstraint("classroom_id", "challenge_id", name="uq_challenge_participation_classroom_challenge"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    classroom_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("classrooms.id", ondelete="CASCADE"), nullable=False,
    )
    challenge_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("network_challenges.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    final_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
