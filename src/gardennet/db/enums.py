"""Closed value sets stored as strings in the network tables."""

from __future__ import annotations

from enum import Enum


class Visibility(str, Enum):
    PUBLIC = "public"
    NETWORK_ONLY = "network_only"
    INVITE_ONLY = "invite_only"


class SchoolType(str, Enum):
    ELEMENTARY = "elementary"
    MIDDLE = "middle"
    HIGH = "high"
    COLLEGE = "college"
    OTHER = "other"


class ConnectionType(str, Enum):
    COMPETITION = "competition"
    COLLABORATION = "collaboration"
    MENTORSHIP = "mentorship"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    BLOCKED = "blocked"


class ChallengeType(str, Enum):
    HARVEST = "harvest"
    GROWTH = "growth"
    INNOVATION = "innovation"
