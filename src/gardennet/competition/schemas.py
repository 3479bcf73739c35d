"""Pydantic models for challenge and leaderboard endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from gardennet.db.enums import ChallengeType


# ── Challenges ──


class ParticipationResponse(BaseModel):
    classroom_id: str
    challenge_id: str
    joined_at: datetime
    final_score: float | None = None
    rank: int | None = None


class ChallengeResponse(BaseModel):
    id: str
    title: str
    description: str
    challenge_type: ChallengeType
    start_date: date
    end_date: date
    goal_description: str | None = None
    rewards: list[str] = []
    is_active: bool
    participant_count: int = 0
    my_participation: ParticipationResponse | None = None


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeResponse]
    total: int


class CreateChallengeRequest(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field("", max_length=5000)
    challenge_type: ChallengeType
    start_date: date
    end_date: date
    goal_description: str | None = Field(None, max_length=2000)
    rewards: list[str] = []


class ChallengeResultsResponse(BaseModel):
    challenge: ChallengeResponse
    results: list[ParticipationResponse]


# ── Leaderboard ──


class LeaderboardEntryResponse(BaseModel):
    rank: int
    classroom_id: str
    display_name: str
    total_harvest_weight: float
    total_harvest_plants: int
    tower_count: int
    region: str | None = None
    grade_level: str | None = None
    is_connected: bool
    is_current_classroom: bool = False


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntryResponse]
    total: int
