from __future__ import annotations
from pydantic import BaseModel
from typing import Literal
from uuid import UUID

Movement = Literal["up", "down", "same"]


class LeaderboardRow(BaseModel):
    user_id: UUID
    name: str
    miles: float
    rank: int
    # previous rank - current rank; positive means moved up
    rank_delta: int = 0
    movement: Movement = "same"
    joined_top3: bool = False
    dropped_top3: bool = False
    streak: int = 0


class RankMovement(BaseModel):
    delta: int = 0
    movement: Movement = "same"
    joined_top3: bool = False
    dropped_top3: bool = False


class LeaderboardResponse(BaseModel):
    status: Literal["ok"] = "ok"
    challenge_id: UUID
    group_id: UUID
    challenge_status: str
    leaderboard: list[LeaderboardRow]
