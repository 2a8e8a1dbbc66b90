from __future__ import annotations
from datetime import date
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal
from uuid import UUID

from runpool.schemas.leaderboard import LeaderboardRow


class GroupRef(BaseModel):
    id: UUID
    name: str


class ChallengePeriod(BaseModel):
    id: UUID
    week_start: date
    week_end: date


class RecapSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    participants: int
    total_miles: float = Field(alias="totalMiles")
    avg_miles: float = Field(alias="avgMiles")


class Recap(BaseModel):
    group: GroupRef | None
    challenge: ChallengePeriod
    summary: RecapSummary
    top3: list[LeaderboardRow]
    pot: float


class DeliveryFailure(BaseModel):
    recipient: str
    error: str


class RecapDelivery(BaseModel):
    """Outcome of sending one recap to the recipient list. Partial failure is not an error."""
    group: str
    ok: bool
    successful: int = 0
    failed: int = 0
    message_ids: list[str] = Field(default_factory=list)
    failures: list[DeliveryFailure] = Field(default_factory=list)
    error: str | None = None


class RecapResponse(BaseModel):
    status: Literal["ok", "error"] = "ok"
    error: str | None = None
    recaps: list[Recap]
    sent: list[RecapDelivery] | None = None
