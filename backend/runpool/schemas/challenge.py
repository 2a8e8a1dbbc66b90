from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Literal
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

ChallengeStatus = Literal["OPEN", "CLOSED"]
Activity = Literal["run", "walk"]


class ChallengeCreate(BaseModel):
    week_start: date
    week_end: date
    pot: Decimal = Field(default=Decimal("0"), ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def ordered_dates(self):
        if self.week_end < self.week_start:
            raise ValueError("week_end must not be before week_start")
        return self


class ChallengePublic(BaseModel):
    id: UUID
    group_id: UUID
    week_start: date
    week_end: date
    status: ChallengeStatus
    pot: float


class ProofPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: UUID
    miles: float
    activity: Activity
    # 🔒 do not expose storage keys
    image_url: str | None = None
    created_at: datetime
