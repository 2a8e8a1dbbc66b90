from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

# Plain read models handed from the repositories to the services.
# They carry no session state, so services can be exercised with any backend.

@dataclass(frozen=True)
class ProofRecord:
    id: UUID
    challenge_id: UUID
    user_id: UUID
    miles: Decimal
    created_at: datetime
    activity: str = "run"
    image_key: str | None = None
    mime_type: str | None = None

@dataclass(frozen=True)
class ChallengeRecord:
    id: UUID
    group_id: UUID
    week_start: date
    week_end: date
    status: str
    pot: Decimal

    @property
    def is_open(self) -> bool:
        return self.status == "OPEN"

@dataclass(frozen=True)
class GroupRecord:
    id: UUID
    name: str
    owner_id: UUID
    invite_code: str

@dataclass(frozen=True)
class MembershipRecord:
    group_id: UUID
    user_id: UUID
    role: str

    @property
    def can_admin(self) -> bool:
        return self.role in ("owner", "admin")

@dataclass(frozen=True)
class ProfileRecord:
    id: UUID
    name: str | None
    email: str | None
