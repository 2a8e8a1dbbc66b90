from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID

from runpool.repositories.records import ProofRecord

TOP_N = 3
WALK_FACTOR = Decimal("0.5")  # 2 walking miles = 1 running mile
_TENTH = Decimal("0.1")


class ResubmissionPolicy(str, Enum):
    ADDITIVE = "ADDITIVE"        # every proof is a separate run; sum them
    LATEST_WINS = "LATEST_WINS"  # a new proof replaces the user's earlier ones

    @classmethod
    def parse(cls, value) -> "ResubmissionPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown resubmission policy: {value!r}")


@dataclass(frozen=True)
class Tally:
    user_id: UUID
    miles: Decimal
    # created_at of the last proof counted; the moment the user reached `miles`
    reached_at: datetime


def credited_miles(miles: Decimal, activity: str) -> Decimal:
    miles = Decimal(miles)
    if miles < 0:
        raise ValueError("miles must be >= 0")
    if activity == "walk":
        miles = miles * WALK_FACTOR
    return miles.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def tally_proofs(proofs: Iterable[ProofRecord], policy: ResubmissionPolicy = ResubmissionPolicy.ADDITIVE) -> list[Tally]:
    """Collapse proofs into one tally per user, in first-seen order."""
    totals: dict[UUID, Decimal] = {}
    reached: dict[UUID, datetime] = {}
    for p in proofs:
        miles = Decimal(p.miles)
        if p.user_id not in totals:
            totals[p.user_id] = miles
            reached[p.user_id] = p.created_at
            continue
        if policy is ResubmissionPolicy.ADDITIVE:
            totals[p.user_id] += miles
            reached[p.user_id] = max(reached[p.user_id], p.created_at)
        elif p.created_at >= reached[p.user_id]:
            totals[p.user_id] = miles
            reached[p.user_id] = p.created_at
    return [Tally(user_id=uid, miles=totals[uid], reached_at=reached[uid]) for uid in totals]


def rank_tallies(tallies: Iterable[Tally]) -> list[Tally]:
    """
    Order by miles descending. Ties go to whoever reached the total first,
    then to the lower user id, so the order never depends on storage order.
    """
    return sorted(tallies, key=lambda t: (-t.miles, t.reached_at, str(t.user_id)))


def round_miles(value: Decimal | float | int) -> float:
    return float(Decimal(str(value)).quantize(_TENTH, rounding=ROUND_HALF_UP))


def average(total: Decimal, count: int) -> Decimal:
    if count <= 0:
        return Decimal(0)
    return total / count


def display_name(user_id: UUID, name: str | None) -> str:
    return name or f"User {str(user_id)[:8]}"


def streak_length(challenge_ids: Sequence[UUID], participated: set[UUID]) -> int:
    """Count challenges (most recent first) with a proof, stopping at the first gap."""
    count = 0
    for cid in challenge_ids:
        if cid not in participated:
            break
        count += 1
    return count
