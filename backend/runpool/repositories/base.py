from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Mapping, Protocol
from uuid import UUID

from runpool.repositories.records import (
    ChallengeRecord, GroupRecord, MembershipRecord, ProfileRecord, ProofRecord,
)


class ProofRepository(Protocol):
    async def list_proofs(self, challenge_id: UUID) -> list[ProofRecord]: ...
    async def list_proofs_for(self, challenge_ids: Iterable[UUID]) -> list[ProofRecord]: ...
    async def get_proof(self, proof_id: UUID) -> ProofRecord | None: ...
    async def add_proof(
        self, *, challenge_id: UUID, user_id: UUID, miles: Decimal, activity: str,
        image_key: str | None, mime_type: str | None,
    ) -> ProofRecord: ...


class ChallengeRepository(Protocol):
    async def get_challenge(self, challenge_id: UUID) -> ChallengeRecord | None: ...
    async def list_closed_challenges(self, group_id: UUID | None, limit: int) -> list[ChallengeRecord]:
        """Closed challenges ordered by week_end descending; all groups when group_id is None."""
        ...
    async def list_group_challenges(self, group_id: UUID) -> list[ChallengeRecord]: ...
    async def find_open_challenge(self, group_id: UUID) -> ChallengeRecord | None: ...
    async def add_challenge(self, *, group_id: UUID, week_start: date, week_end: date, pot: Decimal) -> ChallengeRecord: ...
    async def set_status(self, challenge_id: UUID, status: str) -> ChallengeRecord | None: ...


class GroupRepository(Protocol):
    async def get_group(self, group_id: UUID) -> GroupRecord | None: ...
    async def get_group_by_code(self, invite_code: str) -> GroupRecord | None: ...
    async def add_group(self, *, name: str, owner_id: UUID, invite_code: str) -> GroupRecord: ...
    async def get_membership(self, group_id: UUID, user_id: UUID) -> MembershipRecord | None: ...
    async def add_membership(self, group_id: UUID, user_id: UUID, role: str) -> MembershipRecord: ...
    async def list_memberships(self, group_id: UUID) -> list[MembershipRecord]: ...
    async def set_role(self, group_id: UUID, user_id: UUID, role: str) -> MembershipRecord | None: ...
    async def profiles_for(self, user_ids: Iterable[UUID]) -> dict[UUID, ProfileRecord]: ...


class SnapshotRepository(Protocol):
    async def advance(self, challenge_id: UUID, ranks: Mapping[UUID, int]) -> tuple[dict[UUID, int], set[UUID]]:
        """
        Record `ranks` as the latest standings for the challenge.

        Returns (previous, changed):
          - previous: user_id -> rank before the most recent standings change,
            for users that have one
          - changed: users whose stored rank moved during this call
        Calling twice with the same ranks is a no-op.
        """
        ...


@dataclass
class Repositories:
    proofs: ProofRepository
    challenges: ChallengeRepository
    groups: GroupRepository
    snapshots: SnapshotRepository
    commit: Callable[[], Awaitable[None]]
