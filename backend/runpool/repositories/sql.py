from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from runpool.models.challenge import Challenge
from runpool.models.group import Group, Membership, Profile
from runpool.models.proof import Proof
from runpool.models.snapshot import RankSnapshot
from runpool.repositories.base import Repositories
from runpool.repositories.records import (
    ChallengeRecord, GroupRecord, MembershipRecord, ProfileRecord, ProofRecord,
)

# ---------- row -> record ----------

def _proof(p: Proof) -> ProofRecord:
    return ProofRecord(
        id=p.id, challenge_id=p.challenge_id, user_id=p.user_id, miles=Decimal(p.miles),
        created_at=p.created_at, activity=p.activity, image_key=p.image_key, mime_type=p.mime_type,
    )

def _challenge(c: Challenge) -> ChallengeRecord:
    return ChallengeRecord(
        id=c.id, group_id=c.group_id, week_start=c.week_start, week_end=c.week_end,
        status=c.status, pot=Decimal(c.pot or 0),
    )

def _group(g: Group) -> GroupRecord:
    return GroupRecord(id=g.id, name=g.name, owner_id=g.owner_id, invite_code=g.invite_code)

def _membership(m: Membership) -> MembershipRecord:
    return MembershipRecord(group_id=m.group_id, user_id=m.user_id, role=m.role)

# ---------- repositories ----------

class SqlProofRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_proofs(self, challenge_id: UUID) -> list[ProofRecord]:
        rows = (await self.session.execute(
            select(Proof).where(Proof.challenge_id == challenge_id).order_by(Proof.created_at.asc(), Proof.id.asc())
        )).scalars().all()
        return [_proof(p) for p in rows]

    async def list_proofs_for(self, challenge_ids: Iterable[UUID]) -> list[ProofRecord]:
        ids = list(challenge_ids)
        if not ids:
            return []
        rows = (await self.session.execute(
            select(Proof).where(Proof.challenge_id.in_(ids)).order_by(Proof.created_at.asc())
        )).scalars().all()
        return [_proof(p) for p in rows]

    async def get_proof(self, proof_id: UUID) -> ProofRecord | None:
        p = await self.session.get(Proof, proof_id)
        return _proof(p) if p else None

    async def add_proof(self, *, challenge_id, user_id, miles, activity, image_key, mime_type) -> ProofRecord:
        p = Proof(
            challenge_id=challenge_id, user_id=user_id, miles=miles,
            activity=activity, image_key=image_key, mime_type=mime_type,
        )
        self.session.add(p)
        await self.session.flush()
        await self.session.refresh(p)
        return _proof(p)


class SqlChallengeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_challenge(self, challenge_id: UUID) -> ChallengeRecord | None:
        c = await self.session.get(Challenge, challenge_id)
        return _challenge(c) if c else None

    async def list_closed_challenges(self, group_id: UUID | None, limit: int) -> list[ChallengeRecord]:
        q = select(Challenge).where(Challenge.status == "CLOSED")
        if group_id is not None:
            q = q.where(Challenge.group_id == group_id)
        q = q.order_by(Challenge.week_end.desc(), Challenge.created_at.desc()).limit(limit)
        return [_challenge(c) for c in (await self.session.execute(q)).scalars().all()]

    async def list_group_challenges(self, group_id: UUID) -> list[ChallengeRecord]:
        rows = (await self.session.execute(
            select(Challenge).where(Challenge.group_id == group_id).order_by(Challenge.week_start.desc())
        )).scalars().all()
        return [_challenge(c) for c in rows]

    async def find_open_challenge(self, group_id: UUID) -> ChallengeRecord | None:
        c = await self.session.scalar(
            select(Challenge).where(Challenge.group_id == group_id, Challenge.status == "OPEN")
            .order_by(Challenge.week_start.desc()).limit(1)
        )
        return _challenge(c) if c else None

    async def add_challenge(self, *, group_id: UUID, week_start: date, week_end: date, pot: Decimal) -> ChallengeRecord:
        c = Challenge(group_id=group_id, week_start=week_start, week_end=week_end, pot=pot, status="OPEN")
        self.session.add(c)
        await self.session.flush()
        await self.session.refresh(c)
        return _challenge(c)

    async def set_status(self, challenge_id: UUID, status: str) -> ChallengeRecord | None:
        c = await self.session.get(Challenge, challenge_id, with_for_update=True)
        if not c:
            return None
        c.status = status
        await self.session.flush()
        return _challenge(c)


class SqlGroupRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_group(self, group_id: UUID) -> GroupRecord | None:
        g = await self.session.get(Group, group_id)
        return _group(g) if g else None

    async def get_group_by_code(self, invite_code: str) -> GroupRecord | None:
        g = await self.session.scalar(select(Group).where(Group.invite_code == invite_code))
        return _group(g) if g else None

    async def add_group(self, *, name: str, owner_id: UUID, invite_code: str) -> GroupRecord:
        g = Group(name=name, owner_id=owner_id, invite_code=invite_code)
        self.session.add(g)
        await self.session.flush()
        return _group(g)

    async def get_membership(self, group_id: UUID, user_id: UUID) -> MembershipRecord | None:
        m = await self.session.scalar(
            select(Membership).where(Membership.group_id == group_id, Membership.user_id == user_id)
        )
        return _membership(m) if m else None

    async def add_membership(self, group_id: UUID, user_id: UUID, role: str) -> MembershipRecord:
        m = Membership(group_id=group_id, user_id=user_id, role=role)
        self.session.add(m)
        await self.session.flush()
        return _membership(m)

    async def list_memberships(self, group_id: UUID) -> list[MembershipRecord]:
        rows = (await self.session.execute(
            select(Membership).where(Membership.group_id == group_id).order_by(Membership.joined_at.asc())
        )).scalars().all()
        return [_membership(m) for m in rows]

    async def set_role(self, group_id: UUID, user_id: UUID, role: str) -> MembershipRecord | None:
        m = await self.session.scalar(
            select(Membership).where(Membership.group_id == group_id, Membership.user_id == user_id)
        )
        if not m:
            return None
        m.role = role
        await self.session.flush()
        return _membership(m)

    async def profiles_for(self, user_ids: Iterable[UUID]) -> dict[UUID, ProfileRecord]:
        ids = list(user_ids)
        if not ids:
            return {}
        rows = (await self.session.execute(select(Profile).where(Profile.id.in_(ids)))).scalars().all()
        return {p.id: ProfileRecord(id=p.id, name=p.name, email=p.email) for p in rows}


class SqlSnapshotRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def advance(self, challenge_id: UUID, ranks: Mapping[UUID, int]) -> tuple[dict[UUID, int], set[UUID]]:
        changed: set[UUID] = set()
        # Savepoint: a failed snapshot write must not poison the caller's transaction
        async with self.session.begin_nested():
            stored = {
                s.user_id: s for s in (await self.session.execute(
                    select(RankSnapshot).where(RankSnapshot.challenge_id == challenge_id).with_for_update()
                )).scalars().all()
            }
            for user_id, rank in ranks.items():
                row = stored.get(user_id)
                if row is None:
                    self.session.add(RankSnapshot(challenge_id=challenge_id, user_id=user_id, rank=rank))
                elif row.rank != rank:
                    row.previous_rank = row.rank
                    row.rank = rank
                    changed.add(user_id)

            gone = [uid for uid in stored if uid not in ranks]
            if gone:
                await self.session.execute(
                    delete(RankSnapshot).where(RankSnapshot.challenge_id == challenge_id, RankSnapshot.user_id.in_(gone))
                )

        previous = {
            uid: row.previous_rank for uid, row in stored.items()
            if uid in ranks and row.previous_rank is not None
        }
        return previous, changed


def sql_repositories(session: AsyncSession) -> Repositories:
    return Repositories(
        proofs=SqlProofRepository(session),
        challenges=SqlChallengeRepository(session),
        groups=SqlGroupRepository(session),
        snapshots=SqlSnapshotRepository(session),
        commit=session.commit,
    )
