from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from runpool.config import settings
from runpool.errors import NotFound
from runpool.repositories.base import Repositories
from runpool.repositories.records import ChallengeRecord
from runpool.schemas.leaderboard import LeaderboardRow, RankMovement
from runpool.services.ranking import (
    TOP_N, ResubmissionPolicy, Tally, display_name, rank_tallies, round_miles, streak_length, tally_proofs,
)

log = structlog.get_logger()


@dataclass
class Standing:
    tally: Tally
    name: str


@dataclass
class Standings:
    challenge: ChallengeRecord
    rows: list[LeaderboardRow]
    # users whose stored rank moved while computing these standings
    changed: set[UUID] = field(default_factory=set)


def _policy(policy: ResubmissionPolicy | str | None) -> ResubmissionPolicy:
    return ResubmissionPolicy.parse(policy or settings.resubmission_policy)


async def load_challenge(repos: Repositories, challenge_id: UUID) -> ChallengeRecord:
    ch = await repos.challenges.get_challenge(challenge_id)
    if not ch:
        raise NotFound("Challenge", challenge_id)
    return ch


async def rank_challenge(
    repos: Repositories, challenge: ChallengeRecord, policy: ResubmissionPolicy | str | None = None
) -> list[Standing]:
    """Sum (or pick) each user's proofs and order them; unrounded miles."""
    proofs = await repos.proofs.list_proofs(challenge.id)
    ranked = rank_tallies(tally_proofs(proofs, _policy(policy)))
    profiles = await repos.groups.profiles_for([t.user_id for t in ranked])
    return [
        Standing(tally=t, name=display_name(t.user_id, profiles[t.user_id].name if t.user_id in profiles else None))
        for t in ranked
    ]


def to_rows(standings: Sequence[Standing]) -> list[LeaderboardRow]:
    return [
        LeaderboardRow(user_id=s.tally.user_id, name=s.name, miles=round_miles(s.tally.miles), rank=i + 1)
        for i, s in enumerate(standings)
    ]


async def compute_leaderboard(
    repos: Repositories, challenge_id: UUID, policy: ResubmissionPolicy | str | None = None
) -> list[LeaderboardRow]:
    """
    Ranked standings for one challenge, without deltas or streaks.
    Raises NotFound for an unknown challenge; no proofs yields [].
    """
    challenge = await load_challenge(repos, challenge_id)
    rows = to_rows(await rank_challenge(repos, challenge, policy))
    log.info("leaderboard.computed", challenge_id=str(challenge_id), rows=len(rows))
    return rows


def compute_rank_deltas(
    current: Sequence[LeaderboardRow], previous: Mapping[UUID, int] | None
) -> dict[UUID, RankMovement]:
    """
    Movement of each user in `current` relative to a previous rank mapping.
    Users without a previous rank are reported as unchanged.
    """
    previous = previous or {}
    out: dict[UUID, RankMovement] = {}
    for row in current:
        prev = previous.get(row.user_id)
        if prev is None:
            out[row.user_id] = RankMovement()
            continue
        delta = prev - row.rank
        out[row.user_id] = RankMovement(
            delta=delta,
            movement="up" if delta > 0 else "down" if delta < 0 else "same",
            joined_top3=prev > TOP_N and row.rank <= TOP_N,
            dropped_top3=prev <= TOP_N and row.rank > TOP_N,
        )
    return out


async def compute_streaks(
    repos: Repositories, group_id: UUID, user_ids: Iterable[UUID], window: int | None = None
) -> dict[UUID, int]:
    """Consecutive most-recent closed challenges (within `window`) where each user logged a proof."""
    user_ids = list(user_ids)
    closed = await repos.challenges.list_closed_challenges(group_id, window or settings.streak_window)
    if not closed:
        return {uid: 0 for uid in user_ids}

    ids = [c.id for c in closed]
    participated: dict[UUID, set[UUID]] = {}
    for p in await repos.proofs.list_proofs_for(ids):
        participated.setdefault(p.user_id, set()).add(p.challenge_id)
    return {uid: streak_length(ids, participated.get(uid, set())) for uid in user_ids}


def apply_enrichment(
    rows: Sequence[LeaderboardRow], moves: Mapping[UUID, RankMovement], streaks: Mapping[UUID, int]
) -> list[LeaderboardRow]:
    out = []
    for r in rows:
        m = moves.get(r.user_id) or RankMovement()
        out.append(r.model_copy(update={
            "rank_delta": m.delta,
            "movement": m.movement,
            "joined_top3": m.joined_top3,
            "dropped_top3": m.dropped_top3,
            "streak": streaks.get(r.user_id, 0),
        }))
    return out


async def enrich_leaderboard(
    repos: Repositories,
    challenge_id: UUID,
    policy: ResubmissionPolicy | str | None = None,
    streak_window: int | None = None,
) -> Standings:
    """
    Full leaderboard: ranks, movement since the last standings change, streaks.
    Advances the stored rank snapshot; the caller owns the commit.
    """
    challenge = await load_challenge(repos, challenge_id)
    rows = to_rows(await rank_challenge(repos, challenge, policy))
    if not rows:
        return Standings(challenge=challenge, rows=[])

    previous: dict[UUID, int] = {}
    changed: set[UUID] = set()
    try:
        previous, changed = await repos.snapshots.advance(challenge.id, {r.user_id: r.rank for r in rows})
    except SQLAlchemyError as e:
        log.warning("leaderboard.snapshot_failed", challenge_id=str(challenge.id), error=str(e))

    moves = compute_rank_deltas(rows, previous)
    streaks = await compute_streaks(repos, challenge.group_id, [r.user_id for r in rows], streak_window)
    enriched = apply_enrichment(rows, moves, streaks)
    log.info(
        "leaderboard.enriched",
        challenge_id=str(challenge.id), rows=len(enriched), changed=len(changed),
    )
    return Standings(challenge=challenge, rows=enriched, changed=changed)
