from __future__ import annotations
from decimal import Decimal
from uuid import UUID

import structlog

from runpool.config import settings
from runpool.errors import NotFound
from runpool.repositories.base import Repositories
from runpool.repositories.records import ChallengeRecord
from runpool.schemas.recap import ChallengePeriod, GroupRef, Recap, RecapSummary
from runpool.services.leaderboard import rank_challenge, to_rows
from runpool.services.ranking import TOP_N, ResubmissionPolicy, average, round_miles

log = structlog.get_logger()


async def recap_for(
    repos: Repositories, challenge: ChallengeRecord, policy: ResubmissionPolicy | str | None = None
) -> Recap:
    group = await repos.groups.get_group(challenge.group_id)
    standings = await rank_challenge(repos, challenge, policy)

    participants = len(standings)
    total = sum((s.tally.miles for s in standings), Decimal(0))
    return Recap(
        group=GroupRef(id=group.id, name=group.name) if group else None,
        challenge=ChallengePeriod(id=challenge.id, week_start=challenge.week_start, week_end=challenge.week_end),
        summary=RecapSummary(
            participants=participants,
            total_miles=round_miles(total),
            avg_miles=round_miles(average(total, participants)),
        ),
        top3=to_rows(standings[:TOP_N]),
        pot=float(challenge.pot),
    )


async def compute_recap(
    repos: Repositories,
    limit: int | None = None,
    group_id: UUID | None = None,
    policy: ResubmissionPolicy | str | None = None,
) -> list[Recap]:
    """
    Recaps of the most recently closed challenges, newest first.

    With `group_id`, only that group's latest closed challenge is summarized
    (limit is forced to 1). Fewer closed challenges than `limit` is not an error.
    """
    if group_id is not None:
        if not await repos.groups.get_group(group_id):
            raise NotFound("Group", group_id)
        limit = 1
    elif not limit or limit <= 0:
        limit = settings.recap_default_limit

    challenges = await repos.challenges.list_closed_challenges(group_id, limit)
    recaps = [await recap_for(repos, ch, policy) for ch in challenges]
    log.info("recap.computed", count=len(recaps), limit=limit, group_id=str(group_id) if group_id else None)
    return recaps
