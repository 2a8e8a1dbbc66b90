from __future__ import annotations
import asyncio
from uuid import UUID

import structlog

from runpool.db import get_sessionmaker
from runpool.errors import ConfigurationError
from runpool.repositories.base import Repositories
from runpool.repositories.sql import sql_repositories
from runpool.services.email import EmailSender, get_email_sender
from runpool.services.leaderboard import enrich_leaderboard
from runpool.services.notify import notify_top_performers

log = structlog.get_logger()


async def refresh(repos: Repositories, challenge_id: UUID, sender: EmailSender | None) -> list[UUID]:
    """
    Recompute standings after a proof change, advance the stored snapshot and
    email users who just moved into the top 3. Returns those users' ids.
    """
    standings = await enrich_leaderboard(repos, challenge_id)
    await repos.commit()

    joiners = [r for r in standings.rows if r.joined_top3 and r.user_id in standings.changed]
    if not joiners:
        return []
    log.info("leaderboard.top3_joined", challenge_id=str(challenge_id), users=[str(r.user_id) for r in joiners])

    if sender is None:
        log.info("notify.top3_skipped", challenge_id=str(challenge_id), reason="email_not_configured")
        return [r.user_id for r in joiners]

    group = await repos.groups.get_group(standings.challenge.group_id)
    if group is None:
        return [r.user_id for r in joiners]
    profiles = await repos.groups.profiles_for([r.user_id for r in joiners])
    await notify_top_performers(sender, group, standings.challenge, joiners, profiles)
    return [r.user_id for r in joiners]


async def _run(challenge_id: str):
    try:
        sender = get_email_sender()
    except ConfigurationError:
        sender = None
    async with get_sessionmaker()() as session:
        await refresh(sql_repositories(session), UUID(challenge_id), sender)


def refresh_leaderboard(challenge_id: str):
    # RQ entry point (sync); run the async coroutine
    asyncio.run(_run(challenge_id))
