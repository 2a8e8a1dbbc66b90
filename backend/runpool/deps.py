from __future__ import annotations
from functools import lru_cache
from typing import Callable
from uuid import UUID
from fastapi import Depends, HTTPException
from redis import Redis
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession
from runpool.auth_deps import CurrentUser
from runpool.config import settings
from runpool.db import get_session
from runpool.repositories.base import Repositories
from runpool.repositories.records import MembershipRecord
from runpool.repositories.sql import sql_repositories
from runpool.services.email import EmailSender, get_email_sender

async def get_repositories(session: AsyncSession = Depends(get_session)) -> Repositories:
    return sql_repositories(session)

def email_sender_provider() -> Callable[[], EmailSender]:
    # Resolved lazily so a missing email key only matters when sending
    return get_email_sender

# RQ queue (lazy single instance)
@lru_cache(maxsize=1)
def _queue() -> Queue:
    return Queue("default", connection=Redis.from_url(settings.redis_url))

def get_queue() -> Queue:
    return _queue()

async def require_member(repos: Repositories, group_id: UUID, user: CurrentUser) -> MembershipRecord:
    m = await repos.groups.get_membership(group_id, user.id)
    if not m:
        raise HTTPException(status_code=403, detail="Not a member of this group")
    return m

async def require_admin(repos: Repositories, group_id: UUID, user: CurrentUser) -> MembershipRecord:
    m = await require_member(repos, group_id, user)
    if not m.can_admin:
        raise HTTPException(status_code=403, detail="Only the group owner or an admin can do this")
    return m
