from __future__ import annotations
from typing import Callable
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from runpool.auth_deps import require_cron_secret
from runpool.config import settings
from runpool.deps import email_sender_provider, get_repositories
from runpool.repositories.base import Repositories
from runpool.schemas.recap import RecapResponse
from runpool.services.email import EmailSender
from runpool.services.notify import dispatch_recap_emails, parse_recipients
from runpool.services.recap import compute_recap

router = APIRouter(tags=["recap"])

@router.api_route(
    "/weekly-recap",
    methods=["GET", "POST"],
    response_model=RecapResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def weekly_recap(
    limit: int | None = Query(default=None, description="max recaps; ignored with group_id"),
    group_id: UUID | None = Query(default=None),
    send: int = Query(default=0, ge=0, le=1),
    to: str | None = Query(default=None, description="comma separated recipients"),
    repos: Repositories = Depends(get_repositories),
    sender_factory: Callable[[], EmailSender] = Depends(email_sender_provider),
):
    recaps = await compute_recap(repos, limit=limit, group_id=group_id)
    out = RecapResponse(status="ok", recaps=recaps)
    if send == 1:
        # Explicit allow-list only; group members are never emailed from here
        recipients = parse_recipients(to) if to else list(settings.weekly_recap_test_to)
        sender = sender_factory() if recipients and recaps else None
        out.sent = await dispatch_recap_emails(sender, recaps, recipients)
    return out
