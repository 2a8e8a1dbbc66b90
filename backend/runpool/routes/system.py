from __future__ import annotations
from fastapi import APIRouter, Request
from datetime import datetime, timezone
from runpool.config import settings

router = APIRouter(tags=["system"])

@router.get("/health")
async def health(request: Request):
    # Reports which integrations are configured; never their values
    return {
        "status": "ok",
        "env": settings.environment,
        "time": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
        "configured": {
            "database": bool(settings.database_url),
            "email": bool(settings.resend_api_key and settings.resend_from),
            "cron_secret": bool(settings.cron_secret),
        },
        "resubmission_policy": settings.resubmission_policy,
        "streak_window": settings.streak_window,
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "display_name": settings.app_display_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
    }
