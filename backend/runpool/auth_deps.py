from __future__ import annotations
import secrets
from dataclasses import dataclass
from uuid import UUID
import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from runpool.config import settings
from runpool.security import decode_token

security = HTTPBearer()

@dataclass(frozen=True)
class CurrentUser:
    id: UUID

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> CurrentUser:
    try:
        data = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        return CurrentUser(id=UUID(str(data.get("sub"))))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject")

async def require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="x-cron-secret"),
    authorization: str | None = Header(None),
) -> None:
    """Shared-secret gate for scheduled triggers; open when CRON_SECRET is unset."""
    expected = settings.cron_secret
    if not expected:
        return
    provided = x_cron_secret
    if not provided and authorization and authorization.lower().startswith("bearer "):
        provided = authorization.split(" ", 1)[1]
    if not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(status_code=403, detail="forbidden")
