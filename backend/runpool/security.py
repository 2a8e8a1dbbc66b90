from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from runpool.config import settings

JWT_ALG = "HS256"

def make_access_token(sub: str, ttl_min: int = 60) -> str:
    """Mint a token shaped like the auth provider's; for local tooling and tests."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG], audience=settings.jwt_audience)
