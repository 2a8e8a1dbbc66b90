from __future__ import annotations
import os
from pydantic import BaseModel

def _csv(value: str) -> list[str]:
    return [s.strip() for s in value.split(",") if s.strip()]

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "runpool-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "RunPool")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = _csv(os.getenv("CORS_ORIGINS", "*"))
    site_url: str = os.getenv("SITE_URL", "http://localhost:3000")

    # Empty means "not configured"; the first query raises ConfigurationError
    database_url: str = os.getenv("DATABASE_URL", "")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_proofs: str = os.getenv("S3_BUCKET_PROOFS", "runpool-proofs-dev")
    s3_presign_downloads: bool = os.getenv("S3_PRESIGN_DOWNLOADS", "0") == "1"
    s3_presign_expiry_seconds: int = int(os.getenv("S3_PRESIGN_EXPIRY_SECONDS", "3600"))

    # Tokens come from the hosted auth provider (shared HS256 secret)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_audience: str = os.getenv("JWT_AUDIENCE", "authenticated")

    # Resend
    resend_api_key: str = os.getenv("RESEND_API_KEY", "")
    resend_from: str = os.getenv("RESEND_FROM", "")
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    weekly_recap_test_to: list[str] = _csv(os.getenv("WEEKLY_RECAP_TEST_TO", ""))
    cron_secret: str = os.getenv("CRON_SECRET", "")

    # Leaderboard / recap knobs
    streak_window: int = int(os.getenv("STREAK_WINDOW", "8"))
    resubmission_policy: str = os.getenv("RESUBMISSION_POLICY", "ADDITIVE")  # ADDITIVE|LATEST_WINS
    recap_default_limit: int = int(os.getenv("RECAP_DEFAULT_LIMIT", "10"))

settings = Settings()
