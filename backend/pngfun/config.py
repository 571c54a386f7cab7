from __future__ import annotations
import os
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "pngfun-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "PNG.FUN")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/pngfun_dev")
    # Storage calls must fail instead of hanging
    db_pool_timeout_seconds: float = float(os.getenv("DB_POOL_TIMEOUT_SECONDS", "5"))
    db_command_timeout_seconds: float = float(os.getenv("DB_COMMAND_TIMEOUT_SECONDS", "10"))
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "http://minio:9000")
    s3_access_key: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    s3_secret_key: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    s3_bucket_photos: str = os.getenv("S3_BUCKET_PHOTOS", "pngfun-photos-dev")
    s3_public_base_url: str = os.getenv("S3_PUBLIC_BASE_URL", "http://localhost:9000")

    # Identity tokens are minted by the wallet-auth service; we only verify them
    identity_token_secret: str = os.getenv("IDENTITY_TOKEN_SECRET", "dev-identity-secret-change-me")
    admin_api_key: str = os.getenv("ADMIN_API_KEY", "")

    # Ledger policy
    allow_self_vote: bool = os.getenv("ALLOW_SELF_VOTE", "0") == "1"
    settlement_tie_policy: str = os.getenv("SETTLEMENT_TIE_POLICY", "split")  # split|earliest
    auto_finalize: bool = os.getenv("AUTO_FINALIZE", "1") == "1"
    leaderboard_max_limit: int = int(os.getenv("LEADERBOARD_MAX_LIMIT", "100"))
    # Off in tests; the worker queue is fire-and-forget
    jobs_enabled: bool = os.getenv("JOBS_ENABLED", "1") == "1"

settings = Settings()
