from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./flowmetrics.db"

    # Shared secret GitHub signs webhook bodies with (X-Hub-Signature-256).
    # Empty disables verification.
    GITHUB_WEBHOOK_SECRET: str = ""

    # Key for pseudonymizing author/reviewer identities. Empty falls back to plain SHA-256.
    IDENTITY_HMAC_KEY: str = ""

    QUEUE_BATCH_LIMIT: int = 100

    SCHEDULER_ENABLED: bool = True
    QUEUE_DRAIN_INTERVAL_SECONDS: int = 30
    CROSS_STREAM_INTERVAL_SECONDS: int = 3600
    SPRINT_SNAPSHOT_INTERVAL_SECONDS: int = 7200
    DAILY_JOBS_INTERVAL_SECONDS: int = 86400

    DEFAULT_MIN_REVIEWERS: int = 6

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # console | json

    model_config = {"env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _fix_database_url(self):
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if self.DATABASE_URL.startswith("postgresql://"):
            self.DATABASE_URL = self.DATABASE_URL.replace(
                "postgresql://", "postgresql+asyncpg://", 1,
            )
        return self


settings = Settings()
