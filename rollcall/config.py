"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Check-in tunables (radius, grace period, GPS multiplier, cache bounds)
      have the same defaults as the pure core constants

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - qr_token_secret optional: unsigned tokens stay decodable by older scanners
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://rollcall:rollcall@db:5432/rollcall"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Check-in rules
    checkin_default_radius_m: float = Field(default=100, gt=0)
    checkin_grace_minutes: int = Field(default=15, ge=0)
    gps_mismatch_multiplier: float = Field(default=1.2, gt=0)

    # Scan tokens: HMAC signing key, unset means unsigned tokens
    qr_token_secret: str | None = None

    # Per-call credential cache
    credential_cache_ttl_seconds: float = Field(default=30, gt=0)
    credential_cache_max_entries: int = Field(default=256, gt=0)

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
