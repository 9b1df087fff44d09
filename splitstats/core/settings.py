from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings, read from ``SPLITSTATS_*`` environment variables or .env."""

    # Database
    database_url: str = Field(
        default="sqlite:///./splitstats.db",
        description="SQLAlchemy URL of the experiment store.",
    )
    database_echo: bool = False

    # HTTP API bearer tokens
    tokens: list[str] = Field(default_factory=list)

    # Engine
    excluded_ips: list[str] = Field(
        default_factory=list,
        description="Participants from these IPs are left out of results.",
    )
    result_cache_expiry_seconds: float = Field(default=3600.0, ge=0)
    lookup_concurrency: int = Field(
        default=5,
        ge=1,
        description="Concurrent conversion lookups issued while computing a result.",
    )

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SPLITSTATS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
