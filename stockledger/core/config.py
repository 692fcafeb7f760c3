"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - relative path for local runs, override via env
    database_url: str = "sqlite:///./data/stockledger.db"
    db_pool_size: int = 20  # ignored for SQLite
    db_max_overflow: int = 40
    sqlite_busy_timeout_ms: int = 5000

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240  # 4 hours

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    # ==========================================================================
    # Ledger behaviour
    # ==========================================================================
    # Optimistic-concurrency retries (version conflicts on inventory records)
    conflict_retry_attempts: int = 5
    conflict_retry_base_delay: float = 0.05  # seconds, doubled per attempt
    conflict_retry_max_delay: float = 1.0

    # Comma-separated movement kinds that are always created as DRAFT,
    # whatever the caller says (e.g. "ADJUSTMENT_OUT")
    review_required_kinds: str = ""

    # Default cap for movement listings
    movement_list_limit: int = 100

    @field_validator("conflict_retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("conflict_retry_attempts must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse to start in production mode with the default secret key."""
        if not self.debug and self.secret_key == "change-me-in-production":
            raise ValueError(
                "FATAL: Cannot start in production mode with default SECRET_KEY. "
                "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
            )
        return self

    @property
    def review_required_kinds_list(self) -> List[str]:
        """Parse review-required movement kinds into an upper-cased list."""
        return [k.strip().upper() for k in self.review_required_kinds.split(",") if k.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
