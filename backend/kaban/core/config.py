"""
Kaban - Configuration
=====================

All application settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


ConflictStrategy = Literal["todowrite_wins", "status_priority", "kaban_wins"]
CancelledPolicy = Literal["skip", "backlog"]


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KABAN_",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Kaban"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ==========================================================================
    # API
    # ==========================================================================
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # ==========================================================================
    # Database (one board per store)
    # ==========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./.kaban/board.db"
    DATABASE_ECHO: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL

    # ==========================================================================
    # Board defaults
    # ==========================================================================
    BOARD_CONFIG_PATH: str = ".kaban/config.json"
    DEFAULT_COLUMN: str = "todo"
    DEFAULT_AGENT: str = "user"
    IN_PROGRESS_COLUMN: str = "in_progress"

    # ==========================================================================
    # Todo sync
    # ==========================================================================
    SYNC_CONFLICT_STRATEGY: ConflictStrategy = "status_priority"
    SYNC_CANCELLED_POLICY: CancelledPolicy = "skip"
    SYNC_MAX_TITLE_LENGTH: int = Field(default=200, ge=50, le=1000)

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
