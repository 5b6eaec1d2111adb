"""
Configuration management for the lesson library curation tools.

Uses pydantic-settings for type-safe configuration with environment variable support.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user: str = "lessons"
    password: str = ""  # Required: Set POSTGRES_PASSWORD in .env
    host: str = "localhost"
    port: int = 5432
    db: str = "lessons"

    @property
    def url(self) -> str:
        """Construct database URL. DATABASE_URL wins when set (tests use sqlite)."""
        override = os.environ.get("DATABASE_URL")
        if override:
            return override
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class DuplicateSettings(BaseSettings):
    """Policy constants for duplicate detection and resolution."""

    model_config = SettingsConfigDict(
        env_prefix="DUPLICATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cosine similarity at or above this counts as near-identical content
    similarity_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    embedding_dimensions: int = Field(default=1536, gt=0)

    # Placeholder title written by broken imports; never reported as a duplicate
    unknown_title: str = "Unknown"

    # Comma separated profile roles allowed to review duplicates
    reviewer_roles: str = "admin,reviewer,super_admin"

    # Review UI helpers
    preview_length: int = 200
    table_marker: str = "[Table]"

    archive_reason: str = "duplicate_resolution"

    @field_validator("unknown_title")
    @classmethod
    def strip_sentinel(cls, v: str) -> str:
        return v.strip()

    @property
    def reviewer_roles_set(self) -> frozenset[str]:
        """Parse reviewer roles into a set."""
        return frozenset(role.strip() for role in self.reviewer_roles.split(",") if role.strip())


class APISettings(BaseSettings):
    """API server settings."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    reload: bool = False
    # Bearer token of the trusted service identity (use: openssl rand -hex 32)
    service_key: str = ""
    # Shared secret the auth gateway sends with X-User-Id
    gateway_key: str = ""
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


class LoggingSettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    log_file: Optional[Path] = None
    audit_log_file: Optional[Path] = None


class Settings(BaseSettings):
    """Main settings class that combines all settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    duplicates: DuplicateSettings = Field(default_factory=DuplicateSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for quick access
settings = get_settings()


# =============================================================================
# Lesson Field Groups
# =============================================================================

# Set-valued classification fields, unioned by the metadata merge
CLASSIFICATION_FIELDS = [
    "grade_levels",
    "thematic_categories",
    "cultural_heritage",
    "observances_holidays",
    "location_requirements",
    "season_timing",
    "academic_integration",
    "social_emotional_learning",
    "cooking_methods",
    "main_ingredients",
    "cultural_responsiveness_features",
    "garden_skills",
    "cooking_skills",
    "core_competencies",
    "tags",
    "activity_type",
]

# Single-valued fields backfilled only when the canonical has nothing
BACKFILL_FIELDS = [
    "file_link",
    "lesson_format",
    "content_text",
    "content_hash",
    "content_embedding",
    "last_modified",
]

# Fields used for the canonical recommendation's completeness score
COMPLETENESS_FIELDS = [
    "thematic_categories",
    "season_timing",
    "cultural_heritage",
    "activity_type",
    "main_ingredients",
    "grade_levels",
]

# Grade levels a lesson can cover (K through 10)
MAX_GRADE_LEVELS = 11
