"""
Configuration settings for the remember-sync service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Document Store
    # ========================================
    store_backend: Literal["joplin", "sqlite", "memory"] = Field(
        default="joplin",
        description="Which document store the scanner reads and writes",
    )
    joplin_api_url: str = Field(
        default="http://127.0.0.1:41184",
        description="Joplin Data API (Web Clipper service) URL",
    )
    joplin_token: str = Field(
        default="",
        description="Joplin Web Clipper authorization token",
    )
    database_url: str = Field(
        default="sqlite:///remember.db",
        description="SQLAlchemy URL for the local document store",
    )
    page_size: int = Field(
        default=100,
        description="Page size for paginated store listings",
    )
    request_timeout: int = Field(
        default=30,
        description="HTTP request timeout in seconds",
    )
    request_retries: int = Field(
        default=3,
        description="Retry attempts for failed HTTP requests",
    )

    # ========================================
    # Well-Known Folders & Keys
    # ========================================
    database_folder_name: str = Field(
        default="Remember-DB",
        description="Top-level folder holding all plugin-owned documents",
    )
    log_folder_name: str = Field(
        default="Remember-Log",
        description="Child folder holding one content log per source document",
    )
    review_folder_name: str = Field(
        default="Remember-Review",
        description="Child folder holding generated review sessions",
    )
    source_url_prefix: str = Field(
        default="joplin-remember/",
        description="Namespace for synthetic keys stored in the source_url attribute",
    )

    # ========================================
    # Scan Behavior
    # ========================================
    scan_interval_seconds: int = Field(
        default=60,
        description="Periodic scan cadence",
    )
    index_settle_seconds: float = Field(
        default=5.0,
        description="Pause after writes so the search index catches up",
    )
    review_edit_grace_minutes: int = Field(
        default=60,
        description="Review sessions edited more recently than this are not harvested",
    )
    scan_workers: int = Field(
        default=4,
        description="Threads used to compile quizzes from content logs",
    )
    scan_lock_file: str = Field(
        default=".remember-scan.lock",
        description="Lock file that keeps scan passes of separate processes apart",
    )
    scan_lock_timeout_seconds: float = Field(
        default=300.0,
        description="How long a one-shot scan waits for a running pass",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def has_joplin_configured(self) -> bool:
        """Check if the Joplin Data API can be used."""
        return bool(self.joplin_api_url and self.joplin_token)

    def get_folder_names(self) -> dict[str, str]:
        """Get the well-known folder names keyed by role."""
        return {
            "database": self.database_folder_name,
            "log": self.log_folder_name,
            "review": self.review_folder_name,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
