"""Configuration management for judgelink.

Uses pydantic-settings to load configuration from environment variables.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> Path | None:
    """Search for .env file in common locations."""
    cwd = Path.cwd()

    # Walk up from the working directory (up to 5 levels)
    check_dir = cwd
    for _ in range(5):
        if (check_dir / ".env").exists():
            return check_dir / ".env"
        parent = check_dir.parent
        if parent == check_dir:
            break
        check_dir = parent

    # src/judgelink/config.py -> project root
    project_root = Path(__file__).resolve().parent.parent.parent
    if (project_root / ".env").exists():
        return project_root / ".env"

    return None


_env_file = _find_env_file()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================
    # Environment
    # =========================
    environment: Literal["development", "staging", "production"] = "development"
    db_echo: bool = False

    # =========================
    # PostgreSQL
    # =========================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "judgefinder"
    postgres_user: str = "judgefinder"
    postgres_password: str = Field(default="", repr=False)

    @computed_field
    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL for PostgreSQL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================
    # Linking run
    # =========================
    link_page_size: int = Field(default=1000, ge=1)
    link_update_batch_size: int = Field(default=500, ge=1)
    link_progress_interval: float = Field(
        default=5.0, ge=0.0, description="Seconds between progress log lines"
    )
    link_max_retries: int = Field(default=3, ge=0)
    link_retry_base_delay: float = Field(default=2.0, ge=0.0)
    link_retry_max_delay: float = Field(default=60.0, ge=0.0)
    link_io_timeout: float = Field(
        default=60.0, gt=0.0, description="Timeout for each store round trip"
    )
    link_resolver_workers: int = Field(default=4, ge=1, le=32)
    link_page_delay: float = Field(
        default=0.1, ge=0.0, description="Pause between case pages"
    )

    # =========================
    # Integrity validation
    # =========================
    integrity_sample_size: int = Field(default=100, ge=1)
    integrity_skew_multiple: float = Field(
        default=10.0,
        gt=1.0,
        description="Flag the distribution when max cases per judge exceeds this multiple of the average",
    )

    # =========================
    # Reporting
    # =========================
    report_top_n: int = Field(default=10, ge=1)
    report_suggestion_min_score: int = Field(default=85, ge=0, le=100)

    # =========================
    # Celery
    # =========================
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"
    link_schedule_hour: int = Field(default=3, ge=0, le=23)

    # =========================
    # Logging
    # =========================
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
