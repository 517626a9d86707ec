"""GrowStage configuration using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///growstage.db"

    # Batch engine
    max_workers: int | None = Field(default=None, ge=1)
    stage_model_path: str | None = None
    task_templates_path: str | None = None
    health_rules_dir: str | None = None
    template_horizon_days: int = Field(default=7, ge=0)

    # Celebrations
    celebration_lookback_hours: int = Field(default=24, ge=0)
    streak_window_days: int = Field(default=7, ge=1)
    streak_threshold: int = Field(default=5, ge=1)

    # Scheduler
    scheduler_interval_minutes: int = Field(default=60, ge=1)
    timezone: str = "UTC"

    # General
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_prefix": "GROWSTAGE_",
        "extra": "ignore",
    }


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
