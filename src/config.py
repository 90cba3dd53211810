"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "TrackerPro"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Storage ---
    data_dir: Path | None = None  # JSON repository root; in-memory when unset

    # --- Scoring ---
    scoring_config_path: Path | None = None  # overrides the bundled scoring_config.yaml

    # --- Session execution ---
    tick_interval_seconds: float | None = None  # overrides execution.tick_seconds from the scoring config

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "TRACKERPRO_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
