from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ANALYSIS_INTERVAL_MINUTES = 15
DEFAULT_POLL_INTERVAL_SECONDS = 60.0


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values are read once at startup and handed to the services explicitly;
    nothing below the API layer looks settings up on its own. A `.env` file in
    the working directory is honoured for local runs.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Storage locations
    STORAGE_PATH: str = "~/.devmetrics"
    DATABASE_URL: str = ""  # Empty means a SQLite file under STORAGE_PATH

    # Tracking behaviour
    ANALYSIS_INTERVAL_MINUTES: int = DEFAULT_ANALYSIS_INTERVAL_MINUTES
    POLL_INTERVAL_SECONDS: float = DEFAULT_POLL_INTERVAL_SECONDS
    EXCLUDED_PATHS: List[str] = ["node_modules/**", ".git/**"]

    # API server
    HOST: str = "127.0.0.1"
    PORT: int = 8765

    # Development and debugging
    DEBUG: bool = False

    @field_validator("ANALYSIS_INTERVAL_MINUTES", mode="before")
    @classmethod
    def _fallback_interval(cls, value):
        try:
            minutes = int(value)
        except (TypeError, ValueError):
            return DEFAULT_ANALYSIS_INTERVAL_MINUTES
        return minutes if minutes > 0 else DEFAULT_ANALYSIS_INTERVAL_MINUTES

    @field_validator("POLL_INTERVAL_SECONDS", mode="before")
    @classmethod
    def _fallback_poll(cls, value):
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return DEFAULT_POLL_INTERVAL_SECONDS
        return seconds if seconds > 0 else DEFAULT_POLL_INTERVAL_SECONDS

    @property
    def storage_dir(self) -> Path:
        return Path(self.STORAGE_PATH).expanduser()

    @property
    def mirrors_dir(self) -> Path:
        return self.storage_dir / "tracked_projects"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{self.storage_dir / 'devmetrics.db'}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
