"""Runtime settings read from the environment (and backend/.env)."""

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseModel):
    db_path: str = "branchreel.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        values: dict = {}
        if db_path := os.environ.get("BRANCHREEL_DB_PATH"):
            values["db_path"] = db_path
        if origins := os.environ.get("BRANCHREEL_CORS_ORIGINS"):
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        if log_level := os.environ.get("BRANCHREEL_LOG_LEVEL"):
            values["log_level"] = log_level.upper()
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    # Secrets and local overrides stay out of the shell profile
    load_dotenv(ENV_FILE)
    return Settings.from_env()
