"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database (property catalog)
    database_url: str = "sqlite+aiosqlite:///./doro_platform.db"

    # AI
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"
    llm_timeout_seconds: float = 20.0

    # Google Custom Search (fact verification + market intelligence)
    google_search_api_key: str = ""
    google_search_engine_id: str = ""
    search_timeout_seconds: float = 10.0

    # Pipeline
    pipeline_timeout_seconds: float = 30.0
    fact_check_enabled: bool = True
    fact_check_mode: Literal["sequential", "concurrent"] = "concurrent"
    fact_check_max_properties: int = 3
    floor_plan_delivery_enabled: bool = True

    # CORS
    cors_origins: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
