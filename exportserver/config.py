"""
Runtime settings read from environment variables (and a .env file).
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Export server configuration. Durations are in seconds."""

    database_url: str = "sqlite:///exportserver/deckexport.db"
    storage_dir: str = "exportserver/output"
    public_base_url: str = "/files"
    default_workspace_id: str = "ws_default"
    default_theme_id: str = "nordic_light"

    render_timeout_seconds: float = 120
    visibility_timeout_seconds: float = 300
    max_attempts: int = 3
    backoff_seconds: float = 2
    poll_interval_seconds: float = 1.0
    stale_job_seconds: float = 900
    worker_concurrency: int = 1
    asset_fetch_timeout_seconds: float = 10

    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            storage_dir=os.getenv("STORAGE_DIR", cls.storage_dir),
            public_base_url=os.getenv("PUBLIC_BASE_URL", cls.public_base_url).rstrip("/"),
            default_workspace_id=os.getenv("DEFAULT_WORKSPACE_ID", cls.default_workspace_id),
            default_theme_id=os.getenv("DEFAULT_THEME_ID", cls.default_theme_id),
            render_timeout_seconds=float(os.getenv("RENDER_TIMEOUT_SECONDS", cls.render_timeout_seconds)),
            visibility_timeout_seconds=float(
                os.getenv("VISIBILITY_TIMEOUT_SECONDS", cls.visibility_timeout_seconds)
            ),
            max_attempts=int(os.getenv("MAX_ATTEMPTS", cls.max_attempts)),
            backoff_seconds=float(os.getenv("BACKOFF_SECONDS", cls.backoff_seconds)),
            poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", cls.poll_interval_seconds)),
            stale_job_seconds=float(os.getenv("STALE_JOB_SECONDS", cls.stale_job_seconds)),
            worker_concurrency=int(os.getenv("EXPORT_WORKER_CONCURRENCY", cls.worker_concurrency)),
            asset_fetch_timeout_seconds=float(
                os.getenv("ASSET_FETCH_TIMEOUT_SECONDS", cls.asset_fetch_timeout_seconds)
            ),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:3000"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    load_dotenv()  # Load .env file if present
    return Settings.from_env()
