"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from typing import Literal
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (worker heartbeats, readiness)
    redis_url: str = "redis://localhost:6379/0"

    # Sentry
    sentry_dsn: str = ""

    # Lease policy
    lease_ttl_seconds: int = 600  # passive reclaim of abandoned leads
    stuck_threshold_hours: int = 4  # manager "unlock stuck" sweep
    stuck_reassign_hours: int = 24  # manager "reassign stuck" sweep

    # Queue puller
    queue_order: Literal["fifo", "priority"] = "fifo"
    pull_candidate_window: int = 25

    # Commit validation
    min_note_length: int = 10

    # Manager bulk operations
    revoke_batch_size: int = 100

    # Background reaper
    lease_reaper_enabled: bool = False
    lease_reaper_interval_seconds: int = 60

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
