"""Application configuration loaded from environment variables."""

from datetime import date
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Variables use the ``HEALTHSYNC_`` prefix, e.g. ``HEALTHSYNC_API_BASE_URL``.
    """

    # --- App ---
    app_name: str = "HealthSync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Backend ---
    api_base_url: str = "http://127.0.0.1:8080"
    api_token: str = ""  # optional bearer token for the backend
    request_timeout_seconds: float = 30.0

    # --- Scheduler ---
    sync_interval_seconds: float = 60.0
    snapshot_timeout_seconds: float = 10.0
    location_poll_attempts: int = 5
    location_poll_interval_seconds: float = 1.0
    location_max_age_seconds: float = 60.0
    background_grant_seconds: float = 30.0  # 0 disables the grant budget
    max_batch_snapshots: int = 1440  # longer backlogs are sent over several cycles

    # --- Persistence ---
    state_file: str = ".healthsync_state.json"

    # --- Measurement source ---
    measurement_source: str = "apple_health"  # see healthsync.sources.SOURCE_REGISTRY
    health_export_path: str = ""  # export.xml or JSON export; empty = no data yet

    # --- User profile (sent with every batch) ---
    user_id: str = "anonymous"
    auth_provider: str = "apple"  # apple | samsung | google
    user_gender: str | None = None
    user_birth_date: date | None = None

    # --- Host bridge ---
    bridge_token: str = ""  # empty = bridge endpoints are unauthenticated
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_prefix": "HEALTHSYNC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache
def get_settings() -> Settings:
    return Settings()
