"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Surf Sense"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Remote identity store (Supabase Postgres) ---
    # Unset means offline-only mode: no remote sessions, no per-reading uploads.
    supabase_db_url: str | None = None

    # --- Local storage ---
    storage_dir: Path = Path(".surfsense")
    download_dir: Path = Path("downloads")

    # --- Bluetooth ---
    ble_enabled: bool = True
    ble_scan_timeout_s: float = 5.0
    ble_device_name: str | None = None  # substring filter; None accepts all devices
    connect_timeout_s: float = 10.0

    # --- Geolocation ---
    geolocation_enabled: bool = False
    geolocation_url: str = "https://ipapi.co/json/"

    # --- Sync ---
    sync_interval_seconds: int = 300

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_db_url)


@lru_cache
def get_settings() -> Settings:
    return Settings()
