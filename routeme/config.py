"""Centralised application settings loaded from environment / .env file."""

from typing import Optional

from pydantic_settings import BaseSettings

from routeme.domain.enums import StorageBackend


class Settings(BaseSettings):
    # Google Maps web services
    google_maps_api_key: str = ""
    maps_base_url: str = "https://maps.googleapis.com/maps/api"
    maps_country: str = "na"  # autocomplete / geocode restriction
    maps_timeout_seconds: Optional[float] = 10.0
    travel_mode: str = "driving"

    # Persistence
    storage_backend: StorageBackend = StorageBackend.SQL
    database_url: str = "sqlite+aiosqlite:///routeme.db"
    redis_url: str = "redis://localhost:6379/0"

    # Search history
    history_storage_key: str = "routeme_search_history_v1"
    history_cap: int = 50  # non-favorites beyond this are evicted

    # Route tracking
    deviation_threshold_km: float = 0.05  # 50 m
    deviation_check_interval_seconds: int = 10
    reroute_on_deviation: bool = True

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
