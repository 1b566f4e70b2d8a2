from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "LTN Planner API"
    debug: bool = False

    # API settings
    api_v1_prefix: str = "/api/v1"

    # CORS settings
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Network settings (planar units are meters)
    snap_distance_m: float = 50.0  # max distance to snap a clicked point
    geometry_tolerance_m: float = 0.5  # road endpoints vs intersection points

    # Savefile settings
    savefile_match_tolerance_m: float = 1.0
    savefile_store_enabled: bool = True
    savefile_dir: str = "savefiles"

    # Session settings
    max_sessions: int = 32

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
