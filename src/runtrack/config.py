from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./runtrack.db"

    # Sample filter thresholds (tune against real GPS traces)
    max_horizontal_accuracy_m: float = 20.0
    max_speed_ms: float = 12.0  # faster than any runner; anything above is a GPS jump

    # Metrics accumulator
    altitude_noise_m: float = 1.0
    max_vertical_accuracy_m: float = 50.0
    calories_per_km: float = 60.0

    current_pace_window_seconds: float = 30.0

    # Background cadences
    journal_interval_seconds: int = 30
    live_publish_interval_seconds: int = 1

    # Fewer accepted points than this marks a finished run as degraded
    min_route_points: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
