import os
import sys

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Disc Golf Tracker"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # "indexed" tries SQLite first and falls back to the flat JSON file;
    # "flat" skips straight to the fallback.
    STORE_BACKEND: str = "indexed"
    DATABASE_URL: str = "sqlite:///data/tracker.db"
    FLAT_STORE_PATH: str = "data/tracker.json"

    # Remote row store. None means the tracker is permanently offline.
    REMOTE_URL: str | None = None
    REMOTE_TIMEOUT_SECONDS: float = 10
    SYNC_INTERVAL_SECONDS: float = 30

    # Statistics
    MIN_ROUNDS_FOR_AVERAGE: int = 1
    MIN_DATA_POINTS_FOR_DETAILED_STATS: int = 3

    # Score entry bounds
    THROWS_MIN: int = 1
    THROWS_MAX: int = 20
    APPROACHES_MIN: int = 0
    APPROACHES_MAX: int = 19
    PUTTS_MIN: int = 0
    PUTTS_MAX: int = 19

    # Course setup bounds
    PAR_MIN: int = 2
    PAR_MAX: int = 6
    PAR_DEFAULT: int = 3
    HOLE_COUNT_MIN: int = 1
    HOLE_COUNT_MAX: int = 27
    HOLE_COUNT_DEFAULT: int = 18
    DISTANCE_MIN: int = 0
    DISTANCE_MAX: int = 1500
    COURSE_NAME_MAX_LENGTH: int = 100

    class Config:
        # Avoid picking up local .env during pytest runs.
        env_file = None if ("pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST")) else ".env"


settings = Settings()
