"""
Runtime settings.

Environment is loaded from .env once at import; every value has a default so
the service starts with an empty environment.
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def get_int_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def get_list_env(key: str) -> List[str]:
    return [item.strip() for item in os.getenv(key, "").split(",") if item.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./ladder.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
ALLOWED_ORIGINS = get_list_env("ALLOWED_ORIGINS")
APPLY_RATE_LIMIT = os.getenv("APPLY_RATE_LIMIT", "10/minute")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_POINTS = {
    1: get_int_env("DEFAULT_POINTS_C1", 5),
    2: get_int_env("DEFAULT_POINTS_C2", 4),
    3: get_int_env("DEFAULT_POINTS_C3", 3),
    4: get_int_env("DEFAULT_POINTS_C4", 2),
}


def is_development() -> bool:
    return ENVIRONMENT == "development"
