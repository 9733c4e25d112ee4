"""Runtime configuration for the mess feedback service.

All settings are read from environment variables once at import time so
modules can use them as plain constants.
"""

import os
from datetime import time
from typing import Dict, Tuple


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _parse_window(raw: str) -> Tuple[time, time]:
    """Parse a ``HH:MM-HH:MM`` window into a pair of ``time`` objects."""
    start, end = raw.split("-")
    return time.fromisoformat(start.strip()), time.fromisoformat(end.strip())


# Read/Write partitioning pattern
# Set WRITE_DATABASE_URL and READ_DATABASE_URL to different instances in production.
WRITE_DATABASE_URL = os.getenv("WRITE_DATABASE_URL", os.getenv("DATABASE_URL", "sqlite:///mess_feedback.db"))
READ_DATABASE_URL = os.getenv("READ_DATABASE_URL", WRITE_DATABASE_URL)

DB_CONNECT_TIMEOUT = _env_int("DB_CONNECT_TIMEOUT", 5)
DB_IDLE_TIMEOUT = _env_int("DB_IDLE_TIMEOUT", 45)
DB_POOL_TIMEOUT = _env_int("DB_POOL_TIMEOUT", 10)

JWT_SECRET = os.getenv("JWT_SECRET", "change-this-secret")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)
BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

MAX_LOGIN_ATTEMPTS = _env_int("MAX_LOGIN_ATTEMPTS", 5)
LOCKOUT_MINUTES = _env_int("LOCKOUT_MINUTES", 120)
EMAIL_VERIFICATION_HOURS = 24

RATING_EDIT_WINDOW_HOURS = _env_int("RATING_EDIT_WINDOW_HOURS", 24)
RATING_DELETE_WINDOW_HOURS = _env_int("RATING_DELETE_WINDOW_HOURS", 1)
AGGREGATE_UPDATE_RETRIES = _env_int("AGGREGATE_UPDATE_RETRIES", 3)

# Windows during which students may submit a rating for a meal.
MEAL_TIME_WINDOWS: Dict[str, Tuple[time, time]] = {
    "breakfast": _parse_window(os.getenv("MEAL_WINDOW_BREAKFAST", "08:00-11:00")),
    "lunch": _parse_window(os.getenv("MEAL_WINDOW_LUNCH", "12:00-16:00")),
    "dinner": _parse_window(os.getenv("MEAL_WINDOW_DINNER", "19:00-23:00")),
}

# Operating hours given to messes created through the facility endpoints.
DEFAULT_OPERATING_HOURS = {
    "breakfast": {"start": "07:00", "end": "10:00"},
    "lunch": {"start": "12:00", "end": "15:00"},
    "dinner": {"start": "19:00", "end": "22:00"},
}
DEFAULT_FACILITY_MESS_CAPACITY = 200
DEFAULT_ADDED_MESS_CAPACITY = 150

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.path.dirname(__file__), "..", "logs"))
