"""Application configuration and constants."""
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Database
DB_DIR = Path(os.environ.get("DB_DIR", Path.cwd() / "data"))
DB_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DB_DIR / 'assessment.db'}"
)

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Authentication
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "CHANGE_ME_IN_PRODUCTION_USE_openssl_rand_hex_32"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _parse_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
SESSION_EXTEND_MINUTES = _parse_int_env("SESSION_EXTEND_MINUTES", 60)

# Session maintenance
MAX_ACTIVE_SESSIONS_PER_USER = _parse_int_env("MAX_ACTIVE_SESSIONS_PER_USER", 3)
INACTIVE_SESSION_DAYS = _parse_int_env("INACTIVE_SESSION_DAYS", 30)

# Reports
REPORTS_DEFAULT_PER_PAGE = _parse_int_env("REPORTS_DEFAULT_PER_PAGE", 20)
REPORTS_MAX_PER_PAGE = _parse_int_env("REPORTS_MAX_PER_PAGE", 100)
EXPECTED_MINUTES_PER_TEST = _parse_int_env("EXPECTED_MINUTES_PER_TEST", 30)

# Module assignment bounds
MODULE_WEIGHT_MIN = 0.1
MODULE_WEIGHT_MAX = 5.0
