import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid integer for {name}={raw!r}, using default {default}")
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️ Invalid number for {name}={raw!r}, using default {default}")
        return default


# --- OPTIMIZER CONFIGURATION ---
DEFAULT_STRATEGY = os.getenv("CUTPLANNER_DEFAULT_STRATEGY", "bidimensional")
MIN_REMAINDER_WIDTH_MM = _get_int("CUTPLANNER_MIN_REMAINDER_WIDTH_MM", 50)
MIN_REMAINDER_LENGTH_M = _get_float("CUTPLANNER_MIN_REMAINDER_LENGTH_M", 0.5)
MAX_WORKERS = _get_int("CUTPLANNER_MAX_WORKERS", 1)
HIGH_TRIM_WARNING_RATIO = _get_float("CUTPLANNER_HIGH_TRIM_WARNING_RATIO", 0.2)

# --- SERVICE CONFIGURATION ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]


def get_cors_origins() -> list:
    """Local defaults plus any extra origins from CORS_ORIGINS (comma separated)."""
    origins = list(DEFAULT_CORS_ORIGINS)
    env_origins = os.getenv("CORS_ORIGINS", "")
    if env_origins:
        origins.extend([origin.strip() for origin in env_origins.split(",") if origin.strip()])
    return origins
