import os
from typing import Any, Dict

from dotenv import load_dotenv

# Load environment variables if present
load_dotenv()


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


# memory | remote | mongo
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").lower()

REMOTE_STORE_URL = os.getenv("REMOTE_STORE_URL", "")
REMOTE_TIMEOUT = _env_float("REMOTE_TIMEOUT", 60.0)
REMOTE_BULK_TIMEOUT = _env_float("REMOTE_BULK_TIMEOUT", 180.0)
REMOTE_MAX_RETRIES = _env_int("REMOTE_MAX_RETRIES", 2)
REMOTE_RETRY_BACKOFF = _env_float("REMOTE_RETRY_BACKOFF", 1.0)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "sidata")

LOCAL_SETTINGS_PATH = os.getenv("LOCAL_SETTINGS_PATH", "app_settings.local.json")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "plain").lower()

DEFAULT_ADMIN_NAME = os.getenv("DEFAULT_ADMIN_NAME", "Administrator")
DEFAULT_SCHOOL_NAME = os.getenv("DEFAULT_SCHOOL_NAME", "SMPN 3 Pacet")
DEFAULT_ACADEMIC_YEAR = os.getenv("DEFAULT_ACADEMIC_YEAR", "2024/2025")

PORT = _env_int("PORT", 8000)


def remote_configured(url: str = None) -> bool:
    """True when a real deployment URL is set (not blank, not the placeholder)."""
    url = REMOTE_STORE_URL if url is None else url
    return bool(url) and "YOUR_GOOGLE_SCRIPT_URL" not in url


def describe() -> Dict[str, Any]:
    return {
        "store_backend": STORE_BACKEND,
        "remote_store_url": "✅ Set" if remote_configured() else "❌ Not Set",
        "remote_timeout": REMOTE_TIMEOUT,
        "remote_bulk_timeout": REMOTE_BULK_TIMEOUT,
        "remote_max_retries": REMOTE_MAX_RETRIES,
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": DATABASE_NAME,
        "local_settings_path": LOCAL_SETTINGS_PATH,
        "log_level": LOG_LEVEL,
        "log_format": LOG_FORMAT,
    }
