"""
Reference cache tuning, fuzzy matching parameters, store selection and paths.
All resolution relative to the backend directory.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Repo root: backend/labelcheck/config.py -> parent=labelcheck, parent.parent=backend, parent.parent.parent=repo
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_REPO_ROOT = _BACKEND_DIR.parent

DEFAULT_CACHE_TTL_SECONDS = 60 * 60 * 24
DEFAULT_PAGE_SIZE = 1000
DEFAULT_REFRESH_BACKOFF_SECONDS = 60
DEFAULT_FUZZY_MIN_TOKEN_LENGTH = 4


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("CONFIG invalid integer %s=%r; using default %d", name, raw, default)
        return default


# --- Reference cache ---
def get_reference_cache_ttl_seconds() -> int:
    return _env_int("REFERENCE_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS)


def get_reference_page_size() -> int:
    return _env_int("REFERENCE_PAGE_SIZE", DEFAULT_PAGE_SIZE)


def get_refresh_failure_backoff_seconds() -> int:
    return _env_int("REFERENCE_REFRESH_BACKOFF_SECONDS", DEFAULT_REFRESH_BACKOFF_SECONDS)


# --- Fuzzy matching ---
def get_fuzzy_min_token_length() -> int:
    return _env_int("FUZZY_MIN_TOKEN_LENGTH", DEFAULT_FUZZY_MIN_TOKEN_LENGTH)


def get_fuzzy_extra_stopwords() -> list[str]:
    raw = os.environ.get("FUZZY_EXTRA_STOPWORDS", "")
    return [w.strip().lower() for w in raw.split(",") if w.strip()]


# --- Report policy ---
def get_monitoring_recommendation_enabled() -> bool:
    return os.environ.get("MONITORING_RECOMMENDATION_ENABLED", "true").lower() in ("1", "true", "yes")


# --- Reference store ---
def get_reference_store_backend() -> str:
    return os.environ.get("REFERENCE_STORE", "supabase").strip().lower()


def get_reference_data_path() -> Path:
    override = os.environ.get("REFERENCE_DATA_PATH", "").strip()
    if override:
        return Path(override)
    return _REPO_ROOT / "data" / "reference_sample.json"


def get_supabase_url() -> str:
    return (os.environ.get("SUPABASE_URL") or os.environ.get("NEXT_PUBLIC_SUPABASE_URL") or "").strip()


def get_supabase_service_key() -> str:
    return (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()


# --- Startup logging ---
def log_config() -> None:
    logger.info(
        "CONFIG: reference_store=%s supabase_url=%s supabase_key=%s reference_data=%s "
        "cache_ttl=%ds page_size=%d refresh_backoff=%ds fuzzy_min_token_length=%d "
        "extra_stopwords=%d monitoring_recommendation=%s",
        get_reference_store_backend(),
        bool(get_supabase_url()), bool(get_supabase_service_key()),
        get_reference_data_path().exists(),
        get_reference_cache_ttl_seconds(), get_reference_page_size(),
        get_refresh_failure_backoff_seconds(), get_fuzzy_min_token_length(),
        len(get_fuzzy_extra_stopwords()), get_monitoring_recommendation_enabled(),
    )
