# backend/bizledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bizledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bizledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tax rules (basis points, 1800 = 18%)
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "UGX")
    VAT_RATE_BPS = _env_int("VAT_RATE_BPS", 1800)
    INCOME_TAX_RATE_BPS = _env_int("INCOME_TAX_RATE_BPS", 3000)
    WITHHOLDING_TAX_RATE_BPS = _env_int("WITHHOLDING_TAX_RATE_BPS", 600)

    # Identity fallback chain. Production deployments should turn the
    # shared demo tenant off so indeterminate callers get a 401 instead.
    ALLOW_DEMO_FALLBACK = _env_bool("ALLOW_DEMO_FALLBACK", True)
    DEMO_FALLBACK_TENANT_ID = os.environ.get(
        "DEMO_FALLBACK_TENANT_ID", "00000000-0000-0000-0000-000000000001"
    )
    DEMO_FALLBACK_EMAIL = os.environ.get("DEMO_FALLBACK_EMAIL", "demo@bizledger.local")

    # External accounting platforms (absent credentials = platform not configured)
    SYNC_TIMEOUT_SECONDS = float(os.environ.get("SYNC_TIMEOUT_SECONDS", "5"))
    QUICKFILE_API_KEY = os.environ.get("QUICKFILE_API_KEY")
    QUICKFILE_ACCOUNT_ID = os.environ.get("QUICKFILE_ACCOUNT_ID")
    QUICKFILE_BASE_URL = os.environ.get("QUICKFILE_BASE_URL", "https://api.quickfile.co.uk")
    AKAUNTING_URL = os.environ.get("AKAUNTING_URL")
    AKAUNTING_API_KEY = os.environ.get("AKAUNTING_API_KEY")
    AKAUNTING_COMPANY_ID = os.environ.get("AKAUNTING_COMPANY_ID")

    # Parallel fact queries on the dashboard read path
    FACT_FETCH_WORKERS = _env_int("FACT_FETCH_WORKERS", 3)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "console")
