# backend/purchasing/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///purchasing.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Read cache for purchase detail / timeline / payment lists
    PURCHASE_CACHE_TTL_SECONDS = float(os.environ.get("PURCHASE_CACHE_TTL_SECONDS", "30"))
    PURCHASE_CACHE_SERVE_STALE = _env_bool("PURCHASE_CACHE_SERVE_STALE", False)
    PURCHASE_CACHE_MAX_STALE_ENTRIES = int(os.environ.get("PURCHASE_CACHE_MAX_STALE_ENTRIES", "256"))

    # Bounded retry applied to repository reads only
    DATA_ACCESS_RETRY_ATTEMPTS = int(os.environ.get("DATA_ACCESS_RETRY_ATTEMPTS", "3"))
    DATA_ACCESS_RETRY_BACKOFF = float(os.environ.get("DATA_ACCESS_RETRY_BACKOFF", "0.1"))

    # Refund policy window, counted in days from the purchase date
    REFUND_WINDOW_DAYS = int(os.environ.get("REFUND_WINDOW_DAYS", "30"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
