# backend/pdv/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


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

    # SQLite DB stored in backend/instance/pdv.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pdv.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "Today" for the dashboard is the local business day of the store
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "America/Sao_Paulo")

    # Credentials
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 10)
    PASSWORD_MIN_LENGTH = _env_int("PASSWORD_MIN_LENGTH", 6)

    # Money policy: "half_even" or "half_up"
    MONEY_ROUNDING = os.environ.get("MONEY_ROUNDING", "half_even")

    # Weight products carry quantities in thousandths (grams for kg prices)
    WEIGHT_QUANTITY_SCALE = _env_int("WEIGHT_QUANTITY_SCALE", 1000)

    # Stock policy per sale_type; Product.allow_negative_stock overrides it
    ALLOW_NEGATIVE_STOCK_UNIT = _env_bool("ALLOW_NEGATIVE_STOCK_UNIT", False)
    ALLOW_NEGATIVE_STOCK_WEIGHT = _env_bool("ALLOW_NEGATIVE_STOCK_WEIGHT", False)

    # Credit payments settle outstanding sales in this order: "oldest_first" or "newest_first"
    CREDIT_ALLOCATION_ORDER = os.environ.get("CREDIT_ALLOCATION_ORDER", "oldest_first")

    # Row contention handling (see services/concurrency.py)
    LOCK_RETRY_ATTEMPTS = _env_int("LOCK_RETRY_ATTEMPTS", 3)
    LOCK_RETRY_BACKOFF = float(os.environ.get("LOCK_RETRY_BACKOFF", "0.05"))

    # Frontend dev servers allowed to call the API from the browser
    CORS_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    )
