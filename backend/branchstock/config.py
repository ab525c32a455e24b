# backend/branchstock/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///branchstock.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock policy
    ALLOW_NEGATIVE_STOCK = _env_flag("ALLOW_NEGATIVE_STOCK", False)
    DEFAULT_MIN_STOCK = int(os.environ.get("DEFAULT_MIN_STOCK", "5"))

    # Transfer policy: when on, sent <= requested and received <= sent
    ENFORCE_TRANSFER_QUANTITY_LIMITS = _env_flag("ENFORCE_TRANSFER_QUANTITY_LIMITS", False)

    # "purge" deletes the sale's movements, "compensate" appends IN adjustments
    SALE_CANCELLATION_MODE = os.environ.get("SALE_CANCELLATION_MODE", "purge")
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    TRANSACTION_RETRY_ATTEMPTS = int(os.environ.get("TRANSACTION_RETRY_ATTEMPTS", "3"))
    TRANSACTION_RETRY_BACKOFF = float(os.environ.get("TRANSACTION_RETRY_BACKOFF", "0.1"))

    ACTOR_HEADER = os.environ.get("ACTOR_HEADER", "X-Actor-Id")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_VERSION = os.environ.get("APP_VERSION", "1.0.0")
