# storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local SQLite by default; point DATABASE_URL at PostgreSQL in production
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "*" or a comma-separated list of origins
    CORS_ALLOWED_ORIGINS = os.environ.get("CORS_ALLOWED_ORIGINS", "*")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # When true, 500 responses carry the underlying exception message
    EXPOSE_ERROR_DETAILS = _env_bool("EXPOSE_ERROR_DETAILS", True)

    # Checkout pricing (GBP)
    VAT_RATE = os.environ.get("VAT_RATE", "0.20")
    FREE_SHIPPING_THRESHOLD = os.environ.get("FREE_SHIPPING_THRESHOLD", "50")
    FLAT_SHIPPING_RATE = os.environ.get("FLAT_SHIPPING_RATE", "5")

    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "AST")

    # Inventory
    DEFAULT_REORDER_POINT = int(os.environ.get("DEFAULT_REORDER_POINT", "10"))
    STOCK_ADJUST_BATCH_LIMIT = int(os.environ.get("STOCK_ADJUST_BATCH_LIMIT", "100"))
