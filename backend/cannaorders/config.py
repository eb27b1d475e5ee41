# backend/cannaorders/config.py
from __future__ import annotations
import json
import os


def _env_int(name: str, default: int | None) -> int | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


def _load_tax_rates() -> dict:
    raw = os.environ.get("TAX_RATES_JSON")
    if raw:
        return json.loads(raw)
    return {
        # NY combined sales tax and cannabis excise tax
        "NY": {"sales_tax_rate": "0.08875", "excise_tax_rate": "0.09"},
    }


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///cannaorders.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Per-jurisdiction rate table; rates are decimal strings, never floats
    TAX_RATES = _load_tax_rates()
    DEFAULT_JURISDICTION = os.environ.get("DEFAULT_JURISDICTION", "NY")

    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "ORD")

    CART_TTL_HOURS = _env_int("CART_TTL_HOURS", 72)

    # Bounded retry for lock contention / serialization failures
    RETRY_ATTEMPTS = _env_int("RETRY_ATTEMPTS", 3)
    RETRY_BACKOFF_SECONDS = float(os.environ.get("RETRY_BACKOFF_SECONDS", "0.1"))

    COMPLIANCE_MAX_DELIVERY_ATTEMPTS = _env_int("COMPLIANCE_MAX_DELIVERY_ATTEMPTS", 10)
    # A claim older than this is treated as abandoned (worker died mid-delivery)
    COMPLIANCE_CLAIM_TIMEOUT_SECONDS = _env_int("COMPLIANCE_CLAIM_TIMEOUT_SECONDS", 300)
    COMPLIANCE_LOG_INVENTORY_ADJUSTMENTS = (
        os.environ.get("COMPLIANCE_LOG_INVENTORY_ADJUSTMENTS", "false").lower() == "true"
    )

    DAILY_PURCHASE_LIMIT_UNITS = _env_int("DAILY_PURCHASE_LIMIT_UNITS", 85)

    # None disables the age default for `flask orders cancel-stale`
    PENDING_ORDER_TTL_HOURS = _env_int("PENDING_ORDER_TTL_HOURS", None)

    # Storefront/admin origins allowed to call the API from a browser
    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if o.strip()
    ]
