# backend/restopos/config.py
from __future__ import annotations
import json
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _load_tenant_databases() -> dict[str, str]:
    # TENANT_DATABASES='{"demo": "postgresql://...", "hazkitchen": "postgresql://..."}'
    raw = os.environ.get("TENANT_DATABASES")
    if not raw:
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("TENANT_DATABASES must be a JSON object of tenant -> database URL")
    return {str(k): str(v) for k, v in data.items()}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Default handle; tenants without their own entry fall back to it
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///restopos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    TENANT_DATABASES = _load_tenant_databases()
    TENANT_FALLBACK_TO_DEFAULT = _env_bool("TENANT_FALLBACK_TO_DEFAULT", True)

    # "continue": a stock shortfall on one line is logged and reported, the order stands.
    # "abort": the shortfall rolls back the whole order.
    STOCK_FAILURE_POLICY = os.environ.get("STOCK_FAILURE_POLICY", "continue")

    ENFORCE_STATUS_TRANSITIONS = _env_bool("ENFORCE_STATUS_TRANSITIONS", False)

    TOP_PRODUCTS_LIMIT = int(os.environ.get("TOP_PRODUCTS_LIMIT", "5"))

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
