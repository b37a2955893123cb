# backend/barberpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Closed set of tender methods the register accepts. Loaded once at startup
# into barberpos.services.payment_methods.PaymentMethodCatalog.
DEFAULT_PAYMENT_METHODS = [
    {"id": "cash", "display_name": "Efectivo", "enabled": True},
    {"id": "card", "display_name": "Tarjeta", "enabled": True},
    {"id": "nequi", "display_name": "Nequi", "enabled": True},
    {"id": "daviplata", "display_name": "Daviplata", "enabled": True},
    {"id": "bancolombia", "display_name": "Bancolombia", "enabled": True},
    {"id": "nu", "display_name": "Nu", "enabled": True},
    {"id": "digital", "display_name": "Pago Digital", "enabled": True},
]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/barberpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///barberpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Prices are stored tax-inclusive; invoices back-calculate tax only when registered.
    TAX_REGISTERED = _env_bool("TAX_REGISTERED", False)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "1900"))  # 1900 = 19%

    PAYMENT_METHODS = DEFAULT_PAYMENT_METHODS

    # Roles allowed to adjust stock, count, reconcile and snapshot
    PRIVILEGED_ROLES = frozenset({"ADMIN"})

    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
