# Overview: Startup-loaded payment method catalog and validation against it.

"""
Payment method catalog.

The register accepts a closed, explicitly enumerated set of tender methods
configured in Config.PAYMENT_METHODS as {id, display_name, enabled}. The set
is loaded once in create_app() and is immutable afterwards; every cart line
and every stock ENTRY that names a payment method is validated against it.
Aliases are not resolved: clients send the canonical id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app

from .errors import InvalidPaymentMethod

EXTENSION_KEY = "payment_methods"


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    display_name: str
    enabled: bool = True

    def to_dict(self) -> dict:
        return {"id": self.id, "display_name": self.display_name, "enabled": self.enabled}


class PaymentMethodCatalog:
    def __init__(self, methods: Iterable[PaymentMethod]):
        by_id: dict[str, PaymentMethod] = {}
        for method in methods:
            if method.id in by_id:
                raise ValueError(f"duplicate payment method id: {method.id}")
            by_id[method.id] = method
        self._by_id = by_id

    @classmethod
    def from_config(cls, raw_methods: Iterable[dict]) -> "PaymentMethodCatalog":
        methods = []
        for raw in raw_methods:
            method_id = str(raw.get("id") or "").strip().lower()
            if not method_id:
                raise ValueError("payment method id is required")
            methods.append(
                PaymentMethod(
                    id=method_id,
                    display_name=str(raw.get("display_name") or method_id),
                    enabled=bool(raw.get("enabled", True)),
                )
            )
        return cls(methods)

    def all(self) -> list[PaymentMethod]:
        return list(self._by_id.values())

    def enabled_ids(self) -> list[str]:
        return [m.id for m in self._by_id.values() if m.enabled]

    def get(self, method_id: str) -> PaymentMethod | None:
        return self._by_id.get(method_id)

    def validate(self, value) -> str:
        """Return the canonical id, or raise InvalidPaymentMethod."""
        if not isinstance(value, str) or not value.strip():
            raise InvalidPaymentMethod(value, self.enabled_ids())
        method = self._by_id.get(value.strip().lower())
        if method is None or not method.enabled:
            raise InvalidPaymentMethod(value, self.enabled_ids())
        return method.id


def init_app(app) -> None:
    app.extensions[EXTENSION_KEY] = PaymentMethodCatalog.from_config(app.config["PAYMENT_METHODS"])


def get_catalog() -> PaymentMethodCatalog:
    return current_app.extensions[EXTENSION_KEY]
