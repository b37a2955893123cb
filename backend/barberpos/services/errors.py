# Overview: Typed failures raised by the ledger core; routes map them to HTTP responses.

"""
Error taxonomy for the inventory ledger.

Every error here is recoverable by the caller. A service that raises one of
these has already rolled back, so the ledger is exactly as it was before the
call. Reconciliation conflicts are NOT exceptions; they are report entries
(see reconcile_service.ReconciliationConflict).
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for typed ledger failures."""

    status_code = 400
    code = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(LedgerError, ValueError):
    """Malformed input: non-positive quantity/price, unknown enum value, blank field."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InsufficientStock(LedgerError):
    """Requested quantity exceeds expected stock. Details carry the shortfall."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, items: list[dict]):
        first = items[0]
        super().__init__(
            f"Insufficient stock for product {first['product_id']}: "
            f"requested {first['requested_quantity']}, available {first['available']}",
            details={"items": items},
        )
        self.items = items


class ProductNotFound(LedgerError):
    status_code = 404
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found", details={"product_id": product_id})


class ServiceNotFound(LedgerError):
    status_code = 404
    code = "SERVICE_NOT_FOUND"

    def __init__(self, service_id):
        super().__init__(f"Service {service_id} not found", details={"service_id": service_id})


class SaleNotFound(LedgerError):
    status_code = 404
    code = "SALE_NOT_FOUND"

    def __init__(self, sale_id):
        super().__init__(f"Sale {sale_id} not found", details={"sale_id": sale_id})


class SnapshotNotFound(LedgerError):
    status_code = 404
    code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id):
        super().__init__(f"Snapshot {snapshot_id} not found", details={"snapshot_id": snapshot_id})


class InvalidPaymentMethod(LedgerError):
    status_code = 400
    code = "INVALID_PAYMENT_METHOD"

    def __init__(self, payment_method, allowed: list[str] | None = None):
        super().__init__(
            f"Payment method {payment_method!r} is not an enabled payment method",
            details={"payment_method": payment_method, "allowed": allowed or []},
        )


class AlreadyRefunded(LedgerError):
    status_code = 409
    code = "ALREADY_REFUNDED"

    def __init__(self, sale_id, refunded_at=None):
        super().__init__(
            f"Sale {sale_id} has already been refunded",
            details={"sale_id": sale_id, "refunded_at": refunded_at},
        )


class ProductInUse(LedgerError):
    """Deleting a product would orphan sale or movement history."""

    status_code = 409
    code = "PRODUCT_IN_USE"

    def __init__(self, product_id, sale_count: int, movement_count: int, count_count: int = 0):
        super().__init__(
            f"Product {product_id} has history and cannot be deleted; deactivate it instead",
            details={
                "product_id": product_id,
                "sale_count": sale_count,
                "movement_count": movement_count,
                "count_count": count_count,
            },
        )


class ConflictError(LedgerError):
    """Unique catalog field already taken (product code, service name)."""

    status_code = 409
    code = "CONFLICT"
