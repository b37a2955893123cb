# Overview: Service-layer operations for the product ledger; encapsulates business logic and database work.

# backend/barberpos/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, StockMovement, StockCount
from ..models.inventory import MOVEMENT_ENTRY, MOVEMENT_EXIT, MOVEMENT_KINDS
from ..validation import (
    require_non_negative_int,
    require_positive_int,
    require_text,
    normalize_choice,
    MAX_LINE_QUANTITY,
)
from barberpos.time_utils import utcnow
from .concurrency import lock_products, run_in_transaction
from .errors import InsufficientStock, ProductNotFound, ValidationError
from .events import event_bus, STOCK_MOVED, STOCK_COUNTED
from .ledger_service import append_ledger_event, current_inventory_version
from .payment_methods import get_catalog
"""
Product Ledger Invariants (authoritative)

Stock model:
- expected_stock = initial_stock + entries - exits - sales
- expected_stock is the ONLY figure used to decide availability.
- real_stock is the last manual count; informational, never used to sell.

Write rules:
- This module is the sole writer of entries, exits, sales and real_stock.
- Every mutation runs with the product row locked (lock_products) inside a
  write transaction (run_in_transaction) and leaves expected_stock >= 0.
- reserve_and_debit_for_sale / credit_for_refund do NOT commit: they are
  ledger primitives for the settlement and refund transactions, which own
  the commit. apply_movement / record_manual_count are complete operations.
- Service lines never touch the ledger.

Audit:
- Each committed mutation appends a LedgerEvent in the same transaction and
  publishes an InventoryEvent after commit.
"""


def _get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise ProductNotFound(product_id)
    if require_active and not product.is_active:
        raise ProductNotFound(product_id)
    return product


def _lock_product(product_id: int, *, require_active: bool = False) -> Product:
    product = lock_products([product_id]).get(product_id)
    if product is None or (require_active and not product.is_active):
        raise ProductNotFound(product_id)
    return product


def get_available(product_id: int) -> int:
    """Authoritative sellable quantity (expected_stock)."""
    return _get_product(product_id).expected_stock


def ensure_available(products: dict[int, Product], requested: dict[int, int]) -> None:
    """
    Check every requested quantity against locked rows in one pass.

    Collects ALL shortfalls so the caller can show the whole problem at once.
    """
    insufficient = []
    for product_id in sorted(requested):
        product = products[product_id]
        available = product.expected_stock
        if available < requested[product_id]:
            insufficient.append({
                "product_id": product_id,
                "product_name": product.name,
                "requested_quantity": requested[product_id],
                "available": available,
            })
    if insufficient:
        raise InsufficientStock(insufficient)


def reserve_and_debit_for_sale(product_id: int, quantity: int) -> Product:
    """
    Check availability and increment sales, under the product lock.

    Must run inside the caller's write transaction; it does not commit.
    """
    quantity = require_positive_int(quantity, "quantity")
    product = _lock_product(product_id, require_active=True)
    ensure_available({product.id: product}, {product.id: quantity})
    product.sales = product.sales + quantity
    return product


def credit_for_refund(product_id: int, quantity: int) -> int:
    """
    Reverse a prior debit: sales -= quantity, never below zero.

    Returns the quantity actually credited. The AlreadyRefunded guard lives in
    refund_service; calling this twice for one sale double-credits.
    Must run inside the caller's write transaction; it does not commit.
    """
    quantity = require_positive_int(quantity, "quantity")
    product = _lock_product(product_id)
    credited = min(quantity, product.sales)
    product.sales = product.sales - credited
    return credited


def apply_movement(
    product_id: int,
    kind: str,
    quantity,
    reason,
    cost_cents=None,
    payment_method: str | None = None,
    actor_id: int | None = None,
) -> StockMovement:
    """
    Record a manual ENTRY or EXIT and update the matching aggregate.

    - ENTRY may carry cost_cents and the payment_method used to pay for it.
    - EXIT fails with InsufficientStock if it would make expected_stock negative.

    Returns the created StockMovement; the updated product is movement.product.
    """
    kind = normalize_choice(kind, "kind", MOVEMENT_KINDS)
    quantity = require_positive_int(quantity, "quantity", maximum=MAX_LINE_QUANTITY)
    reason = require_text(reason, "reason")
    if cost_cents is not None:
        cost_cents = require_non_negative_int(cost_cents, "cost_cents")
    if payment_method is not None:
        if kind != MOVEMENT_ENTRY:
            raise ValidationError("payment_method is only allowed on ENTRY movements")
        payment_method = get_catalog().validate(payment_method)

    def _op():
        product = _lock_product(product_id, require_active=True)

        if kind == MOVEMENT_EXIT:
            ensure_available({product.id: product}, {product.id: quantity})
            product.exits = product.exits + quantity
        else:
            product.entries = product.entries + quantity

        movement = StockMovement(
            product_id=product.id,
            kind=kind,
            quantity=quantity,
            reason=reason,
            cost_cents=cost_cents,
            payment_method=payment_method,
            actor_id=actor_id,
            occurred_at=utcnow(),
        )
        db.session.add(movement)
        db.session.flush()

        append_ledger_event(
            event_type=STOCK_MOVED,
            event_category="inventory",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_id=actor_id,
            occurred_at=movement.occurred_at,
            note=reason,
            payload={
                "product_id": product.id,
                "kind": kind,
                "quantity": quantity,
                "expected_stock": product.expected_stock,
            },
        )
        return product, movement

    product, movement = run_in_transaction(_op)

    event_bus.publish(
        STOCK_MOVED,
        {"product_id": product.id, "movement_id": movement.id, "kind": kind, "quantity": quantity},
        version=current_inventory_version(),
    )
    return movement


def record_manual_count(
    product_id: int,
    real_stock,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Product:
    """
    Store a physical count. Leaves entries / exits / sales untouched.

    The variance (difference) is kept on the count row so later counts do not
    erase earlier discrepancies.
    """
    real_stock = require_non_negative_int(real_stock, "real_stock")
    if notes is not None:
        notes = str(notes).strip()[:255] or None

    def _op():
        product = _lock_product(product_id)
        product.real_stock = real_stock

        count = StockCount(
            product_id=product.id,
            real_stock=real_stock,
            expected_stock=product.expected_stock,
            difference=real_stock - product.expected_stock,
            notes=notes,
            actor_id=actor_id,
            counted_at=utcnow(),
        )
        db.session.add(count)
        db.session.flush()

        append_ledger_event(
            event_type=STOCK_COUNTED,
            event_category="inventory",
            entity_type="stock_count",
            entity_id=count.id,
            actor_id=actor_id,
            occurred_at=count.counted_at,
            note=notes,
            payload={
                "product_id": product.id,
                "real_stock": real_stock,
                "expected_stock": count.expected_stock,
                "difference": count.difference,
            },
        )
        return product, count

    product, count = run_in_transaction(_op)

    event_bus.publish(
        STOCK_COUNTED,
        {"product_id": product.id, "real_stock": real_stock, "difference": count.difference},
        version=current_inventory_version(),
    )
    return product


def list_movements(
    product_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Movement history for one product, newest first."""
    _get_product(product_id)

    q = db.session.query(StockMovement).filter(StockMovement.product_id == product_id)
    if start is not None:
        q = q.filter(StockMovement.occurred_at >= start)
    if end is not None:
        q = q.filter(StockMovement.occurred_at <= end)

    return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()


def list_counts(product_id: int, *, limit: int = 50) -> list[StockCount]:
    _get_product(product_id)
    return (
        db.session.query(StockCount)
        .filter(StockCount.product_id == product_id)
        .order_by(StockCount.counted_at.desc(), StockCount.id.desc())
        .limit(limit)
        .all()
    )


def _expected_stock_expr():
    return Product.initial_stock + Product.entries - Product.exits - Product.sales


def list_low_stock() -> list[Product]:
    """Active products at or below their reorder threshold, emptiest first."""
    expected = _expected_stock_expr()
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), expected <= Product.min_stock)
        .order_by(expected.asc(), Product.name.asc())
        .all()
    )


def get_inventory_stats() -> dict:
    """Per-category units, value (expected_stock x price) and low-stock counts."""
    expected = _expected_stock_expr()
    rows = (
        db.session.query(
            Product.category.label("category"),
            func.count(Product.id).label("total_items"),
            func.coalesce(func.sum(expected), 0).label("total_units"),
            func.coalesce(func.sum(expected * Product.price_cents), 0).label("total_value_cents"),
            func.coalesce(
                func.sum(case((expected <= Product.min_stock, 1), else_=0)), 0
            ).label("low_stock_items"),
        )
        .filter(Product.is_active.is_(True))
        .group_by(Product.category)
        .order_by(Product.category.asc())
        .all()
    )

    by_category = [
        {
            "category": r.category,
            "total_items": int(r.total_items),
            "total_units": int(r.total_units),
            "total_value_cents": int(r.total_value_cents),
            "low_stock_items": int(r.low_stock_items),
        }
        for r in rows
    ]
    totals = {
        "total_items": sum(c["total_items"] for c in by_category),
        "total_units": sum(c["total_units"] for c in by_category),
        "total_value_cents": sum(c["total_value_cents"] for c in by_category),
        "low_stock_items": sum(c["low_stock_items"] for c in by_category),
    }
    return {"by_category": by_category, "totals": totals}
