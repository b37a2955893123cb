# Overview: Service-layer operations for cart settlement; encapsulates business logic and database work.

"""
Cart settlement.

A cart is settled in ONE write transaction:
1. Validate every line (shape, quantity, price, payment method) before
   touching the database.
2. Lock every referenced product in ascending id order.
3. Check stock for the whole cart at once; quantities of a product that
   appears on several lines are summed. Any shortfall rejects the cart.
4. Debit the ledger, write one SaleRecord per line sharing a cart_id and a
   sale_date, append the ledger event, commit.

Any failure rolls the whole cart back (run_in_transaction): no debit and no
SaleRecord survive a rejected cart.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from ..extensions import db
from ..models import SaleRecord, ServiceOffering
from ..models.sales import (
    LINE_KIND_PRODUCT,
    LINE_KIND_SERVICE,
    LINE_KINDS,
    SALE_STATUS_ACTIVE,
    SALE_STATUS_REFUNDED,
)
from ..validation import (
    require_positive_int,
    normalize_choice,
    MAX_LINE_QUANTITY,
    MAX_PRICE_CENTS,
)
from barberpos.time_utils import utcnow
from .concurrency import lock_products, run_in_transaction
from .errors import ProductNotFound, SaleNotFound, ServiceNotFound, ValidationError
from .events import event_bus, SALE_SETTLED
from .inventory_service import ensure_available, reserve_and_debit_for_sale
from .ledger_service import append_ledger_event, current_inventory_version
from .payment_methods import get_catalog


@dataclass(frozen=True)
class CartLine:
    line_kind: str
    item_id: int
    quantity: int
    unit_price_cents: int
    payment_method: str
    client_data: dict | None = None
    has_client_override: bool = False

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass
class SettledCart:
    cart_id: str
    sale_records: list[SaleRecord]
    total_cents: int
    payment_breakdown: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "cart_id": self.cart_id,
            "sale_records": [r.to_dict() for r in self.sale_records],
            "total_cents": self.total_cents,
            "payment_breakdown": self.payment_breakdown,
        }


def _validate_client_data(value, field_name: str) -> dict | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{field_name} must be an object")
    return value


def validate_cart_lines(lines) -> list[CartLine]:
    """
    Normalize raw cart lines.

    Each line: {type, id, quantity, price, payment_method, client_data?}.
    Errors name the offending line index in details.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Cart must contain at least one line")

    catalog = get_catalog()
    validated = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError("Each cart line must be an object", details={"line": index})
        try:
            line_kind = normalize_choice(raw.get("type"), "type", LINE_KINDS)
            item_id = require_positive_int(raw.get("id"), "id")
            quantity = require_positive_int(raw.get("quantity"), "quantity", maximum=MAX_LINE_QUANTITY)
            price = require_positive_int(raw.get("price"), "price", maximum=MAX_PRICE_CENTS)
            client_data = _validate_client_data(raw.get("client_data"), "client_data")
        except ValidationError as exc:
            exc.details = {**exc.details, "line": index}
            raise
        payment_method = catalog.validate(raw.get("payment_method"))

        validated.append(
            CartLine(
                line_kind=line_kind,
                item_id=item_id,
                quantity=quantity,
                unit_price_cents=price,
                payment_method=payment_method,
                client_data=client_data,
                has_client_override="client_data" in raw and client_data is not None,
            )
        )
    return validated


def _requested_by_product(lines: list[CartLine]) -> dict[int, int]:
    requested: dict[int, int] = {}
    for line in lines:
        if line.line_kind == LINE_KIND_PRODUCT:
            requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity
    return requested


def _load_services(lines: list[CartLine]) -> dict[int, ServiceOffering]:
    ids = sorted({l.item_id for l in lines if l.line_kind == LINE_KIND_SERVICE})
    if not ids:
        return {}
    rows = db.session.query(ServiceOffering).filter(ServiceOffering.id.in_(ids)).all()
    services = {s.id: s for s in rows if s.is_active}
    for service_id in ids:
        if service_id not in services:
            raise ServiceNotFound(service_id)
    return services


def create_cart_sale(
    lines,
    barber_id=None,
    client_data=None,
    actor_id: int | None = None,
) -> SettledCart:
    """
    Settle a cart atomically against the product ledger.

    Raises ValidationError, InvalidPaymentMethod, ProductNotFound,
    ServiceNotFound or InsufficientStock (listing every short product).
    """
    cart_lines = validate_cart_lines(lines)
    if barber_id is not None:
        barber_id = require_positive_int(barber_id, "barber_id")
    client_data = _validate_client_data(client_data, "client_data")
    requested = _requested_by_product(cart_lines)

    def _op():
        products = lock_products(requested.keys())
        for product_id in sorted(requested):
            product = products.get(product_id)
            if product is None or not product.is_active:
                raise ProductNotFound(product_id)
        services = _load_services(cart_lines)

        ensure_available(products, requested)
        for product_id in sorted(requested):
            reserve_and_debit_for_sale(product_id, requested[product_id])

        cart_id = uuid.uuid4().hex
        sale_date = utcnow()
        records = []
        for line in cart_lines:
            if line.line_kind == LINE_KIND_PRODUCT:
                item_name = products[line.item_id].name
            else:
                item_name = services[line.item_id].name

            record = SaleRecord(
                cart_id=cart_id,
                line_kind=line.line_kind,
                product_id=line.item_id if line.line_kind == LINE_KIND_PRODUCT else None,
                service_id=line.item_id if line.line_kind == LINE_KIND_SERVICE else None,
                item_name=item_name,
                barber_id=barber_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_amount_cents=line.total_cents,
                payment_method=line.payment_method,
                status=SALE_STATUS_ACTIVE,
                sale_date=sale_date,
                client_data=line.client_data if line.has_client_override else client_data,
                original_quantity=line.quantity,
                original_total_cents=line.total_cents,
                created_by=actor_id,
            )
            db.session.add(record)
            records.append(record)
        db.session.flush()

        breakdown: dict[str, int] = {}
        for record in records:
            breakdown[record.payment_method] = breakdown.get(record.payment_method, 0) + record.total_amount_cents
        total = sum(r.total_amount_cents for r in records)

        append_ledger_event(
            event_type=SALE_SETTLED,
            event_category="sales",
            entity_type="cart",
            entity_id=cart_id,
            actor_id=actor_id,
            occurred_at=sale_date,
            note=f"Cart {cart_id} settled ({len(records)} lines)",
            payload={
                "sale_ids": [r.id for r in records],
                "debits": {str(pid): qty for pid, qty in sorted(requested.items())},
                "total_cents": total,
            },
        )
        return SettledCart(
            cart_id=cart_id,
            sale_records=records,
            total_cents=total,
            payment_breakdown=breakdown,
        )

    settled = run_in_transaction(_op)

    event_bus.publish(
        SALE_SETTLED,
        {
            "cart_id": settled.cart_id,
            "sale_ids": [r.id for r in settled.sale_records],
            "product_ids": sorted(requested),
            "total_cents": settled.total_cents,
        },
        version=current_inventory_version(),
    )
    return settled


def get_sale(sale_id: int) -> SaleRecord:
    sale = db.session.query(SaleRecord).filter_by(id=sale_id).first()
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    barber_id: int | None = None,
    status: str | None = None,
    line_kind: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[SaleRecord], int]:
    """Sale records newest first, with the unpaginated count."""
    q = db.session.query(SaleRecord)
    if start is not None:
        q = q.filter(SaleRecord.sale_date >= start)
    if end is not None:
        q = q.filter(SaleRecord.sale_date <= end)
    if barber_id is not None:
        q = q.filter(SaleRecord.barber_id == barber_id)
    if status:
        q = q.filter(SaleRecord.status == normalize_choice(status, "status", (SALE_STATUS_ACTIVE, SALE_STATUS_REFUNDED)))
    if line_kind:
        q = q.filter(SaleRecord.line_kind == normalize_choice(line_kind, "line_kind", LINE_KINDS))

    total = q.count()
    rows = (
        q.order_by(SaleRecord.sale_date.desc(), SaleRecord.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return rows, total
