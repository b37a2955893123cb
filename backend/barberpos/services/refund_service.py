# Overview: Service-layer operations for refunds; encapsulates business logic and database work.

"""
Refund processing.

A refund flips one SaleRecord from ACTIVE to REFUNDED and, for product lines,
credits the ledger back (sales -= original_quantity). The record keeps its
original figures; readers show 0 for refunded lines via display_quantity /
display_total_cents.

GUARDS:
- The sale row is locked before its status is checked, so two concurrent
  refunds of one sale cannot both pass the ACTIVE check.
- The second refund of a sale raises AlreadyRefunded and changes nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import SaleRecord
from ..models.sales import LINE_KIND_PRODUCT, SALE_STATUS_REFUNDED
from ..validation import require_text
from barberpos.time_utils import utcnow, to_utc_z
from .concurrency import lock_for_update, run_in_transaction
from .errors import AlreadyRefunded, SaleNotFound
from .events import event_bus, SALE_REFUNDED
from .inventory_service import credit_for_refund
from .ledger_service import append_ledger_event, current_inventory_version

logger = logging.getLogger(__name__)


def refund_sale(sale_id: int, reason, actor_id: int | None = None) -> SaleRecord:
    reason = require_text(reason, "reason")

    def _op():
        sale = lock_for_update(db.session.query(SaleRecord).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFound(sale_id)
        if sale.is_refunded:
            raise AlreadyRefunded(sale_id, to_utc_z(sale.refunded_at))

        credited = 0
        if sale.line_kind == LINE_KIND_PRODUCT:
            credited = credit_for_refund(sale.product_id, sale.original_quantity)
            if credited < sale.original_quantity:
                logger.warning(
                    "Refund of sale %s credited %s of %s units for product %s; sales aggregate had drifted",
                    sale.id, credited, sale.original_quantity, sale.product_id,
                )

        sale.status = SALE_STATUS_REFUNDED
        sale.refund_reason = reason
        sale.refunded_at = utcnow()
        sale.refunded_by = actor_id

        append_ledger_event(
            event_type=SALE_REFUNDED,
            event_category="sales",
            entity_type="sale_record",
            entity_id=sale.id,
            actor_id=actor_id,
            occurred_at=sale.refunded_at,
            note=reason,
            payload={
                "cart_id": sale.cart_id,
                "product_id": sale.product_id,
                "credited_quantity": credited,
                "original_total_cents": sale.original_total_cents,
            },
        )
        return sale, credited

    sale, credited = run_in_transaction(_op)

    event_bus.publish(
        SALE_REFUNDED,
        {
            "sale_id": sale.id,
            "cart_id": sale.cart_id,
            "product_id": sale.product_id,
            "credited_quantity": credited,
        },
        version=current_inventory_version(),
    )
    return sale


def _refunded_query(start: datetime | None, end: datetime | None, barber_id: int | None):
    q = db.session.query(SaleRecord).filter(SaleRecord.status == SALE_STATUS_REFUNDED)
    if start is not None:
        q = q.filter(SaleRecord.refunded_at >= start)
    if end is not None:
        q = q.filter(SaleRecord.refunded_at <= end)
    if barber_id is not None:
        q = q.filter(SaleRecord.barber_id == barber_id)
    return q


def list_refunded_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    barber_id: int | None = None,
) -> dict:
    """Refunded records, newest refund first, with count and refunded amount."""
    rows = (
        _refunded_query(start, end, barber_id)
        .order_by(SaleRecord.refunded_at.desc(), SaleRecord.id.desc())
        .all()
    )
    return {
        "sales": rows,
        "stats": {
            "total_refunds": len(rows),
            "total_refunded_cents": sum(r.original_total_cents for r in rows),
            "total_refunded_units": sum(
                r.original_quantity for r in rows if r.line_kind == LINE_KIND_PRODUCT
            ),
        },
    }


def refund_summary_by_barber(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict]:
    rows = (
        _refunded_query(start, end, None)
        .with_entities(
            SaleRecord.barber_id,
            func.count(SaleRecord.id),
            func.coalesce(func.sum(SaleRecord.original_total_cents), 0),
        )
        .group_by(SaleRecord.barber_id)
        .order_by(SaleRecord.barber_id.asc())
        .all()
    )
    return [
        {
            "barber_id": barber_id,
            "refund_count": int(count),
            "refunded_cents": int(amount),
        }
        for barber_id, count, amount in rows
    ]
