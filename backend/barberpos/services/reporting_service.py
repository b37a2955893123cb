# Overview: Service-layer operations for sales and invoice reporting; read-only aggregates over sale records.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, cast, func

from ..extensions import db
from ..models import SaleRecord
from ..models.sales import SALE_STATUS_ACTIVE, SALE_STATUS_REFUNDED
from ..validation import normalize_choice
from barberpos.time_utils import to_utc_z
from .invoice_service import INVOICE_FORMAL, list_invoices

GROUP_BY_CHOICES = ("DAY", "WEEK", "MONTH")

_PERIOD_FORMATS = {
    "DAY": "%Y-%m-%d",
    "WEEK": "%Y-W%W",
    "MONTH": "%Y-%m",
}


def _filtered(query, start: datetime | None, end: datetime | None, barber_id: int | None):
    if start is not None:
        query = query.filter(SaleRecord.sale_date >= start)
    if end is not None:
        query = query.filter(SaleRecord.sale_date <= end)
    if barber_id is not None:
        query = query.filter(SaleRecord.barber_id == barber_id)
    return query


def _totals_by(column, start, end, barber_id) -> dict[str, int]:
    rows = _filtered(
        db.session.query(column, func.coalesce(func.sum(SaleRecord.total_amount_cents), 0))
        .filter(SaleRecord.status == SALE_STATUS_ACTIVE),
        start,
        end,
        barber_id,
    ).group_by(column).order_by(column).all()
    return {key: int(amount) for key, amount in rows}


def sales_report(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    group_by: str = "day",
    barber_id: int | None = None,
) -> dict:
    """
    Active sales totalled per day, week or month.

    Refunded lines are excluded. Each row reports lines, carts (legacy rows
    without a cart_id count as one cart per line), units and gross cents.
    """
    group_by = normalize_choice(group_by, "group_by", GROUP_BY_CHOICES)
    period_expr = func.strftime(_PERIOD_FORMATS[group_by], SaleRecord.sale_date)
    cart_expr = func.coalesce(SaleRecord.cart_id, cast(SaleRecord.id, String))

    query = _filtered(
        db.session.query(
            period_expr.label("period"),
            func.count(SaleRecord.id).label("line_count"),
            func.count(func.distinct(cart_expr)).label("cart_count"),
            func.coalesce(func.sum(SaleRecord.quantity), 0).label("units_sold"),
            func.coalesce(func.sum(SaleRecord.total_amount_cents), 0).label("gross_sales_cents"),
        ).filter(SaleRecord.status == SALE_STATUS_ACTIVE),
        start,
        end,
        barber_id,
    )
    rows = query.group_by("period").order_by("period").all()

    report_rows = [
        {
            "period": row.period,
            "line_count": int(row.line_count or 0),
            "cart_count": int(row.cart_count or 0),
            "units_sold": int(row.units_sold or 0),
            "gross_sales_cents": int(row.gross_sales_cents or 0),
        }
        for row in rows
    ]
    gross = sum(r["gross_sales_cents"] for r in report_rows)
    carts = sum(r["cart_count"] for r in report_rows)

    return {
        "group_by": group_by.lower(),
        "start": to_utc_z(start) if start else None,
        "end": to_utc_z(end) if end else None,
        "barber_id": barber_id,
        "rows": report_rows,
        "by_line_kind": _totals_by(SaleRecord.line_kind, start, end, barber_id),
        "by_payment_method": _totals_by(SaleRecord.payment_method, start, end, barber_id),
        "summary": {
            "line_count": sum(r["line_count"] for r in report_rows),
            "cart_count": carts,
            "units_sold": sum(r["units_sold"] for r in report_rows),
            "gross_sales_cents": gross,
            "avg_cart_cents": gross // carts if carts else 0,
        },
    }


def sales_stats(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    barber_id: int | None = None,
) -> dict:
    """Headline figures for a range: active line totals plus refunds."""
    active = _filtered(
        db.session.query(
            func.count(SaleRecord.id),
            func.coalesce(func.sum(SaleRecord.total_amount_cents), 0),
            func.max(SaleRecord.total_amount_cents),
            func.min(SaleRecord.total_amount_cents),
        ).filter(SaleRecord.status == SALE_STATUS_ACTIVE),
        start,
        end,
        barber_id,
    ).one()
    refunded = _filtered(
        db.session.query(
            func.count(SaleRecord.id),
            func.coalesce(func.sum(SaleRecord.original_total_cents), 0),
        ).filter(SaleRecord.status == SALE_STATUS_REFUNDED),
        start,
        end,
        barber_id,
    ).one()

    line_count, total, max_line, min_line = active
    line_count = int(line_count or 0)
    total = int(total or 0)
    return {
        "line_count": line_count,
        "total_cents": total,
        "avg_line_cents": total // line_count if line_count else 0,
        "max_line_cents": int(max_line or 0),
        "min_line_cents": int(min_line or 0),
        "refunded_count": int(refunded[0] or 0),
        "refunded_cents": int(refunded[1] or 0),
        "by_line_kind": _totals_by(SaleRecord.line_kind, start, end, barber_id),
        "by_payment_method": _totals_by(SaleRecord.payment_method, start, end, barber_id),
    }


def invoice_stats(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    barber_id: int | None = None,
) -> dict:
    invoices = list_invoices(start=start, end=end, barber_id=barber_id)
    formal = sum(1 for inv in invoices if inv["kind"] == INVOICE_FORMAL)
    return {
        "total_invoices": len(invoices),
        "formal_invoices": formal,
        "informal_invoices": len(invoices) - formal,
        "invoices_with_refunds": sum(1 for inv in invoices if inv["has_refunds"]),
        "total_cents": sum(inv["total_cents"] for inv in invoices),
        "subtotal_cents": sum(inv["subtotal_cents"] for inv in invoices),
        "tax_cents": sum(inv["tax_cents"] for inv in invoices),
    }
