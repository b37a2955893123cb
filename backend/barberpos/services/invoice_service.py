# Overview: Read-only invoice reconstruction from settled sale records.

"""
Invoice aggregation (read-only).

GROUPING:
- Records carrying a cart_id group by it.
- Records without one (legacy/imported rows) group by
  (barber_id, sale_date floored to the minute). Two carts by the same barber
  inside one minute merge under this fallback; lines 10 s apart inside one
  minute form one invoice, lines straddling a minute boundary form two.

CLASSIFICATION:
- FORMAL when any line carries client_data (an empty object included),
  INFORMAL otherwise.

TAX (prices are tax-inclusive):
- subtotal = round_half_up(total / (1 + r)); tax = total - subtotal, computed
  once per invoice.
- Line subtotals are allocated from the invoice subtotal by largest remainder,
  so the lines always add up to the invoice and each line is within one minor
  unit of its exact value.
- r = TAX_RATE_BPS / 10000 when TAX_REGISTERED, else 0.

Refunded lines count as 0 in every total; their original figures are still
listed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import SaleRecord
from barberpos.time_utils import floor_to_minute, to_utc_z

INVOICE_FORMAL = "FORMAL"
INVOICE_INFORMAL = "INFORMAL"

BPS_DENOMINATOR = 10_000


@dataclass
class TaxBreakdown:
    subtotal_cents: int
    tax_cents: int
    line_subtotals: list[int] = field(default_factory=list)
    line_taxes: list[int] = field(default_factory=list)


def _round_half_up_div(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def back_calculate_tax(line_totals: list[int], rate_bps: int) -> TaxBreakdown:
    """
    Split tax-inclusive line totals into subtotal + tax.

    Always: sum(line_subtotals) + sum(line_taxes) == sum(line_totals).
    """
    total = sum(line_totals)
    if rate_bps <= 0:
        return TaxBreakdown(
            subtotal_cents=total,
            tax_cents=0,
            line_subtotals=list(line_totals),
            line_taxes=[0] * len(line_totals),
        )

    divisor = BPS_DENOMINATOR + rate_bps
    subtotal = _round_half_up_div(total * BPS_DENOMINATOR, divisor)

    floors = []
    remainders = []
    for amount in line_totals:
        q, r = divmod(amount * BPS_DENOMINATOR, divisor)
        floors.append(q)
        remainders.append(r)

    # Largest remainder first; ties keep line order. Lines with no remainder
    # (including zero-total lines) are never bumped.
    bumps = subtotal - sum(floors)
    order = sorted(
        (i for i, r in enumerate(remainders) if r > 0),
        key=lambda i: (-remainders[i], i),
    )
    line_subtotals = list(floors)
    for i in order[:bumps]:
        line_subtotals[i] += 1

    line_taxes = [amount - sub for amount, sub in zip(line_totals, line_subtotals)]
    return TaxBreakdown(
        subtotal_cents=subtotal,
        tax_cents=total - subtotal,
        line_subtotals=line_subtotals,
        line_taxes=line_taxes,
    )


def effective_tax_rate_bps() -> int:
    if not current_app.config.get("TAX_REGISTERED"):
        return 0
    return int(current_app.config.get("TAX_RATE_BPS", 0))


def group_key(record: SaleRecord) -> str:
    if record.cart_id:
        return record.cart_id
    barber = record.barber_id if record.barber_id is not None else "none"
    return f"{barber}@{to_utc_z(floor_to_minute(record.sale_date))}"


def group_sale_records(records: list[SaleRecord]) -> dict[str, list[SaleRecord]]:
    groups: dict[str, list[SaleRecord]] = {}
    for record in records:
        groups.setdefault(group_key(record), []).append(record)
    for lines in groups.values():
        lines.sort(key=lambda r: r.id)
    return groups


def _payment_summary(lines: list[SaleRecord], total: int) -> list[dict]:
    amounts: dict[str, int] = {}
    for line in lines:
        amounts[line.payment_method] = amounts.get(line.payment_method, 0) + line.display_total_cents
    return [
        {
            "payment_method": method,
            "amount_cents": amount,
            "percentage": round(amount * 100 / total, 2) if total else 0.0,
        }
        for method, amount in sorted(amounts.items())
    ]


def build_invoice(key: str, lines: list[SaleRecord], rate_bps: int) -> dict:
    first = lines[0]
    display_totals = [line.display_total_cents for line in lines]
    tax = back_calculate_tax(display_totals, rate_bps)
    client_data = next((line.client_data for line in lines if line.client_data is not None), None)

    items = []
    for line, sub, line_tax in zip(lines, tax.line_subtotals, tax.line_taxes):
        items.append({
            "sale_id": line.id,
            "line_kind": line.line_kind,
            "product_id": line.product_id,
            "service_id": line.service_id,
            "item_name": line.item_name,
            "quantity": line.display_quantity,
            "unit_price_cents": line.unit_price_cents,
            "total_cents": line.display_total_cents,
            "subtotal_cents": sub,
            "tax_cents": line_tax,
            "payment_method": line.payment_method,
            "status": line.status,
            "original_quantity": line.original_quantity,
            "original_total_cents": line.original_total_cents,
        })

    total = sum(display_totals)
    return {
        "key": key,
        "cart_id": first.cart_id,
        "barber_id": first.barber_id,
        "sale_date": to_utc_z(min(line.sale_date for line in lines)),
        "kind": INVOICE_FORMAL if client_data is not None else INVOICE_INFORMAL,
        "client_data": client_data,
        "items": items,
        "subtotal_cents": tax.subtotal_cents,
        "tax_cents": tax.tax_cents,
        "total_cents": total,
        "original_total_cents": sum(line.original_total_cents for line in lines),
        "has_refunds": any(line.is_refunded for line in lines),
        "sale_ids": [line.id for line in lines],
        "payment_breakdown": _payment_summary(lines, total),
        "tax_rate_bps": rate_bps,
    }


def _matches(invoice: dict, needle: str) -> bool:
    haystack = [invoice["key"], str(invoice["barber_id"] or "")]
    haystack.extend(item["item_name"] for item in invoice["items"])
    if invoice["client_data"]:
        haystack.extend(str(v) for v in invoice["client_data"].values() if v is not None)
    return any(needle in value.lower() for value in haystack)


def list_invoices(
    start: datetime | None = None,
    end: datetime | None = None,
    search: str | None = None,
    barber_id: int | None = None,
) -> list[dict]:
    """Invoices reconstructed from sale records, newest first."""
    q = db.session.query(SaleRecord)
    if start is not None:
        q = q.filter(SaleRecord.sale_date >= start)
    if end is not None:
        q = q.filter(SaleRecord.sale_date <= end)
    if barber_id is not None:
        q = q.filter(SaleRecord.barber_id == barber_id)

    rate_bps = effective_tax_rate_bps()
    groups = group_sale_records(q.order_by(SaleRecord.sale_date.asc(), SaleRecord.id.asc()).all())
    invoices = [build_invoice(key, lines, rate_bps) for key, lines in groups.items()]

    needle = (search or "").strip().lower()
    if needle:
        invoices = [inv for inv in invoices if _matches(inv, needle)]

    invoices.sort(key=lambda inv: (inv["sale_date"], inv["sale_ids"][0]), reverse=True)
    return invoices
