# Overview: Service-layer operations for ledger reconciliation; encapsulates business logic and database work.

"""
Consistency reconciler.

The Product aggregates (entries, exits, sales) are denormalized totals. This
module recomputes them from history:

    entries = sum(ENTRY movement quantities)
    exits   = sum(EXIT movement quantities)
    sales   = sum(quantity of ACTIVE product sale records)

and compares the recomputed expected_stock with the stored one.

MODES:
- report: lists every drifting product and writes nothing.
- fix: same computation under the product locks, then overwrites the stored
  aggregates with the recomputed truth. Running fix twice is a no-op the
  second time (fixed_count == 0).

A product whose recomputed expected_stock is negative cannot be written back
without breaking the ledger invariant. It is reported as a
ReconciliationConflict and left untouched; an operator must resolve it with a
manual movement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict

from sqlalchemy import func

from ..extensions import db
from ..models import Product, SaleRecord, StockMovement
from ..models.inventory import MOVEMENT_ENTRY, MOVEMENT_EXIT
from ..models.sales import LINE_KIND_PRODUCT, SALE_STATUS_ACTIVE
from ..validation import normalize_choice
from .concurrency import lock_all_products, run_in_transaction
from .events import event_bus, LEDGER_RECONCILED
from .ledger_service import append_ledger_event, current_inventory_version

logger = logging.getLogger(__name__)

MODE_REPORT = "REPORT"
MODE_FIX = "FIX"
RECONCILE_MODES = (MODE_REPORT, MODE_FIX)

AGGREGATES = ("entries", "exits", "sales")


@dataclass
class ReconcileEntry:
    product_id: int
    product_name: str
    stored_expected: int
    recomputed_expected: int
    delta: int
    stored: dict
    recomputed: dict


@dataclass
class ReconciliationConflict:
    product_id: int
    product_name: str
    recomputed_expected: int
    reason: str


@dataclass
class CountVariance:
    product_id: int
    product_name: str
    real_stock: int
    expected_stock: int
    difference: int


@dataclass
class ReconcileReport:
    mode: str
    checked_count: int = 0
    fixed_count: int = 0
    entries: list[ReconcileEntry] = field(default_factory=list)
    conflicts: list[ReconciliationConflict] = field(default_factory=list)
    count_variances: list[CountVariance] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.entries and not self.conflicts

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "checked_count": self.checked_count,
            "fixed_count": self.fixed_count,
            "is_consistent": self.is_consistent,
            "entries": [asdict(e) for e in self.entries],
            "conflicts": [asdict(c) for c in self.conflicts],
            "count_variances": [asdict(v) for v in self.count_variances],
        }


def _movement_totals() -> dict[int, dict[str, int]]:
    rows = (
        db.session.query(
            StockMovement.product_id,
            StockMovement.kind,
            func.coalesce(func.sum(StockMovement.quantity), 0),
        )
        .group_by(StockMovement.product_id, StockMovement.kind)
        .all()
    )
    totals: dict[int, dict[str, int]] = {}
    for product_id, kind, qty in rows:
        bucket = totals.setdefault(product_id, {"entries": 0, "exits": 0})
        if kind == MOVEMENT_ENTRY:
            bucket["entries"] = int(qty)
        elif kind == MOVEMENT_EXIT:
            bucket["exits"] = int(qty)
    return totals


def _sales_totals() -> dict[int, int]:
    rows = (
        db.session.query(SaleRecord.product_id, func.coalesce(func.sum(SaleRecord.quantity), 0))
        .filter(
            SaleRecord.line_kind == LINE_KIND_PRODUCT,
            SaleRecord.status == SALE_STATUS_ACTIVE,
        )
        .group_by(SaleRecord.product_id)
        .all()
    )
    return {product_id: int(qty) for product_id, qty in rows}


def _recompute(product: Product, movements: dict, sales: dict) -> dict:
    moved = movements.get(product.id, {})
    return {
        "entries": moved.get("entries", 0),
        "exits": moved.get("exits", 0),
        "sales": sales.get(product.id, 0),
    }


def _expected(initial_stock: int, aggregates: dict) -> int:
    return initial_stock + aggregates["entries"] - aggregates["exits"] - aggregates["sales"]


def _build_report(mode: str, products: list[Product], *, apply_fix: bool) -> ReconcileReport:
    movements = _movement_totals()
    sales = _sales_totals()
    report = ReconcileReport(mode=mode, checked_count=len(products))

    for product in products:
        stored = {name: getattr(product, name) for name in AGGREGATES}
        recomputed = _recompute(product, movements, sales)
        if stored != recomputed:
            stored_expected = product.expected_stock
            recomputed_expected = _expected(product.initial_stock, recomputed)

            if recomputed_expected < 0:
                report.conflicts.append(
                    ReconciliationConflict(
                        product_id=product.id,
                        product_name=product.name,
                        recomputed_expected=recomputed_expected,
                        reason="Recomputed expected stock is negative; record a manual ENTRY before fixing",
                    )
                )
            else:
                report.entries.append(
                    ReconcileEntry(
                        product_id=product.id,
                        product_name=product.name,
                        stored_expected=stored_expected,
                        recomputed_expected=recomputed_expected,
                        delta=recomputed_expected - stored_expected,
                        stored=stored,
                        recomputed=recomputed,
                    )
                )
                if apply_fix:
                    for name in AGGREGATES:
                        setattr(product, name, recomputed[name])
                    report.fixed_count += 1

        if product.real_stock is not None and product.real_stock != product.expected_stock:
            report.count_variances.append(
                CountVariance(
                    product_id=product.id,
                    product_name=product.name,
                    real_stock=product.real_stock,
                    expected_stock=product.expected_stock,
                    difference=product.real_stock - product.expected_stock,
                )
            )

    return report


def reconcile(mode: str = MODE_REPORT, actor_id: int | None = None) -> ReconcileReport:
    """
    Both modes read the products, movement totals and sale totals inside one
    write transaction holding every product lock, so a cart settling
    concurrently is either fully counted or not counted at all. Only FIX
    writes.
    """
    mode = normalize_choice(mode, "mode", RECONCILE_MODES)
    apply_fix = mode == MODE_FIX

    def _op():
        products = lock_all_products()
        report = _build_report(mode, products, apply_fix=apply_fix)
        if report.fixed_count:
            append_ledger_event(
                event_type=LEDGER_RECONCILED,
                event_category="inventory",
                entity_type="reconciliation",
                entity_id="all",
                actor_id=actor_id,
                note=f"Reconcile fixed {report.fixed_count} products",
                payload={"entries": [asdict(e) for e in report.entries]},
            )
        return report

    report = run_in_transaction(_op)

    if report.fixed_count:
        logger.warning(
            "Reconcile overwrote aggregates for %s products: %s",
            report.fixed_count,
            [e.product_id for e in report.entries],
        )
        event_bus.publish(
            LEDGER_RECONCILED,
            {"fixed_count": report.fixed_count, "product_ids": [e.product_id for e in report.entries]},
            version=current_inventory_version(),
        )
    if report.conflicts:
        logger.warning(
            "Reconcile left %s conflicting products untouched: %s",
            len(report.conflicts),
            [c.product_id for c in report.conflicts],
        )
    return report
