# Overview: Service-layer operations for inventory snapshots; encapsulates business logic and database work.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import InventorySnapshot, Product
from ..models.inventory import MOVEMENT_ENTRY, MOVEMENT_EXIT
from ..validation import require_positive_int
from barberpos.time_utils import utcnow, to_utc_z
from .concurrency import lock_all_products, run_in_transaction
from .errors import SnapshotNotFound
from .events import event_bus, SNAPSHOT_CREATED
from .ledger_service import append_ledger_event, current_inventory_version

logger = logging.getLogger(__name__)


def create_snapshot(actor_id, notes: str | None = None) -> InventorySnapshot:
    """
    Copy every product's ledger fields into an immutable snapshot row.

    All product rows are locked for the copy so the snapshot is a consistent
    cut: no cart can settle halfway through it.
    """
    actor_id = require_positive_int(actor_id, "actor_id")
    if notes is not None:
        notes = str(notes).strip()[:255] or None

    def _op():
        products = lock_all_products()
        items = [p.ledger_fields() for p in products]

        snapshot = InventorySnapshot(
            taken_at=utcnow(),
            actor_id=actor_id,
            notes=notes,
            items=items,
            total_products=len(items),
            total_expected_units=sum(i["expected_stock"] for i in items),
            total_value_cents=sum(i["expected_stock"] * i["price_cents"] for i in items),
            products_with_difference=sum(1 for i in items if i["difference"]),
        )
        db.session.add(snapshot)
        db.session.flush()

        append_ledger_event(
            event_type=SNAPSHOT_CREATED,
            event_category="snapshots",
            entity_type="inventory_snapshot",
            entity_id=snapshot.id,
            actor_id=actor_id,
            occurred_at=snapshot.taken_at,
            note=notes,
            payload={"total_products": snapshot.total_products},
        )
        return snapshot

    snapshot = run_in_transaction(_op)
    logger.info("Inventory snapshot %s created by actor %s", snapshot.id, actor_id)

    event_bus.publish(
        SNAPSHOT_CREATED,
        {"snapshot_id": snapshot.id, "total_products": snapshot.total_products},
        version=current_inventory_version(),
    )
    return snapshot


def get_snapshot(snapshot_id: int) -> InventorySnapshot:
    snapshot = db.session.query(InventorySnapshot).filter_by(id=snapshot_id).first()
    if snapshot is None:
        raise SnapshotNotFound(snapshot_id)
    return snapshot


def list_snapshots(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[InventorySnapshot], int]:
    q = db.session.query(InventorySnapshot)
    if start is not None:
        q = q.filter(InventorySnapshot.taken_at >= start)
    if end is not None:
        q = q.filter(InventorySnapshot.taken_at <= end)
    total = q.count()
    rows = (
        q.order_by(InventorySnapshot.taken_at.desc(), InventorySnapshot.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return rows, total


def snapshot_stats() -> dict:
    count, latest = db.session.query(
        func.count(InventorySnapshot.id), func.max(InventorySnapshot.taken_at)
    ).one()
    return {"total_snapshots": int(count or 0), "latest_taken_at": to_utc_z(latest)}


def compare_snapshot(snapshot_id: int) -> dict:
    """
    Diff a snapshot against the current ledger.

    For every product whose expected stock moved, suggest the manual movement
    that would bring it back to the snapshot figure (restore point).
    """
    snapshot = get_snapshot(snapshot_id)
    then = {item["product_id"]: item for item in snapshot.items}
    now = {p.id: p for p in db.session.query(Product).order_by(Product.id).all()}

    changes = []
    for product_id in sorted(set(then) | set(now)):
        before = then.get(product_id)
        product = now.get(product_id)

        if product is None:
            changes.append({"product_id": product_id, "name": before["name"], "status": "MISSING"})
            continue
        if before is None:
            changes.append({
                "product_id": product_id,
                "name": product.name,
                "status": "ADDED",
                "current_expected": product.expected_stock,
            })
            continue

        delta = product.expected_stock - before["expected_stock"]
        if delta == 0:
            continue
        changes.append({
            "product_id": product_id,
            "name": product.name,
            "status": "CHANGED",
            "snapshot_expected": before["expected_stock"],
            "current_expected": product.expected_stock,
            "delta": delta,
            "entries_delta": product.entries - before["entries"],
            "exits_delta": product.exits - before["exits"],
            "sales_delta": product.sales - before["sales"],
            "restore_movement": {
                "kind": MOVEMENT_EXIT if delta > 0 else MOVEMENT_ENTRY,
                "quantity": abs(delta),
            },
        })

    return {
        "snapshot": snapshot.to_dict(include_items=False),
        "compared_at": to_utc_z(utcnow()),
        "changes": changes,
    }
