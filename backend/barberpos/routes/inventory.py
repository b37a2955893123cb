# Overview: Flask API routes for the product ledger; parses input and returns JSON responses.

# backend/barberpos/routes/inventory.py
"""
Inventory ledger routes.

SECURITY:
- Reads (availability, history, stats, version) are open to every actor
- Movements, counts and reconciliation require a privileged role
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..services import inventory_service, reconcile_service, ledger_service
from ..services.errors import LedgerError
from ..validation import parse_date_range
from ..decorators import require_actor, require_role

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<int:product_id>/available")
@require_actor
def available_route(product_id: int):
    try:
        available = inventory_service.get_available(product_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"product_id": product_id, "available": available}), 200


@inventory_bp.post("/<int:product_id>/movements")
@require_actor
@require_role()
def apply_movement_route(product_id: int):
    """
    Record a manual stock ENTRY or EXIT.

    Body: {kind, quantity, reason, cost_cents?, payment_method?}
    """
    try:
        data = request.get_json(silent=True) or {}

        movement = inventory_service.apply_movement(
            product_id=product_id,
            kind=data.get("kind"),
            quantity=data.get("quantity"),
            reason=data.get("reason"),
            cost_cents=data.get("cost_cents"),
            payment_method=data.get("payment_method"),
            actor_id=g.actor_id,
        )

        return jsonify({"product": movement.product.to_dict(), "movement": movement.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/movements")
@require_actor
def list_movements_route(product_id: int):
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        limit = min(request.args.get("limit", 200, type=int), 1000)
        movements = inventory_service.list_movements(product_id, start=start, end=end, limit=limit)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200


@inventory_bp.post("/<int:product_id>/count")
@require_actor
@require_role()
def record_count_route(product_id: int):
    """
    Record a physical count. Body: {real_stock, notes?}
    """
    try:
        data = request.get_json(silent=True) or {}

        product = inventory_service.record_manual_count(
            product_id=product_id,
            real_stock=data.get("real_stock"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"product": product.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record manual count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>/counts")
@require_actor
def list_counts_route(product_id: int):
    try:
        counts = inventory_service.list_counts(product_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": [c.to_dict() for c in counts], "count": len(counts)}), 200


@inventory_bp.get("/low-stock")
@require_actor
def low_stock_route():
    products = inventory_service.list_low_stock()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@inventory_bp.get("/stats")
@require_actor
def stats_route():
    return jsonify(inventory_service.get_inventory_stats()), 200


@inventory_bp.post("/reconcile")
@require_actor
@require_role()
def reconcile_route():
    """
    Recompute ledger aggregates from history.

    Body: {mode: "report" | "fix"} (default report)
    """
    try:
        data = request.get_json(silent=True) or {}
        report = reconcile_service.reconcile(mode=data.get("mode") or "report", actor_id=g.actor_id)
        return jsonify(report.to_dict()), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/version")
@require_actor
def version_route():
    """Pollable counter; changes iff a ledger mutation committed."""
    return jsonify({"version": ledger_service.current_inventory_version()}), 200


@inventory_bp.get("/events")
@require_actor
def events_route():
    """
    Ledger events after ?since=<version>, oldest first.

    Query params:
    - since: int (optional)
    - category: str (optional) - inventory, sales, snapshots, catalog
    - limit: int (optional, default 200, max 1000)
    """
    since = request.args.get("since", type=int)
    category = request.args.get("category")
    limit = min(request.args.get("limit", 200, type=int), 1000)

    events = ledger_service.list_ledger_events(since_id=since, category=category, limit=limit)
    return jsonify({
        "items": [e.to_dict() for e in events],
        "count": len(events),
        "version": ledger_service.current_inventory_version(),
    }), 200
