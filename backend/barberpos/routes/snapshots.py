# Overview: Flask API routes for inventory snapshots; parses input and returns JSON responses.

"""
Inventory snapshot routes.

SECURITY: Creating snapshots requires a privileged role; reads are open to
every actor.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import snapshot_service
from ..services.errors import LedgerError
from ..validation import parse_date_range
from ..decorators import require_actor, require_role

snapshots_bp = Blueprint("snapshots", __name__, url_prefix="/api/snapshots")


@snapshots_bp.post("")
@require_actor
@require_role()
def create_snapshot_route():
    try:
        data = request.get_json(silent=True) or {}
        snapshot = snapshot_service.create_snapshot(actor_id=g.actor_id, notes=data.get("notes"))
        return jsonify({"snapshot": snapshot.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create snapshot")
        return jsonify({"error": "Internal server error"}), 500


@snapshots_bp.get("")
@require_actor
def list_snapshots_route():
    """
    Query params: start, end, page (default 1), per_page (default 20, max 100)
    """
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    per_page = min(request.args.get("per_page", 20, type=int), 100)
    page = max(request.args.get("page", 1, type=int), 1)

    rows, total = snapshot_service.list_snapshots(
        start=start, end=end, limit=per_page, offset=(page - 1) * per_page
    )
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    return jsonify({
        "items": [s.to_dict(include_items=False) for s in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }), 200


@snapshots_bp.get("/stats")
@require_actor
def snapshot_stats_route():
    return jsonify(snapshot_service.snapshot_stats()), 200


@snapshots_bp.get("/<int:snapshot_id>")
@require_actor
def get_snapshot_route(snapshot_id: int):
    try:
        snapshot = snapshot_service.get_snapshot(snapshot_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"snapshot": snapshot.to_dict()}), 200


@snapshots_bp.get("/<int:snapshot_id>/compare")
@require_actor
def compare_snapshot_route(snapshot_id: int):
    try:
        diff = snapshot_service.compare_snapshot(snapshot_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify(diff), 200
