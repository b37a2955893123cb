# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/barberpos/routes/sales.py
"""Cart settlement, sale lookup and refund routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import cart_service, refund_service
from ..services.errors import LedgerError
from ..validation import parse_date_range
from ..decorators import require_actor


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/cart")
@require_actor
def create_cart_sale_route():
    """
    Settle a whole cart atomically.

    Body: {
        lines: [{type, id, quantity, price, payment_method, client_data?}],
        barber_id?: int,
        client_data?: object
    }

    Returns 409 INSUFFICIENT_STOCK listing every short product; nothing is
    written in that case.
    """
    try:
        data = request.get_json(silent=True) or {}

        settled = cart_service.create_cart_sale(
            lines=data.get("lines"),
            barber_id=data.get("barber_id"),
            client_data=data.get("client_data"),
            actor_id=g.actor_id,
        )
        return jsonify(settled.to_dict()), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to settle cart")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_actor
def list_sales_route():
    """
    List sale records, newest first.

    Query params: start, end, barber_id, status, line_kind, limit, offset
    """
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        limit = min(request.args.get("limit", 100, type=int), 500)
        offset = max(request.args.get("offset", 0, type=int), 0)

        rows, total = cart_service.list_sales(
            start=start,
            end=end,
            barber_id=request.args.get("barber_id", type=int),
            status=request.args.get("status"),
            line_kind=request.args.get("line_kind"),
            limit=limit,
            offset=offset,
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "items": [r.to_dict() for r in rows],
        "count": len(rows),
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = cart_service.get_sale(sale_id)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/refund")
@require_actor
def refund_sale_route(sale_id: int):
    """
    Refund one sale record. Body: {reason}

    Returns 409 ALREADY_REFUNDED on a second attempt.
    """
    try:
        data = request.get_json(silent=True) or {}

        sale = refund_service.refund_sale(sale_id=sale_id, reason=data.get("reason"), actor_id=g.actor_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/refunded")
@require_actor
def list_refunded_route():
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        result = refund_service.list_refunded_sales(
            start=start,
            end=end,
            barber_id=request.args.get("barber_id", type=int),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "items": [r.to_dict() for r in result["sales"]],
        "stats": result["stats"],
    }), 200


@sales_bp.get("/refunds/summary")
@require_actor
def refund_summary_route():
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        summary = refund_service.refund_summary_by_barber(start=start, end=end)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"items": summary}), 200
