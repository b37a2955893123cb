# Overview: Flask API routes for invoice listing; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import invoice_service
from ..services.errors import LedgerError
from ..validation import parse_date_range
from ..decorators import require_actor

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_actor
def list_invoices_route():
    """
    Invoices reconstructed from settled sales, newest first.

    Query params:
    - start, end: ISO-8601 (inclusive; a bare end date covers the whole day)
    - barber_id: int
    - search: matches item names, client data, cart id, barber id
    """
    try:
        start, end = parse_date_range(request.args.get("start"), request.args.get("end"))
        invoices = invoice_service.list_invoices(
            start=start,
            end=end,
            search=request.args.get("search"),
            barber_id=request.args.get("barber_id", type=int),
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"items": invoices, "count": len(invoices)}), 200
