# Overview: Flask API routes for the payment method catalog.

from flask import Blueprint, jsonify

from ..services.payment_methods import get_catalog
from ..decorators import require_actor

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment-methods")


@payments_bp.get("")
@require_actor
def list_payment_methods_route():
    """All configured methods; only enabled ones are accepted at settlement."""
    catalog = get_catalog()
    return jsonify({
        "items": [m.to_dict() for m in catalog.all()],
        "enabled": catalog.enabled_ids(),
    }), 200
