# Overview: Flask API routes for the product and service catalog; parses input and returns JSON responses.

# backend/barberpos/routes/products.py
"""
Product and service catalog routes.

SECURITY: All routes require an actor.
- Read operations are open to every role
- Write operations require a privileged role (PRIVILEGED_ROLES)
"""
from flask import Blueprint, request, g, current_app
from ..models import Product, ServiceOffering
from ..services import products_service
from ..services.errors import LedgerError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    enforce_rules_service,
    parse_bool_arg,
)
from ..decorators import require_actor, require_role

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "category", "description", "price_cents",
        "initial_stock", "min_stock", "is_active",
    },
    required_on_create={"code", "name", "price_cents"},
)

# Ledger fields are absent on purpose: stock moves only through /api/inventory
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "category", "description", "price_cents", "min_stock", "is_active"},
)

SERVICE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "duration_minutes", "is_active"},
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/products")
@require_actor
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - category: str (optional)
    - active: bool (optional)
    - low_stock: bool (optional) - only expected_stock <= min_stock
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        return products_service.list_products(
            category=request.args.get("category"),
            active=parse_bool_arg(request.args.get("active")),
            low_stock=bool(parse_bool_arg(request.args.get("low_stock"))),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except LedgerError as e:
        return e.to_dict(), e.status_code


@products_bp.get("/products/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    return {"product": product.to_dict()}, 200


@products_bp.post("/products")
@require_actor
@require_role()
def create_product_route():
    """Create a new product with its initial stock."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
        created = products_service.create_product(patch=patch, actor_id=g.actor_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"product": created.to_dict()}, 201


@products_bp.put("/products/<int:product_id>")
@require_actor
@require_role()
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(product_id=product_id, patch=patch, actor_id=g.actor_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return {"product": updated.to_dict()}, 200


@products_bp.post("/products/<int:product_id>/deactivate")
@require_actor
@require_role()
def deactivate_product_route(product_id: int):
    try:
        product = products_service.deactivate_product(product_id=product_id, actor_id=g.actor_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 200


@products_bp.delete("/products/<int:product_id>")
@require_actor
@require_role()
def delete_product_route(product_id: int):
    """
    Delete a product that has no history.

    Returns 409 PRODUCT_IN_USE when sales, movements or counts reference it.
    """
    try:
        products_service.delete_product(product_id=product_id, actor_id=g.actor_id)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200


@products_bp.get("/services")
@require_actor
def list_services_route():
    try:
        active_only = bool(parse_bool_arg(request.args.get("active_only")))
    except LedgerError as e:
        return e.to_dict(), e.status_code
    services = products_service.list_services(active_only=active_only)
    return {"items": [s.to_dict() for s in services], "count": len(services)}, 200


@products_bp.post("/services")
@require_actor
@require_role()
def create_service_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ServiceOffering, payload=payload, policy=SERVICE_POLICY, partial=False)
        enforce_rules_service(patch)
        service = products_service.create_service(patch=patch)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create service")
        return {"error": "Internal server error"}, 500

    return {"service": service.to_dict()}, 201


@products_bp.put("/services/<int:service_id>")
@require_actor
@require_role()
def update_service_route(service_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=ServiceOffering, payload=payload, policy=SERVICE_POLICY, partial=True)
        enforce_rules_service(patch)
        service = products_service.update_service(service_id=service_id, patch=patch)
    except LedgerError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update service")
        return {"error": "Internal server error"}, 500

    return {"service": service.to_dict()}, 200
