# backend/barberpos/services/products_service.py
"""
Product and service catalog.

Ledger fields are NOT editable here: entries / exits / sales move only through
inventory_service, and initial_stock is fixed at creation. A product with
sale, movement or count history cannot be deleted (ProductInUse); deactivate
it instead.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, SaleRecord, ServiceOffering, StockCount, StockMovement
from barberpos.time_utils import utcnow
from .concurrency import lock_products, run_in_transaction
from .errors import ConflictError, ProductInUse, ProductNotFound, ServiceNotFound
from .ledger_service import append_ledger_event

PRODUCT_MUTABLE_FIELDS = {"code", "name", "category", "description", "price_cents", "min_stock", "is_active"}
PRODUCT_CREATE_FIELDS = PRODUCT_MUTABLE_FIELDS | {"initial_stock"}


def apply_product_patch(p: Product, patch: dict, allowed: set[str] = PRODUCT_MUTABLE_FIELDS) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(p, k, v)


def _ensure_code_free(code: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter(Product.code == code)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Product code already exists.", details={"code": code})


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def list_products(
    *,
    category: str | None = None,
    active: bool | None = None,
    low_stock: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Returns dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if category:
        base_query = base_query.filter(Product.category == category)
    if active is not None:
        base_query = base_query.filter(Product.is_active.is_(active))
    if low_stock:
        expected = Product.initial_stock + Product.entries - Product.exits - Product.sales
        base_query = base_query.filter(expected <= Product.min_stock)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict, actor_id: int | None = None) -> Product:
    """Create product from a validated patch dict. initial_stock defaults to 0."""
    _ensure_code_free(patch["code"])

    p = Product(entries=0, exits=0, sales=0)
    apply_product_patch(p, patch, PRODUCT_CREATE_FIELDS)
    if p.initial_stock is None:
        p.initial_stock = 0

    db.session.add(p)
    db.session.flush()  # ensure p.id exists before ledger append

    append_ledger_event(
        event_type="product.created",
        event_category="catalog",
        entity_type="product",
        entity_id=p.id,
        actor_id=actor_id,
        occurred_at=utcnow(),
        note=f"Created product code={p.code} name={p.name}",
        payload={"initial_stock": p.initial_stock},
    )

    db.session.commit()
    return p


def update_product(*, product_id: int, patch: dict, actor_id: int | None = None) -> Product:
    if "code" in patch:
        _ensure_code_free(patch["code"], exclude_id=product_id)

    def _op():
        product = lock_products([product_id]).get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        apply_product_patch(product, patch)

        append_ledger_event(
            event_type="product.updated",
            event_category="catalog",
            entity_type="product",
            entity_id=product.id,
            actor_id=actor_id,
            occurred_at=utcnow(),
            payload={"fields": sorted(patch)},
        )
        return product

    return run_in_transaction(_op)


def deactivate_product(*, product_id: int, actor_id: int | None = None) -> Product:
    return update_product(product_id=product_id, patch={"is_active": False}, actor_id=actor_id)


def delete_product(*, product_id: int, actor_id: int | None = None) -> None:
    """Hard delete, only for products that never had any history."""
    def _op():
        product = lock_products([product_id]).get(product_id)
        if product is None:
            raise ProductNotFound(product_id)

        sale_count = db.session.query(SaleRecord).filter_by(product_id=product_id).count()
        movement_count = db.session.query(StockMovement).filter_by(product_id=product_id).count()
        count_count = db.session.query(StockCount).filter_by(product_id=product_id).count()
        if sale_count or movement_count or count_count:
            raise ProductInUse(product_id, sale_count, movement_count, count_count)

        append_ledger_event(
            event_type="product.deleted",
            event_category="catalog",
            entity_type="product",
            entity_id=product.id,
            actor_id=actor_id,
            occurred_at=utcnow(),
            note=f"Deleted product code={product.code}",
        )
        db.session.delete(product)

    run_in_transaction(_op)


# =============================================================================
# SERVICE CATALOG
# =============================================================================

def list_services(*, active_only: bool = False) -> list[ServiceOffering]:
    q = db.session.query(ServiceOffering)
    if active_only:
        q = q.filter(ServiceOffering.is_active.is_(True))
    return q.order_by(ServiceOffering.name.asc()).all()


def get_service(service_id: int) -> ServiceOffering:
    service = db.session.query(ServiceOffering).filter_by(id=service_id).first()
    if service is None:
        raise ServiceNotFound(service_id)
    return service


def create_service(*, patch: dict) -> ServiceOffering:
    existing = db.session.query(ServiceOffering).filter_by(name=patch["name"]).first()
    if existing is not None:
        raise ConflictError("Service name already exists.", details={"name": patch["name"]})

    service = ServiceOffering(**patch)
    db.session.add(service)
    db.session.commit()
    return service


def update_service(*, service_id: int, patch: dict) -> ServiceOffering:
    service = get_service(service_id)
    if "name" in patch and patch["name"] != service.name:
        existing = db.session.query(ServiceOffering).filter_by(name=patch["name"]).first()
        if existing is not None:
            raise ConflictError("Service name already exists.", details={"name": patch["name"]})
    for k, v in patch.items():
        setattr(service, k, v)
    db.session.commit()
    return service
