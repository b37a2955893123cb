from __future__ import annotations

from ..extensions import db
from barberpos.time_utils import to_utc_z


MOVEMENT_ENTRY = "ENTRY"
MOVEMENT_EXIT = "EXIT"
MOVEMENT_KINDS = (MOVEMENT_ENTRY, MOVEMENT_EXIT)


class Product(db.Model):
    """
    Product ledger row.

    STOCK MODEL:
    expected_stock = initial_stock + entries - exits - sales

    - initial_stock is set at creation and never changes afterwards.
    - entries / exits are cumulative totals of StockMovement rows.
    - sales is the cumulative quantity of ACTIVE product SaleRecords.
    - real_stock is the last physical count. It is informational only and
      never used to decide whether a unit can be sold.

    The aggregates are denormalized for fast availability checks. The
    reconciler recomputes them from StockMovement / SaleRecord history and
    repairs drift. expected_stock can never be negative: the services refuse
    such mutations and the table CHECK constraint backs that up.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("initial_stock >= 0", name="initial_stock_non_negative"),
        db.CheckConstraint("entries >= 0", name="entries_non_negative"),
        db.CheckConstraint("exits >= 0", name="exits_non_negative"),
        db.CheckConstraint("sales >= 0", name="sales_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="min_stock_non_negative"),
        db.CheckConstraint(
            "real_stock IS NULL OR real_stock >= 0", name="real_stock_non_negative"
        ),
        db.CheckConstraint(
            "initial_stock + entries - exits - sales >= 0",
            name="expected_stock_non_negative",
        ),
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="otros")
    description = db.Column(db.String(500), nullable=True)

    initial_stock = db.Column(db.Integer, nullable=False, default=0)
    entries = db.Column(db.Integer, nullable=False, default=0)
    exits = db.Column(db.Integer, nullable=False, default=0)
    sales = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    real_stock = db.Column(db.Integer, nullable=True)

    # Unit price, tax-inclusive, in minor currency units
    price_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def expected_stock(self) -> int:
        return (self.initial_stock or 0) + (self.entries or 0) - (self.exits or 0) - (self.sales or 0)

    @property
    def difference(self) -> int | None:
        if self.real_stock is None:
            return None
        return self.real_stock - self.expected_stock

    @property
    def is_low_stock(self) -> bool:
        return self.expected_stock <= (self.min_stock or 0)

    def ledger_fields(self) -> dict:
        """The fields an InventorySnapshot copies."""
        return {
            "product_id": self.id,
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "initial_stock": self.initial_stock,
            "entries": self.entries,
            "exits": self.exits,
            "sales": self.sales,
            "expected_stock": self.expected_stock,
            "real_stock": self.real_stock,
            "difference": self.difference,
            "min_stock": self.min_stock,
            "price_cents": self.price_cents,
        }

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} expected_stock={self.expected_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "initial_stock": self.initial_stock,
            "entries": self.entries,
            "exits": self.exits,
            "sales": self.sales,
            "expected_stock": self.expected_stock,
            "real_stock": self.real_stock,
            "difference": self.difference,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """Append-only manual entry/exit. Never updated or deleted."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    kind = db.Column(db.String(8), nullable=False, index=True)  # ENTRY, EXIT
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    # Expense side of an ENTRY (purchase cost and how it was paid)
    cost_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    actor_id = db.Column(db.Integer, nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "reason": self.reason,
            "cost_cents": self.cost_cents,
            "payment_method": self.payment_method,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class StockCount(db.Model):
    """Manual physical count history. real_stock on Product is the latest one."""
    __tablename__ = "stock_counts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    real_stock = db.Column(db.Integer, nullable=False)
    expected_stock = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "real_stock": self.real_stock,
            "expected_stock": self.expected_stock,
            "difference": self.difference,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "counted_at": to_utc_z(self.counted_at),
        }


class InventorySnapshot(db.Model):
    """
    Point-in-time copy of every product's ledger fields.

    Append-only: rows are never updated after creation. Serves as the audit
    trail for counts and as the reference point compare_snapshot() diffs against.
    """
    __tablename__ = "inventory_snapshots"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    taken_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    items = db.Column(db.JSON, nullable=False)

    total_products = db.Column(db.Integer, nullable=False, default=0)
    total_expected_units = db.Column(db.Integer, nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)
    products_with_difference = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "taken_at": to_utc_z(self.taken_at),
            "actor_id": self.actor_id,
            "notes": self.notes,
            "total_products": self.total_products,
            "total_expected_units": self.total_expected_units,
            "total_value_cents": self.total_value_cents,
            "products_with_difference": self.products_with_difference,
        }
        if include_items:
            data["items"] = self.items
        return data
