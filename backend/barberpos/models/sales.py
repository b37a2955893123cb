from __future__ import annotations

from ..extensions import db
from barberpos.time_utils import to_utc_z


LINE_KIND_PRODUCT = "PRODUCT"
LINE_KIND_SERVICE = "SERVICE"
LINE_KINDS = (LINE_KIND_PRODUCT, LINE_KIND_SERVICE)

SALE_STATUS_ACTIVE = "ACTIVE"
SALE_STATUS_REFUNDED = "REFUNDED"


class SaleRecord(db.Model):
    """
    One settled cart line.

    Each line carries its own payment method and is refunded on its own.
    Lines settled together share cart_id.

    IMMUTABILITY:
    - Everything except the refund fields is write-once.
    - status moves ACTIVE -> REFUNDED exactly once (refund_service).
    - original_quantity / original_total_cents never change; consumers derive
      the zeroed display figures from status (display_quantity / display_total_cents).
    """
    __tablename__ = "sale_records"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("unit_price_cents > 0", name="unit_price_positive"),
        db.CheckConstraint(
            "(line_kind = 'PRODUCT' AND product_id IS NOT NULL) OR "
            "(line_kind = 'SERVICE' AND service_id IS NOT NULL)",
            name="line_reference_matches_kind",
        ),
        db.Index("ix_sale_records_barber_date", "barber_id", "sale_date"),
        db.Index("ix_sale_records_status_date", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Shared by every line settled in the same cart; NULL on legacy rows
    cart_id = db.Column(db.String(32), nullable=True, index=True)

    line_kind = db.Column(db.String(16), nullable=False, index=True)  # PRODUCT, SERVICE
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)
    item_name = db.Column(db.String(100), nullable=False)

    barber_id = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_ACTIVE, index=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)

    client_data = db.Column(db.JSON(none_as_null=True), nullable=True)

    original_quantity = db.Column(db.Integer, nullable=False)
    original_total_cents = db.Column(db.Integer, nullable=False)

    # Refund audit trail
    refund_reason = db.Column(db.String(255), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_by = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    service = db.relationship("ServiceOffering")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_refunded(self) -> bool:
        return self.status == SALE_STATUS_REFUNDED

    @property
    def display_quantity(self) -> int:
        return 0 if self.is_refunded else self.quantity

    @property
    def display_total_cents(self) -> int:
        return 0 if self.is_refunded else self.total_amount_cents

    def __repr__(self) -> str:
        return f"<SaleRecord id={self.id} kind={self.line_kind} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_id": self.cart_id,
            "line_kind": self.line_kind,
            "product_id": self.product_id,
            "service_id": self.service_id,
            "item_name": self.item_name,
            "barber_id": self.barber_id,
            "quantity": self.display_quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.display_total_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "sale_date": to_utc_z(self.sale_date),
            "client_data": self.client_data,
            "original_quantity": self.original_quantity,
            "original_total_cents": self.original_total_cents,
            "refund_reason": self.refund_reason,
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "refunded_by": self.refunded_by,
            "created_by": self.created_by,
        }
