"""
Refund tests.

Verifies:
- A product refund restores exactly the sold quantity to the ledger
- Original figures survive; display figures drop to zero
- A second refund raises AlreadyRefunded and changes nothing
"""

import pytest

from barberpos.models import SaleRecord
from barberpos.services import cart_service, refund_service
from barberpos.services.errors import AlreadyRefunded, SaleNotFound, ValidationError


def _sell(product, quantity, barber_id=None):
    settled = cart_service.create_cart_sale(
        [{"type": "product", "id": product.id, "quantity": quantity,
          "price": product.price_cents, "payment_method": "cash"}],
        barber_id=barber_id,
    )
    return settled.sale_records[0]


class TestRefundSale:
    def test_refund_restores_stock(self, db_session, make_product):
        product = make_product(initial_stock=10)
        sale = _sell(product, 3)
        db_session.refresh(product)
        assert product.expected_stock == 7

        refunded = refund_service.refund_sale(sale.id, "Cliente insatisfecho", actor_id=2)

        db_session.refresh(product)
        assert product.expected_stock == 10
        assert product.sales == 0
        assert refunded.status == "REFUNDED"
        assert refunded.refund_reason == "Cliente insatisfecho"
        assert refunded.refunded_by == 2
        assert refunded.refunded_at is not None

    def test_refund_keeps_originals_and_zeroes_display(self, db_session, make_product):
        product = make_product(price_cents=1500)
        sale = _sell(product, 2)

        refund_service.refund_sale(sale.id, "error de cobro")

        data = db_session.get(SaleRecord, sale.id).to_dict()
        assert data["quantity"] == 0
        assert data["total_amount_cents"] == 0
        assert data["original_quantity"] == 2
        assert data["original_total_cents"] == 3000

    def test_second_refund_is_rejected(self, db_session, make_product):
        product = make_product(initial_stock=10)
        sale = _sell(product, 4)
        refund_service.refund_sale(sale.id, "primero")

        with pytest.raises(AlreadyRefunded):
            refund_service.refund_sale(sale.id, "segundo")

        db_session.refresh(product)
        assert product.sales == 0
        assert product.expected_stock == 10
        assert db_session.get(SaleRecord, sale.id).refund_reason == "primero"

    def test_service_refund_does_not_touch_ledger(self, db_session, make_product, make_service):
        product = make_product(initial_stock=5)
        service = make_service()
        settled = cart_service.create_cart_sale([
            {"type": "product", "id": product.id, "quantity": 1, "price": 100, "payment_method": "cash"},
            {"type": "service", "id": service.id, "quantity": 1, "price": 100, "payment_method": "cash"},
        ])
        service_record = settled.sale_records[1]

        refund_service.refund_sale(service_record.id, "no se presto")

        db_session.refresh(product)
        assert product.sales == 1

    def test_reason_required(self, db_session, make_product):
        sale = _sell(make_product(), 1)
        with pytest.raises(ValidationError):
            refund_service.refund_sale(sale.id, "  ")

    def test_unknown_sale(self, db_session):
        with pytest.raises(SaleNotFound):
            refund_service.refund_sale(999_999, "x")

    def test_credit_is_clamped_when_aggregate_drifted(self, db_session, make_product):
        product = make_product(initial_stock=10)
        sale = _sell(product, 3)
        product.sales = 1
        db_session.commit()

        refund_service.refund_sale(sale.id, "drift")

        db_session.refresh(product)
        assert product.sales == 0


class TestRefundReports:
    def test_refunded_listing_and_summary(self, db_session, make_product):
        product = make_product(initial_stock=20, price_cents=1000)
        a = _sell(product, 2, barber_id=1)
        b = _sell(product, 1, barber_id=2)
        c = _sell(product, 3, barber_id=1)
        _sell(product, 1, barber_id=1)
        for sale in (a, b, c):
            refund_service.refund_sale(sale.id, "x")

        result = refund_service.list_refunded_sales()
        assert result["stats"]["total_refunds"] == 3
        assert result["stats"]["total_refunded_cents"] == 6000
        assert result["stats"]["total_refunded_units"] == 6

        summary = {row["barber_id"]: row for row in refund_service.refund_summary_by_barber()}
        assert summary[1]["refund_count"] == 2
        assert summary[1]["refunded_cents"] == 5000
        assert summary[2]["refund_count"] == 1
