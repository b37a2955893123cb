"""
Cart settlement tests.

Verifies:
- Every line becomes an ACTIVE SaleRecord sharing cart_id and sale_date
- Product lines debit the ledger; service lines never do
- A single shortfall rejects the whole cart with no partial writes
- Totals and payment breakdown add up
"""

import pytest

from barberpos.models import LedgerEvent, SaleRecord
from barberpos.services import cart_service
from barberpos.services.errors import (
    InsufficientStock,
    InvalidPaymentMethod,
    ProductNotFound,
    ServiceNotFound,
    ValidationError,
)
from barberpos.services.events import event_bus, SALE_SETTLED


def product_line(product, quantity, price=None, payment_method="cash", **extra):
    return {
        "type": "product",
        "id": product.id,
        "quantity": quantity,
        "price": price or product.price_cents,
        "payment_method": payment_method,
        **extra,
    }


def service_line(service, quantity=1, payment_method="cash", **extra):
    return {
        "type": "service",
        "id": service.id,
        "quantity": quantity,
        "price": service.price_cents,
        "payment_method": payment_method,
        **extra,
    }


class TestSettlement:
    def test_mixed_cart_settles(self, db_session, make_product, make_service):
        product = make_product(initial_stock=5, price_cents=2500)
        service = make_service(price_cents=30000)

        settled = cart_service.create_cart_sale(
            [product_line(product, 2), service_line(service, payment_method="nequi")],
            barber_id=4,
            actor_id=1,
        )

        assert len(settled.sale_records) == 2
        assert settled.total_cents == 2 * 2500 + 30000
        assert settled.payment_breakdown == {"cash": 5000, "nequi": 30000}

        records = db_session.query(SaleRecord).order_by(SaleRecord.id).all()
        assert {r.cart_id for r in records} == {settled.cart_id}
        assert len({r.sale_date for r in records}) == 1
        assert all(r.status == "ACTIVE" for r in records)
        assert all(r.barber_id == 4 for r in records)
        assert records[0].original_quantity == 2
        assert records[0].original_total_cents == 5000
        assert records[0].item_name == product.name

        db_session.refresh(product)
        assert product.sales == 2
        assert product.expected_stock == 3

    def test_service_only_cart_leaves_ledger_alone(self, db_session, make_product, make_service):
        product = make_product(initial_stock=5)
        service = make_service()

        cart_service.create_cart_sale([service_line(service, quantity=3)])

        db_session.refresh(product)
        assert product.sales == 0

    def test_repeated_product_quantities_are_summed(self, db_session, make_product):
        product = make_product(initial_stock=5)

        with pytest.raises(InsufficientStock) as exc_info:
            cart_service.create_cart_sale([product_line(product, 3), product_line(product, 3, payment_method="card")])

        assert exc_info.value.items[0]["requested_quantity"] == 6
        assert exc_info.value.items[0]["available"] == 5

    def test_cart_client_data_copied_unless_overridden(self, db_session, make_service):
        service = make_service()
        override = {"name": "Ana", "document": "123"}

        settled = cart_service.create_cart_sale(
            [service_line(service), service_line(service, client_data=override)],
            client_data={"name": "Luis"},
        )

        assert settled.sale_records[0].client_data == {"name": "Luis"}
        assert settled.sale_records[1].client_data == override

    def test_settlement_publishes_after_commit(self, db_session, make_product):
        product = make_product()
        seen = []
        event_bus.subscribe(SALE_SETTLED, seen.append)

        settled = cart_service.create_cart_sale([product_line(product, 1)])

        assert len(seen) == 1
        assert seen[0].payload["cart_id"] == settled.cart_id
        assert seen[0].payload["product_ids"] == [product.id]
        assert seen[0].version == db_session.query(LedgerEvent).order_by(LedgerEvent.id.desc()).first().id


class TestAtomicity:
    def test_one_shortfall_rejects_whole_cart(self, db_session, make_product, make_service):
        plenty = make_product(initial_stock=10)
        scarce = make_product(initial_stock=1)
        service = make_service()

        with pytest.raises(InsufficientStock) as exc_info:
            cart_service.create_cart_sale([
                product_line(plenty, 4),
                service_line(service),
                product_line(scarce, 2),
            ])

        assert [item["product_id"] for item in exc_info.value.items] == [scarce.id]
        db_session.refresh(plenty)
        db_session.refresh(scarce)
        assert plenty.sales == 0
        assert scarce.sales == 0
        assert db_session.query(SaleRecord).count() == 0
        assert db_session.query(LedgerEvent).count() == 0

    def test_all_shortfalls_are_reported(self, db_session, make_product):
        a = make_product(initial_stock=1)
        b = make_product(initial_stock=0)

        with pytest.raises(InsufficientStock) as exc_info:
            cart_service.create_cart_sale([product_line(a, 2), product_line(b, 1)])

        assert sorted(item["product_id"] for item in exc_info.value.items) == sorted([a.id, b.id])

    def test_unknown_product_rejects_cart(self, db_session, make_product):
        product = make_product()
        with pytest.raises(ProductNotFound):
            cart_service.create_cart_sale([
                product_line(product, 1),
                {"type": "product", "id": 999_999, "quantity": 1, "price": 100, "payment_method": "cash"},
            ])
        db_session.refresh(product)
        assert product.sales == 0

    def test_inactive_service_rejects_cart(self, db_session, make_product, make_service):
        product = make_product()
        service = make_service(is_active=False)
        with pytest.raises(ServiceNotFound):
            cart_service.create_cart_sale([product_line(product, 1), service_line(service)])
        db_session.refresh(product)
        assert product.sales == 0


class TestValidation:
    def test_empty_cart(self, db_session):
        with pytest.raises(ValidationError):
            cart_service.create_cart_sale([])

    @pytest.mark.parametrize("field,value", [
        ("quantity", 0),
        ("quantity", -2),
        ("quantity", 1.5),
        ("price", 0),
        ("price", 99.9),
        ("type", "gift"),
    ])
    def test_bad_line_fields(self, db_session, make_product, field, value):
        product = make_product()
        line = product_line(product, 1)
        line[field] = value
        with pytest.raises(ValidationError) as exc_info:
            cart_service.create_cart_sale([line])
        assert exc_info.value.details["line"] == 0

    @pytest.mark.parametrize("method", ["bitcoin", "cheque", "", None])
    def test_payment_method_outside_catalog(self, db_session, make_product, method):
        product = make_product()
        with pytest.raises(InvalidPaymentMethod):
            cart_service.create_cart_sale([product_line(product, 1, payment_method=method)])

    def test_client_data_must_be_object(self, db_session, make_service):
        service = make_service()
        with pytest.raises(ValidationError):
            cart_service.create_cart_sale([service_line(service)], client_data="Ana")


class TestListing:
    def test_list_sales_filters(self, db_session, make_product, make_service):
        product = make_product()
        service = make_service()
        cart_service.create_cart_sale([product_line(product, 1), service_line(service)], barber_id=3)
        cart_service.create_cart_sale([service_line(service)], barber_id=8)

        rows, total = cart_service.list_sales(barber_id=3)
        assert total == 2

        rows, total = cart_service.list_sales(line_kind="service")
        assert total == 2
        assert all(r.line_kind == "SERVICE" for r in rows)
