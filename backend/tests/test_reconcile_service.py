"""
Reconciliation tests.

Verifies:
- A consistent ledger reports nothing
- Drift is reported with stored vs recomputed figures
- fix repairs drift and a second fix finds nothing
- A negative recomputed stock is a conflict, never written back
"""

import pytest

from barberpos.models import Product
from barberpos.services import cart_service, inventory_service, ledger_service, reconcile_service, refund_service
from barberpos.services.errors import ValidationError


def _sell(product, quantity):
    return cart_service.create_cart_sale([{
        "type": "product", "id": product.id, "quantity": quantity,
        "price": product.price_cents, "payment_method": "cash",
    }]).sale_records[0]


class TestReconcile:
    def test_consistent_ledger(self, db_session, make_product):
        product = make_product(initial_stock=10)
        inventory_service.apply_movement(product.id, "ENTRY", 5, "compra")
        inventory_service.apply_movement(product.id, "EXIT", 2, "uso interno")
        sale = _sell(product, 3)
        _sell(product, 1)
        refund_service.refund_sale(sale.id, "x")

        report = reconcile_service.reconcile("report")

        assert report.is_consistent
        assert report.entries == []
        assert report.checked_count == 1

    def test_report_lists_drift_without_writing(self, db_session, make_product):
        product = make_product(initial_stock=10)
        _sell(product, 2)
        product.sales = 5  # drifted aggregate
        db_session.commit()

        report = reconcile_service.reconcile("report")

        assert len(report.entries) == 1
        entry = report.entries[0]
        assert entry.product_id == product.id
        assert entry.stored_expected == 5
        assert entry.recomputed_expected == 8
        assert entry.delta == 3
        assert entry.stored["sales"] == 5
        assert entry.recomputed["sales"] == 2
        assert report.fixed_count == 0

        db_session.refresh(product)
        assert product.sales == 5

    def test_report_appends_no_ledger_event(self, db_session, make_product):
        product = make_product(initial_stock=4)
        product.sales = 1
        db_session.commit()
        before = ledger_service.current_inventory_version()

        report = reconcile_service.reconcile("report")

        assert len(report.entries) == 1
        assert ledger_service.current_inventory_version() == before

    def test_fix_is_idempotent(self, db_session, make_product):
        product = make_product(initial_stock=10)
        inventory_service.apply_movement(product.id, "ENTRY", 4, "compra")
        product.entries = 0
        product.exits = 3
        db_session.commit()

        first = reconcile_service.reconcile("fix", actor_id=1)
        second = reconcile_service.reconcile("fix", actor_id=1)

        assert first.fixed_count == 1
        assert second.fixed_count == 0
        db_session.refresh(product)
        assert product.entries == 4
        assert product.exits == 0
        assert product.expected_stock == 14

    def test_negative_recomputed_stock_is_a_conflict(self, db_session, make_product):
        product = make_product(initial_stock=1)
        _sell(product, 1)
        # Opening stock re-keyed to 0 and the sales counter wiped by a bad import
        db_session.query(Product).filter_by(id=product.id).update({"initial_stock": 0, "sales": 0})
        db_session.commit()

        report = reconcile_service.reconcile("fix")

        assert report.fixed_count == 0
        assert report.entries == []
        assert [c.product_id for c in report.conflicts] == [product.id]
        assert report.conflicts[0].recomputed_expected == -1

        db_session.refresh(product)
        assert product.sales == 0

    def test_count_variances_are_reported(self, db_session, make_product):
        product = make_product(initial_stock=10)
        inventory_service.record_manual_count(product.id, 8)

        report = reconcile_service.reconcile("report")

        assert report.is_consistent
        assert len(report.count_variances) == 1
        assert report.count_variances[0].difference == -2

    def test_unknown_mode(self, db_session):
        with pytest.raises(ValidationError):
            reconcile_service.reconcile("repair")
