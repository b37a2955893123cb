# Overview: Threaded concurrency tests for the ledger write path.

"""
Scripted concurrency tests for barberpos.

Run with:
    python -m pytest backend/tests/test_concurrency.py
"""
import os
import tempfile
import threading
import time
import unittest

from barberpos import create_app
from barberpos.extensions import db
from barberpos.models import Product, SaleRecord
from barberpos.services import cart_service, reconcile_service, refund_service
from barberpos.services.errors import AlreadyRefunded, InsufficientStock


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "DB_RETRY_ATTEMPTS": 5,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = Product(
                code="CONCUR-1",
                name="Concurrent Product",
                category="cuidado",
                initial_stock=10,
                entries=0,
                exits=0,
                sales=0,
                min_stock=0,
                price_cents=1000,
                is_active=True,
            )
            db.session.add(product)
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _cart(self, quantity):
        return [{
            "type": "product",
            "id": self.product_id,
            "quantity": quantity,
            "price": 1000,
            "payment_method": "cash",
        }]

    def test_concurrent_carts_cannot_oversell(self):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    cart_service.create_cart_sale(self._cart(6))
                    with lock:
                        results.append("ok")
                except InsufficientStock:
                    with lock:
                        results.append("insufficient")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(map(str, results)), ["insufficient", "ok"])

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.sales, 6)
            self.assertEqual(product.expected_stock, 4)
            self.assertEqual(db.session.query(SaleRecord).count(), 1)

    def test_many_small_carts_balance(self):
        errors = []
        sold = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    cart_service.create_cart_sale(self._cart(1))
                    with lock:
                        sold.append(1)
                except InsufficientStock:
                    pass
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(15)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertFalse(errors)
        self.assertEqual(len(sold), 10)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.expected_stock, 0)

    def test_concurrent_refunds_credit_once(self):
        with self.app.app_context():
            settled = cart_service.create_cart_sale(self._cart(3))
            sale_id = settled.sale_records[0].id
            db.session.remove()

        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    refund_service.refund_sale(sale_id, "duplicate click")
                    with lock:
                        results.append("ok")
                except AlreadyRefunded:
                    with lock:
                        results.append("already")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(map(str, results)), ["already", "ok"])

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.sales, 0)
            self.assertEqual(product.expected_stock, 10)

    def _add_product(self, code, stock):
        with self.app.app_context():
            product = Product(
                code=code,
                name=f"Product {code}",
                category="cuidado",
                initial_stock=stock,
                entries=0,
                exits=0,
                sales=0,
                min_stock=0,
                price_cents=500,
                is_active=True,
            )
            db.session.add(product)
            db.session.commit()
            return product.id

    def test_reconcile_report_during_settlement_sees_no_drift(self):
        drift = []
        errors = []
        sold = []
        lock = threading.Lock()
        selling_done = threading.Event()

        def seller():
            with self.app.app_context():
                try:
                    for _ in range(10):
                        cart_service.create_cart_sale(self._cart(1))
                        with lock:
                            sold.append(1)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    selling_done.set()
                    db.session.remove()

        def reporter():
            with self.app.app_context():
                try:
                    runs = 0
                    while not selling_done.is_set() or runs < 5:
                        report = reconcile_service.reconcile("report")
                        runs += 1
                        time.sleep(0.005)
                        if not report.is_consistent:
                            with lock:
                                drift.append([(e.stored_expected, e.recomputed_expected) for e in report.entries])
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=seller), threading.Thread(target=reporter)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        self.assertFalse(any(t.is_alive() for t in threads))
        self.assertFalse(errors)
        self.assertEqual(drift, [])
        self.assertEqual(len(sold), 10)

        with self.app.app_context():
            self.assertEqual(reconcile_service.reconcile("fix").fixed_count, 0)
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.expected_stock, 0)

    def test_carts_listing_products_in_opposite_order_all_settle(self):
        other_id = self._add_product("CONCUR-2", 10)
        errors = []
        sold = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def line(product_id):
            return {"type": "product", "id": product_id, "quantity": 1, "price": 500, "payment_method": "cash"}

        def worker(first_id, second_id):
            with self.app.app_context():
                try:
                    barrier.wait()
                    for _ in range(4):
                        cart_service.create_cart_sale([line(first_id), line(second_id)])
                        with lock:
                            sold.append(1)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [
            threading.Thread(target=worker, args=(self.product_id, other_id)),
            threading.Thread(target=worker, args=(other_id, self.product_id)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        self.assertFalse(any(t.is_alive() for t in threads))
        self.assertFalse(errors)
        self.assertEqual(len(sold), 8)

        with self.app.app_context():
            for product_id in (self.product_id, other_id):
                product = db.session.get(Product, product_id)
                self.assertEqual(product.sales, 8)
                self.assertEqual(product.expected_stock, 2)
            self.assertEqual(db.session.query(SaleRecord).count(), 16)
            self.assertTrue(reconcile_service.reconcile("report").is_consistent)


if __name__ == "__main__":
    unittest.main()
