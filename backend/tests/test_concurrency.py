# Overview: Threaded concurrency tests against a file-backed SQLite database.

"""
Concurrency tests for stock reservation, order numbering and payments.

Each worker thread gets its own app context (and therefore its own session
and connection), the way concurrent requests would.

Run with:
    python -m pytest tests/test_concurrency.py
"""
import os
import tempfile
import threading
import unittest

from orderdesk import create_app
from orderdesk.errors import InsufficientStockError
from orderdesk.extensions import db
from orderdesk.models import Order, Payment, Product, User
from orderdesk.services import inventory_service, order_service, payment_service, products_service


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "RECEIPTS_DIR": os.path.join(self.tmpdir.name, "receipts"),
            "DEFAULT_TAX_RATE_BPS": 0,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(
                username="concurrent_user",
                email="concurrent@example.com",
                password_hash="dummy",
                role="waitress",
                is_active=True,
            )
            db.session.add(user)
            db.session.commit()
            self.user_id = user.id

            last_unit = products_service.create_product(
                {"name": "Last Croissant", "sku": "CONCUR-1", "price_cents": 1000, "stock": 1},
                user_id=self.user_id,
            )
            self.last_unit_id = last_unit.id

            plenty = products_service.create_product(
                {"name": "Espresso", "sku": "CONCUR-2", "price_cents": 2500, "stock": 50},
                user_id=self.user_id,
            )
            self.plenty_id = plenty.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, args_list):
        threads = [threading.Thread(target=target, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_last_unit_is_sold_once(self):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    order = order_service.create_order(
                        created_by_user_id=self.user_id,
                        items=[{"product_id": self.last_unit_id, "quantity": 1}],
                    )
                    outcome = ("ok", order.id)
                except InsufficientStockError as exc:
                    outcome = ("insufficient", exc.available)
                except Exception as exc:
                    outcome = ("error", repr(exc))
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        self._run_threads(worker, [() for _ in range(2)])

        kinds = sorted(kind for kind, _ in results)
        self.assertEqual(kinds, ["insufficient", "ok"], results)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.last_unit_id).stock, 0)
            self.assertEqual(db.session.query(Order).count(), 1)
            self.assertTrue(inventory_service.reconcile_product(self.last_unit_id)["in_sync"])

    def test_order_numbers_are_unique_under_load(self):
        created = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    order = order_service.create_order(
                        created_by_user_id=self.user_id,
                        items=[{"product_id": self.plenty_id, "quantity": 1}],
                    )
                    with lock:
                        created.append(order.order_number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, [() for _ in range(10)])

        self.assertFalse(errors)
        self.assertEqual(len(created), 10)
        self.assertEqual(len(created), len(set(created)))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.plenty_id).stock, 40)
            self.assertEqual(inventory_service.find_stock_discrepancies(), [])

    def test_concurrent_payments_are_all_counted(self):
        with self.app.app_context():
            order = order_service.create_order(
                created_by_user_id=self.user_id,
                items=[{"product_id": self.plenty_id, "quantity": 4}],
            )
            order_id = order.id
            self.assertEqual(order.total_cents, 10000)

        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    payment_service.record_payment(order_id, 2500, "cash", self.user_id)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run_threads(worker, [() for _ in range(4)])

        self.assertFalse(errors)
        with self.app.app_context():
            order = db.session.get(Order, order_id)
            self.assertEqual(db.session.query(Payment).filter_by(order_id=order_id).count(), 4)
            self.assertEqual(order.payment_status, "paid")
            self.assertEqual(order.status, "completed")

    def test_cancel_and_sale_race_keeps_ledger_consistent(self):
        with self.app.app_context():
            order = order_service.create_order(
                created_by_user_id=self.user_id,
                items=[{"product_id": self.plenty_id, "quantity": 5}],
            )
            order_id = order.id

        errors = []
        lock = threading.Lock()

        def cancel():
            with self.app.app_context():
                try:
                    order_service.cancel_order(order_id, self.user_id)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        def sell():
            with self.app.app_context():
                try:
                    order_service.create_order(
                        created_by_user_id=self.user_id,
                        items=[{"product_id": self.plenty_id, "quantity": 3}],
                    )
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=cancel)] + [threading.Thread(target=sell) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertFalse(errors)
        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.plenty_id).stock, 50 - 9)
            self.assertTrue(inventory_service.reconcile_product(self.plenty_id)["in_sync"])


if __name__ == "__main__":
    unittest.main()
