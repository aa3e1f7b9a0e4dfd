"""
Threaded checkout tests against a file-backed SQLite database.

Each worker runs in its own app context (own session and connection), so
they really do race for the product row.
"""

import os
import tempfile
import threading
import unittest
from decimal import Decimal

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import InventoryTransaction, Product, Sale
from backoffice.services import sales_service, ticket_service
from backoffice.services.stock_service import InsufficientStockError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LOG_LEVEL": "ERROR",
            "SALE_COMMIT_RETRY_ATTEMPTS": 5,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = Product(id="P-RACE", name="Contested", price=Decimal("10.00"), cost=Decimal("4.00"), stock=5)
            db.session.add(product)
            db.session.commit()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _line(self, quantity):
        return {
            "productId": "P-RACE",
            "productName": "Contested",
            "quantity": quantity,
            "unitPrice": 10,
            "totalPrice": 10 * quantity,
        }

    def _race(self, workers, quantity):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(workers)

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    sale = sales_service.commit_sale(
                        [self._line(quantity)], payment_method="Cash", cashier_id="racer"
                    )
                    with lock:
                        results.append(sale.id)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_two_checkouts_of_three_with_five_in_stock(self):
        results = self._race(workers=2, quantity=3)

        posted = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if not isinstance(r, str)]
        self.assertEqual(len(posted), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InsufficientStockError)
        self.assertEqual(failures[0].requested, 3)
        self.assertIn(failures[0].available, (2, 5))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, "P-RACE").stock, 2)
            self.assertEqual(db.session.query(Sale).count(), 1)
            self.assertEqual(db.session.query(InventoryTransaction).count(), 1)

    def test_stock_never_negative_under_many_buyers(self):
        results = self._race(workers=8, quantity=1)

        posted = [r for r in results if isinstance(r, str)]
        unexpected = [r for r in results if not isinstance(r, (str, InsufficientStockError))]
        self.assertFalse(unexpected)
        self.assertEqual(len(posted), 5)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, "P-RACE").stock, 0)
            rows = db.session.query(InventoryTransaction).all()
            self.assertEqual(len(rows), 5)
            self.assertEqual(sorted(r.stock_after for r in rows), [0, 1, 2, 3, 4])

    def test_concurrent_cart_commands_do_not_lose_items(self):
        with self.app.app_context():
            db.session.add(Product(id="P-OTHER", name="Other", price=Decimal("1.00"), cost=Decimal("0.50"), stock=5))
            db.session.commit()
            ticket_id = ticket_service.create_ticket("Shared").id

        errors = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def worker(product_id):
            with self.app.app_context():
                try:
                    barrier.wait()
                    ticket_service.add_item(ticket_id, product_id)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(pid,)) for pid in ("P-RACE", "P-OTHER")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertFalse(errors)
        with self.app.app_context():
            items = ticket_service.get_ticket(ticket_id).cart_items
            self.assertEqual(sorted(i["productId"] for i in items), ["P-OTHER", "P-RACE"])


if __name__ == "__main__":
    unittest.main()
