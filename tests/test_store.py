import sqlite3
import tempfile
import threading
import unittest
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from gst_invoice.formatting import fmt_money
from gst_invoice.models import Customer
from gst_invoice.pricing import LineItem, PricedLineItem, price_all
from gst_invoice.store import InvoiceNumberCollision, InvoiceStore, StoreError
from gst_invoice.validation import validate_invoice_payload


def sample_products():
    return price_all(
        [
            LineItem(name="Consulting", qty=1, rate=Decimal("50")),
            LineItem(name="Support", qty=3, rate=Decimal("10")),
        ]
    )


class InvoiceStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "invoices.db"
        self.store = InvoiceStore(self.db_path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _insert_raw_invoice(self, number: str) -> None:
        with sqlite3.connect(str(self.db_path)) as conn:
            conn.execute(
                "INSERT INTO invoices (invoice_number, invoice_date, currency, created_at) "
                "VALUES (?, ?, ?, ?)",
                (number, "2026-01-01T00:00:00+00:00", "INR", "2026-01-01T00:00:00+00:00"),
            )
        conn.close()

    def test_numbers_are_sequential(self) -> None:
        numbers = [self.store.create_invoice(sample_products()).number for _ in range(3)]

        self.assertEqual(numbers, ["INV-000001", "INV-000002", "INV-000003"])

    def test_round_trip_recomputes_totals(self) -> None:
        created = self.store.create_invoice(
            sample_products(),
            customer=Customer(name="Asha", email="asha@example.com"),
            currency="INR",
            invoice_date=datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc),
        )

        loaded = self.store.get_invoice(created.number)

        assert loaded is not None
        self.assertEqual(loaded, created)
        self.assertEqual(loaded.totals.subtotal, Decimal("80"))
        self.assertEqual(loaded.totals.tax_total, Decimal("14.4"))
        self.assertEqual(loaded.totals.grand_total, Decimal("94.4"))
        self.assertEqual([p.name for p in loaded.products], ["Consulting", "Support"])

    def test_get_unknown_invoice_returns_none(self) -> None:
        self.assertIsNone(self.store.get_invoice("INV-999999"))

    def test_empty_customer_is_not_stored(self) -> None:
        created = self.store.create_invoice(sample_products(), customer=Customer())

        loaded = self.store.get_invoice(created.number)
        assert loaded is not None
        self.assertIsNone(loaded.customer)

    def test_list_is_newest_first_with_paging(self) -> None:
        for _ in range(4):
            self.store.create_invoice(sample_products())

        self.assertEqual(
            [invoice.number for invoice in self.store.list_invoices(limit=2, offset=1)],
            ["INV-000003", "INV-000002"],
        )
        self.assertEqual(len(self.store.list_invoices()), 4)
        self.assertEqual(self.store.count_invoices(), 4)

    def test_numbering_continues_after_reopen(self) -> None:
        self.store.create_invoice(sample_products())

        reopened = InvoiceStore(self.db_path)

        self.assertEqual(reopened.create_invoice(sample_products()).number, "INV-000002")

    def test_counter_is_seeded_from_existing_invoices(self) -> None:
        other_path = Path(self._tmp.name) / "legacy.db"
        with sqlite3.connect(str(other_path)) as conn:
            conn.execute(
                "CREATE TABLE invoices (id INTEGER PRIMARY KEY AUTOINCREMENT, "
                "invoice_number TEXT NOT NULL UNIQUE, invoice_date TEXT NOT NULL, "
                "currency TEXT NOT NULL, customer_name TEXT, customer_email TEXT, "
                "created_at TEXT NOT NULL)"
            )
            for number in ("INV-000001", "INV-000002"):
                conn.execute(
                    "INSERT INTO invoices (invoice_number, invoice_date, currency, created_at) "
                    "VALUES (?, '2026-01-01', 'INR', '2026-01-01')",
                    (number,),
                )
        conn.close()

        legacy = InvoiceStore(other_path)

        self.assertEqual(legacy.create_invoice(sample_products()).number, "INV-000003")

    def test_single_collision_is_retried(self) -> None:
        self.store.create_invoice(sample_products())
        self._insert_raw_invoice("INV-000002")

        created = self.store.create_invoice(sample_products())

        self.assertEqual(created.number, "INV-000003")

    def test_repeated_collision_raises_and_rolls_back(self) -> None:
        self._insert_raw_invoice("INV-000001")
        self._insert_raw_invoice("INV-000002")

        with self.assertRaises(InvoiceNumberCollision) as ctx:
            self.store.create_invoice(sample_products())

        self.assertEqual(ctx.exception.invoice_number, "INV-000002")
        self.assertEqual(self.store.count_invoices(), 2)

    def test_out_of_range_quantity_raises_store_error(self) -> None:
        with self.assertRaises(StoreError):
            self.store.create_invoice([PricedLineItem(name="a", qty=10**19, rate=Decimal("1"))])

        self.assertEqual(self.store.count_invoices(), 0)
        self.assertEqual(self.store.create_invoice(sample_products()).number, "INV-000001")

    def test_largest_accepted_values_survive_round_trip(self) -> None:
        body = (
            b'{"products": [{"name": "Bulk", "qty": 9223372036854775807, '
            b'"rate": 999999999999999.99}]}'
        )
        request, error = validate_invoice_payload(body, max_pages=100)
        assert request is not None, error

        created = self.store.create_invoice(price_all(request.products))
        loaded = self.store.get_invoice(created.number)

        assert loaded is not None
        self.assertEqual(loaded, created)
        totals = loaded.totals
        self.assertEqual(totals.subtotal, Decimal("9223372036854775714766279631452241.93"))
        self.assertEqual(totals.tax_total, Decimal("1660206966633859628657930333661403.5474"))
        self.assertEqual(totals.grand_total, Decimal("10883579003488635343424209965113645.4774"))
        self.assertEqual(
            fmt_money(totals.subtotal, "Rs. "),
            "Rs. 9,223,372,036,854,775,714,766,279,631,452,241.93",
        )
        self.assertEqual(
            fmt_money(totals.grand_total, "Rs. "),
            "Rs. 10,883,579,003,488,635,343,424,209,965,113,645.48",
        )

    def test_concurrent_writers_never_share_a_number(self) -> None:
        numbers = []
        errors = []
        lock = threading.Lock()

        def writer() -> None:
            store = InvoiceStore(self.db_path)
            for _ in range(5):
                try:
                    number = store.create_invoice(sample_products()).number
                except Exception as exc:  # pragma: no cover - reported below
                    with lock:
                        errors.append(exc)
                    return
                with lock:
                    numbers.append(number)

        threads = [threading.Thread(target=writer) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(numbers), 40)
        self.assertEqual(
            sorted(numbers),
            [f"INV-{sequence:06d}" for sequence in range(1, 41)],
        )


if __name__ == "__main__":
    unittest.main()
