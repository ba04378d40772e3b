import json
import unittest
from decimal import Decimal
from unittest.mock import patch

from gst_invoice.models import Customer
from gst_invoice.validation import (
    MSG_NAME_REQUIRED,
    MSG_PRODUCTS_REQUIRED,
    MAX_QTY,
    MSG_QTY_INVALID,
    MSG_QTY_TOO_LARGE,
    MSG_RATE_INVALID,
    MSG_RATE_TOO_LARGE,
    parse_qty,
    parse_rate,
    validate_invoice_payload,
)


class PayloadValidationTests(unittest.TestCase):
    def _json_bytes(self, payload: object) -> bytes:
        return json.dumps(payload).encode("utf-8")

    def test_accepts_valid_payload(self) -> None:
        request, error = validate_invoice_payload(
            self._json_bytes(
                {
                    "products": [{"name": "  Widget ", "qty": 2, "rate": 99.5}],
                    "customer": {"name": "Asha", "email": "asha@example.com"},
                    "currency": "usd",
                }
            ),
            max_pages=100,
        )

        self.assertIsNone(error)
        assert request is not None
        self.assertEqual(len(request.products), 1)
        self.assertEqual(request.products[0].name, "Widget")
        self.assertEqual(request.products[0].qty, 2)
        self.assertEqual(request.products[0].rate, Decimal("99.5"))
        self.assertEqual(request.currency, "USD")
        self.assertEqual(request.customer, Customer(name="Asha", email="asha@example.com"))

    def test_defaults_currency_and_customer(self) -> None:
        request, error = validate_invoice_payload(
            self._json_bytes({"products": [{"name": "A", "qty": 1, "rate": 0}]}),
            max_pages=100,
        )

        self.assertIsNone(error)
        assert request is not None
        self.assertEqual(request.currency, "INR")
        self.assertIsNone(request.customer)

    def test_rejects_invalid_utf8(self) -> None:
        _, error = validate_invoice_payload(b"\xff", max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_encoding")

    def test_rejects_invalid_json(self) -> None:
        _, error = validate_invoice_payload(b'{"products":', max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_json")

    def test_rejects_non_object_root(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes(["bad-root"]), max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_rejects_non_array_products(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes({"products": "bad"}), max_pages=100)

        assert error is not None
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_rejects_empty_product_list(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes({"products": []}), max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "validation_failed")
        self.assertEqual(error[1]["errors"], [MSG_PRODUCTS_REQUIRED])

    def test_collects_every_product_error(self) -> None:
        _, error = validate_invoice_payload(
            self._json_bytes(
                {
                    "products": [
                        {"name": " ", "qty": 1, "rate": 1},
                        {"name": "A", "qty": 0, "rate": 1},
                        {"name": "B", "qty": 1, "rate": -1},
                    ]
                }
            ),
            max_pages=100,
        )

        assert error is not None
        self.assertEqual(error[1]["errors"], [MSG_NAME_REQUIRED, MSG_QTY_INVALID, MSG_RATE_INVALID])

    def test_rejects_bad_currency_and_customer(self) -> None:
        products = [{"name": "A", "qty": 1, "rate": 1}]
        _, currency_error = validate_invoice_payload(
            self._json_bytes({"products": products, "currency": "RUPEES"}),
            max_pages=100,
        )
        _, customer_error = validate_invoice_payload(
            self._json_bytes({"products": products, "customer": "Asha"}),
            max_pages=100,
        )

        assert currency_error is not None and customer_error is not None
        self.assertEqual(currency_error[1]["error"], "invalid_payload")
        self.assertEqual(customer_error[1]["error"], "invalid_payload")

    def test_rejects_payload_exceeding_max_pages(self) -> None:
        with patch("gst_invoice.validation.estimate_page_count", return_value=11):
            _, error = validate_invoice_payload(
                self._json_bytes({"products": [{"name": "A", "qty": 1, "rate": 1}]}),
                max_pages=10,
            )

        assert error is not None
        self.assertEqual(error[0], 413)
        self.assertEqual(error[1]["error"], "invoice_too_large")
        self.assertIn("max_items", error[1])

class MagnitudeValidationTests(unittest.TestCase):
    def _validate(self, product: object):
        body = json.dumps({"products": [product]}).encode("utf-8")
        return validate_invoice_payload(body, max_pages=100)

    def test_rejects_quantity_beyond_integer_column(self) -> None:
        _, error = self._validate({"name": "A", "qty": 10**19, "rate": 1})

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "validation_failed")
        self.assertEqual(error[1]["errors"], [MSG_QTY_TOO_LARGE])

    def test_accepts_largest_storable_quantity(self) -> None:
        request, error = self._validate({"name": "A", "qty": MAX_QTY, "rate": 1})

        self.assertIsNone(error)
        assert request is not None
        self.assertEqual(request.products[0].qty, 2**63 - 1)

    def test_rejects_huge_rate(self) -> None:
        body = b'{"products": [{"name": "A", "qty": 1, "rate": 1e30}]}'
        _, error = validate_invoice_payload(body, max_pages=100)

        assert error is not None
        self.assertEqual(error[1]["errors"], [MSG_RATE_TOO_LARGE])

    def test_accepts_high_precision_rate_below_cap(self) -> None:
        body = b'{"products": [{"name": "A", "qty": 1, "rate": 999999999999999.99}]}'
        request, error = validate_invoice_payload(body, max_pages=100)

        self.assertIsNone(error)
        assert request is not None
        self.assertEqual(request.products[0].rate, Decimal("999999999999999.99"))

    def test_rejects_exponent_quantity(self) -> None:
        body = b'{"products": [{"name": "A", "qty": 1E+100, "rate": 1}]}'
        _, error = validate_invoice_payload(body, max_pages=100)

        assert error is not None
        self.assertEqual(error[1]["errors"], [MSG_QTY_TOO_LARGE])

    def test_accepts_integral_json_number_quantity(self) -> None:
        body = b'{"products": [{"name": "A", "qty": 2.0, "rate": 1}]}'
        request, error = validate_invoice_payload(body, max_pages=100)

        self.assertIsNone(error)
        assert request is not None
        self.assertEqual(request.products[0].qty, 2)

    def test_oversized_integer_literal_is_a_client_error(self) -> None:
        body = b'{"products": [{"name": "A", "qty": ' + b"9" * 5000 + b', "rate": 1}]}'
        _, error = validate_invoice_payload(body, max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        # Interpreters with an int digit limit fail decoding, older ones fail the range check.
        self.assertIn(error[1]["error"], ("invalid_json", "validation_failed"))


class FieldParsingTests(unittest.TestCase):
    def test_parse_qty(self) -> None:
        self.assertEqual(parse_qty(3), 3)
        self.assertEqual(parse_qty("4"), 4)
        self.assertEqual(parse_qty(Decimal("2.0")), 2)
        self.assertIsNone(parse_qty(Decimal("2.5")))
        self.assertIsNone(parse_qty(0))
        self.assertIsNone(parse_qty(True))
        self.assertIsNone(parse_qty(None))

    def test_parse_qty_requires_ascii_digits(self) -> None:
        self.assertIsNone(parse_qty("\u0663"))
        self.assertIsNone(parse_qty("\uff13"))
        self.assertEqual(parse_qty(" 007 "), 7)

    def test_parse_qty_flags_out_of_range_values(self) -> None:
        self.assertGreater(parse_qty(Decimal("1E+100")), MAX_QTY)
        self.assertGreater(parse_qty("1" + "0" * 30), MAX_QTY)
        self.assertEqual(parse_qty("0" * 30 + "5"), 5)

    def test_parse_rate(self) -> None:
        self.assertEqual(parse_rate(0), Decimal("0"))
        self.assertEqual(parse_rate("12.50"), Decimal("12.50"))
        self.assertEqual(parse_rate(0.1), Decimal("0.1"))
        self.assertIsNone(parse_rate(-0.01))
        self.assertIsNone(parse_rate("abc"))
        self.assertIsNone(parse_rate(float("nan")))
        self.assertIsNone(parse_rate(False))


if __name__ == "__main__":
    unittest.main()
