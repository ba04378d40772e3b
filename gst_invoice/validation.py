"""Request validation for invoice payloads.

Everything the pricer receives has passed through here: product names are
trimmed and non-empty, quantities are integers >= 1 and rates are finite
non-negative decimals.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .config import DEFAULT_CURRENCY
from .models import Customer
from .pagination import estimate_page_count, max_items_for_pages
from .pricing import LineItem

ValidationError = Tuple[int, Dict[str, Any]]

CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")
INTEGER_RE = re.compile(r"^\s*[0-9]+\s*$")

# SQLite INTEGER range.
MAX_QTY = 2**63 - 1
MAX_RATE = Decimal("1e15")

MSG_PRODUCTS_REQUIRED = "At least one product is required"
MSG_NAME_REQUIRED = "Product name is required"
MSG_QTY_INVALID = "Product quantity must be a positive integer"
MSG_RATE_INVALID = "Product rate must be a positive number"
MSG_QTY_TOO_LARGE = f"Product quantity must not exceed {MAX_QTY}"
MSG_RATE_TOO_LARGE = "Product rate must be below 1,000,000,000,000,000"


@dataclass(frozen=True)
class InvoiceRequest:
    products: Tuple[LineItem, ...]
    currency: str = DEFAULT_CURRENCY
    customer: Optional[Customer] = None


def _error(status: int, code: str, detail: str, errors: Optional[List[str]] = None) -> ValidationError:
    payload: Dict[str, Any] = {"error": code, "detail": detail}
    if errors is not None:
        payload["errors"] = errors
    return status, payload


def parse_qty(value: Any) -> Optional[int]:
    """Accept ints, ASCII digit strings and integral JSON numbers such as 2.0."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        qty = value
    elif isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        # Anything past 19 digits is out of range; skip building the int.
        qty = int(value) if value.adjusted() < 19 else MAX_QTY + 1
    elif isinstance(value, str) and INTEGER_RE.match(value):
        digits = value.strip().lstrip("0")
        qty = int(value) if len(digits) <= 19 else MAX_QTY + 1
    else:
        return None
    return qty if qty >= 1 else None


def parse_rate(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, Decimal)):
        rate = Decimal(value)
    elif isinstance(value, float):
        rate = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            rate = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not rate.is_finite() or rate < 0:
        return None
    return rate


def _parse_customer(raw: Any) -> Tuple[Optional[Customer], Optional[str]]:
    if raw is None:
        return None, None
    if not isinstance(raw, dict):
        return None, "'customer' must be an object."
    name = raw.get("name", "")
    email = raw.get("email", "")
    if not isinstance(name, str) or not isinstance(email, str):
        return None, "Customer name and email must be strings."
    customer = Customer(name=name.strip(), email=email.strip())
    return (None if customer.is_empty() else customer), None


def validate_products(raw_products: List[Any]) -> Tuple[Tuple[LineItem, ...], List[str]]:
    """Convert raw product dicts into line items, collecting every error message."""
    errors: List[str] = []
    items: List[LineItem] = []
    if not raw_products:
        errors.append(MSG_PRODUCTS_REQUIRED)

    for raw in raw_products:
        if not isinstance(raw, dict):
            errors.append("Each product must be an object")
            continue
        name = raw.get("name")
        name = name.strip() if isinstance(name, str) else ""
        qty = parse_qty(raw.get("qty"))
        rate = parse_rate(raw.get("rate"))

        if not name:
            errors.append(MSG_NAME_REQUIRED)
        if qty is None:
            errors.append(MSG_QTY_INVALID)
        elif qty > MAX_QTY:
            errors.append(MSG_QTY_TOO_LARGE)
            qty = None
        if rate is None:
            errors.append(MSG_RATE_INVALID)
        elif rate >= MAX_RATE:
            errors.append(MSG_RATE_TOO_LARGE)
            rate = None
        if name and qty is not None and rate is not None:
            items.append(LineItem(name=name, qty=qty, rate=rate))

    return tuple(items), errors


def decode_json_body(body: bytes) -> Tuple[Optional[Any], Optional[ValidationError]]:
    try:
        return json.loads(body.decode("utf-8"), parse_float=Decimal), None
    except UnicodeDecodeError:
        return None, _error(400, "invalid_encoding", "Body must be UTF-8 encoded JSON.")
    except json.JSONDecodeError as exc:
        return None, _error(
            400,
            "invalid_json",
            f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
        )
    except ValueError as exc:
        # Integer literals beyond the interpreter's digit limit.
        return None, _error(400, "invalid_json", str(exc))


def validate_invoice_payload(
    body: bytes,
    max_pages: int,
) -> Tuple[Optional[InvoiceRequest], Optional[ValidationError]]:
    payload, decode_error = decode_json_body(body)
    if decode_error is not None:
        return None, decode_error

    if not isinstance(payload, dict):
        return None, _error(400, "invalid_payload", "JSON root must be an object.")

    raw_products = payload.get("products")
    if raw_products is None:
        raw_products = []
    if not isinstance(raw_products, list):
        return None, _error(400, "invalid_payload", "'products' must be an array.")

    currency = payload.get("currency", DEFAULT_CURRENCY)
    if not isinstance(currency, str) or not CURRENCY_RE.match(currency):
        return None, _error(400, "invalid_payload", "'currency' must be a three-letter code.")

    customer, customer_error = _parse_customer(payload.get("customer"))
    if customer_error is not None:
        return None, _error(400, "invalid_payload", customer_error)

    products, errors = validate_products(raw_products)
    if errors:
        return None, _error(400, "validation_failed", "Validation failed", errors)

    estimated_pages = estimate_page_count(len(products))
    if estimated_pages > max_pages:
        status, error_payload = _error(
            413,
            "invoice_too_large",
            f"Invoice would render {estimated_pages} pages; maximum is {max_pages}.",
        )
        error_payload["max_items"] = max_items_for_pages(max_pages)
        return None, (status, error_payload)

    return InvoiceRequest(products=products, currency=currency.upper(), customer=customer), None
