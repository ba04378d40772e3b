"""Public package API for GST invoice pricing, numbering and rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .numbering import format_invoice_number, parse_invoice_number
from .pricing import InvoiceTotals, LineItem, PricedLineItem, aggregate, price, price_all

if TYPE_CHECKING:
    from .models import Invoice


def render_invoice(invoice: "Invoice") -> bytes:
    from .rendering import render_invoice as _render_invoice

    return _render_invoice(invoice)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = [
    "InvoiceTotals",
    "LineItem",
    "PricedLineItem",
    "aggregate",
    "format_invoice_number",
    "parse_invoice_number",
    "price",
    "price_all",
    "render_invoice",
    "run",
]
