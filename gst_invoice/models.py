"""Persisted invoice model and its JSON envelope."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from .pricing import InvoiceTotals, PricedLineItem, aggregate


def money_to_json(value: Decimal) -> float:
    return float(value)


@dataclass(frozen=True)
class Customer:
    name: str = ""
    email: str = ""

    def is_empty(self) -> bool:
        return not self.name and not self.email

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email}


@dataclass(frozen=True)
class Invoice:
    number: str
    date: datetime
    products: Tuple[PricedLineItem, ...]
    currency: str
    customer: Optional[Customer] = None

    @property
    def totals(self) -> InvoiceTotals:
        return aggregate(self.products)

    def to_dict(self) -> Dict[str, Any]:
        totals = self.totals
        return {
            "invoiceNumber": self.number,
            "date": self.date.isoformat(),
            "currency": self.currency,
            "customer": self.customer.to_dict() if self.customer else None,
            "products": [product_to_dict(product) for product in self.products],
            "itemCount": len(self.products),
            "subtotal": money_to_json(totals.subtotal),
            "taxTotal": money_to_json(totals.tax_total),
            "grandTotal": money_to_json(totals.grand_total),
        }


def product_to_dict(product: PricedLineItem) -> Dict[str, Any]:
    return {
        "name": product.name,
        "qty": product.qty,
        "rate": money_to_json(product.rate),
        "total": money_to_json(product.total),
        "tax": money_to_json(product.tax),
    }


def quote_to_dict(products: Tuple[PricedLineItem, ...], currency: str) -> Dict[str, Any]:
    totals = aggregate(products)
    return {
        "currency": currency,
        "products": [product_to_dict(product) for product in products],
        "itemCount": len(products),
        "subtotal": money_to_json(totals.subtotal),
        "taxTotal": money_to_json(totals.tax_total),
        "grandTotal": money_to_json(totals.grand_total),
    }
