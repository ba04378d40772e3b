"""Line-item pricing and invoice total aggregation.

Both operations are pure: they take already validated input, never touch
shared state and always return the same result for the same input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, Context, Decimal, localcontext
from typing import Iterable, List, Sequence

from .config import TAX_RATE

ZERO = Decimal("0")

# Addition, multiplication and quantize never round under this context.
EXACT_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


@dataclass(frozen=True)
class LineItem:
    name: str
    qty: int
    rate: Decimal


@dataclass(frozen=True)
class PricedLineItem:
    """A line item with its derived ``total`` and ``tax``.

    The derived fields are computed from ``qty`` and ``rate`` on construction
    and cannot be passed in.
    """

    name: str
    qty: int
    rate: Decimal
    total: Decimal = field(init=False)
    tax: Decimal = field(init=False)

    def __post_init__(self) -> None:
        with localcontext(EXACT_CONTEXT):
            total = self.qty * self.rate
            tax = total * TAX_RATE
        object.__setattr__(self, "total", total)
        object.__setattr__(self, "tax", tax)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_total: Decimal
    grand_total: Decimal


def price(item: LineItem) -> PricedLineItem:
    return PricedLineItem(name=item.name, qty=item.qty, rate=item.rate)


def price_all(items: Iterable[LineItem]) -> List[PricedLineItem]:
    return [price(item) for item in items]


def aggregate(products: Sequence[PricedLineItem]) -> InvoiceTotals:
    # Sum in sequence order; tax is the sum of per-line tax, not subtotal * rate.
    subtotal = ZERO
    tax_total = ZERO
    with localcontext(EXACT_CONTEXT):
        for product in products:
            subtotal += product.total
            tax_total += product.tax
        grand_total = subtotal + tax_total
    return InvoiceTotals(
        subtotal=subtotal,
        tax_total=tax_total,
        grand_total=grand_total,
    )
