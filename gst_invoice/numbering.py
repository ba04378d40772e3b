"""Human-readable invoice number format."""

from __future__ import annotations

import re
from typing import Optional

INVOICE_PREFIX = "INV-"
SEQUENCE_WIDTH = 6

INVOICE_NUMBER_RE = re.compile(r"^INV-(\d{6,})$")


def format_invoice_number(sequence: int) -> str:
    if sequence < 1:
        raise ValueError(f"Invoice sequence must be positive, got {sequence}.")
    return f"{INVOICE_PREFIX}{sequence:0{SEQUENCE_WIDTH}d}"


def parse_invoice_number(text: str) -> Optional[int]:
    """Return the sequence encoded in ``text`` or None if it is not an invoice number."""
    match = INVOICE_NUMBER_RE.match(text.strip())
    if match is None:
        return None
    return int(match.group(1))
