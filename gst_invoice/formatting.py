"""Formatting helpers shared by the renderer and the API."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import List, Protocol

from .pricing import EXACT_CONTEXT

CENT = Decimal("0.01")


class TextWidthProvider(Protocol):
    def text_width(self, text: str, size: int, bold: bool = False) -> float:
        ...


def round_money(amount: Decimal) -> Decimal:
    with localcontext(EXACT_CONTEXT):
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def fmt_money(amount: Decimal, symbol: str) -> str:
    return f"{symbol}{round_money(amount):,.2f}"


def fmt_qty(qty: int) -> str:
    return f"{qty:,}"


def fmt_date(value: datetime) -> str:
    return value.strftime("%b %d, %Y")


def wrap_text(
    fonts_obj: TextWidthProvider,
    text: str,
    max_width: float,
    font_size: int,
    bold: bool = False,
) -> List[str]:
    def line_width(value: str) -> float:
        return fonts_obj.text_width(value, font_size, bold=bold)

    def wrap_paragraph(paragraph: str) -> List[str]:
        words = paragraph.split()
        if not words:
            return []

        lines: List[str] = []
        current = ""
        for word in words:
            candidate = word if not current else f"{current} {word}"
            if line_width(candidate) <= max_width:
                current = candidate
                continue

            if current:
                lines.append(current)
                current = ""
                if line_width(word) <= max_width:
                    current = word
                    continue

            # A single word wider than the column is broken by character.
            chunk = ""
            for char in word:
                if chunk and line_width(chunk + char) > max_width:
                    lines.append(chunk)
                    chunk = char
                else:
                    chunk += char
            current = chunk

        if current:
            lines.append(current)
        return lines

    result: List[str] = []
    for paragraph in text.split("\n"):
        result.extend(wrap_paragraph(paragraph))
    return result if result else [text]
