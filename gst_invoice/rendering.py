"""Invoice PDF rendering logic."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Sequence, Tuple

from fpdf import FPDF

from .config import SELLER_NAME, SELLER_TAGLINE, TAX_LABEL
from .fonts import FontManager
from .formatting import fmt_date, fmt_money, fmt_qty, wrap_text
from .models import Invoice
from .pagination import split_pages
from .pdf_constants import (
    ASCII_CURRENCY_SYMBOLS,
    BAR_H,
    BAR_RADIUS,
    BAR_TEXT_Y_CONT,
    BAR_TEXT_Y_FIRST,
    BAR_W,
    BAR_Y_CONT,
    BAR_Y_FIRST,
    BILL_TO_EMAIL_Y,
    BILL_TO_LABEL_Y,
    BILL_TO_NAME_Y,
    BOX_RADIUS,
    COLOR_ACCENT,
    COLOR_BAR_TEXT,
    COLOR_BOX,
    COLOR_MUTED,
    COLOR_NUM,
    COLOR_ROW_ALT,
    COLOR_RULE,
    COLOR_TEXT,
    COLOR_TITLE,
    DATE_Y,
    DEFAULT_CURRENCY_SYMBOLS,
    FONT_SIZE_HEADING,
    FONT_SIZE_NORMAL,
    FONT_SIZE_SMALL,
    FONT_SIZE_TITLE,
    FOOTER_GAP,
    FOOTER_LINE_H,
    FOOTER_RULE_INSET,
    GRAND_BOX_H,
    GRAND_BOX_W,
    GRAND_BOX_X,
    GRAND_BOX_Y,
    GRAND_Y,
    ITEM_COUNT_Y,
    ITEM_ROW_H,
    ITEM_TO_QTY_GUTTER,
    ITEMS_START_Y_CONT,
    ITEMS_START_Y_FIRST,
    LABEL_RIGHT,
    NAME_LINE_H,
    NUMBER_RIGHT,
    NUMBER_Y,
    PAGE_H,
    QTY_CENTER,
    RATE_RIGHT,
    SELLER_Y,
    TAGLINE_Y,
    TAX_RIGHT,
    TITLE_RIGHT,
    TITLE_Y,
    TOTAL_RIGHT,
    TOTAL_ROW_H,
    TOTALS_GAP,
    X_BAR,
    X_ITEM,
    X_LEFT,
)
from .pricing import PricedLineItem

FOOTER_LINES = (
    "Thank you for your business!",
    "This is a computer-generated invoice.",
)


class InvoiceRenderer:
    def __init__(self, invoice: Invoice) -> None:
        self.invoice = invoice
        self.totals = invoice.totals
        self.pdf = FPDF(unit="pt", format="letter")
        self.pdf.set_auto_page_break(False)
        self.pdf.add_page()

        self.fonts = FontManager(self.pdf)
        self.currency_symbol = self._currency_symbol()

    def _currency_symbol(self) -> str:
        currency = self.invoice.currency.upper()
        symbols = DEFAULT_CURRENCY_SYMBOLS if self.fonts.use_unicode else ASCII_CURRENCY_SYMBOLS
        return symbols.get(currency, f"{currency} ")

    def _money(self, amount: Decimal) -> str:
        return fmt_money(amount, self.currency_symbol)

    def _draw_table_header(self, bar_y: float, text_y: float) -> None:
        self.pdf.set_fill_color(*COLOR_ACCENT)
        self.pdf.rect(X_BAR, bar_y, BAR_W, BAR_H, style="F", round_corners=True, corner_radius=BAR_RADIUS)

        self.fonts.draw_text(X_ITEM, text_y, "Product", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_centered(QTY_CENTER, text_y, "Qty", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_right(RATE_RIGHT, text_y, "Rate", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_right(TOTAL_RIGHT, text_y, "Total", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_right(TAX_RIGHT, text_y, TAX_LABEL, FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)

    def _name_lines(self, name: str) -> List[str]:
        max_name_width = QTY_CENTER - X_ITEM - ITEM_TO_QTY_GUTTER
        return wrap_text(self.fonts, name, max_name_width, FONT_SIZE_NORMAL, bold=True)

    def _draw_items(self, start_y: float, page_items: Sequence[PricedLineItem], row_offset: int) -> float:
        y = start_y
        for index, product in enumerate(page_items, start=row_offset):
            name_lines = self._name_lines(product.name)
            row_h = (len(name_lines) - 1) * NAME_LINE_H + ITEM_ROW_H

            if index % 2 == 1:
                self.pdf.set_fill_color(*COLOR_ROW_ALT)
                self.pdf.rect(X_BAR, y - 12.0, BAR_W, row_h, style="F")

            for i, line in enumerate(name_lines):
                self.fonts.draw_text(X_ITEM, y + i * NAME_LINE_H, line, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)

            self.fonts.draw_centered(QTY_CENTER, y, fmt_qty(product.qty), FONT_SIZE_NORMAL, COLOR_NUM)
            self.fonts.draw_right(RATE_RIGHT, y, self._money(product.rate), FONT_SIZE_NORMAL, COLOR_NUM)
            self.fonts.draw_right(TOTAL_RIGHT, y, self._money(product.total), FONT_SIZE_NORMAL, COLOR_NUM)
            self.fonts.draw_right(TAX_RIGHT, y, self._money(product.tax), FONT_SIZE_NORMAL, COLOR_NUM)

            y += row_h
        return y

    def _draw_totals(self, start_y: float) -> float:
        rows: Tuple[Tuple[str, str, bool], ...] = (
            ("Subtotal:", self._money(self.totals.subtotal), False),
            (f"{TAX_LABEL}:", self._money(self.totals.tax_total), False),
            ("Grand Total:", self._money(self.totals.grand_total), True),
        )
        y = start_y
        for label, value, emphasised in rows:
            color = COLOR_ACCENT if emphasised else COLOR_NUM
            self.fonts.draw_right(LABEL_RIGHT, y, label, FONT_SIZE_NORMAL, COLOR_MUTED, bold=emphasised)
            self.fonts.draw_right(TAX_RIGHT, y, value, FONT_SIZE_NORMAL, color, bold=emphasised)
            y += TOTAL_ROW_H
        return y

    def _draw_footer(self, start_y: float) -> None:
        y = min(start_y, PAGE_H - FOOTER_GAP - FOOTER_LINE_H)
        self.pdf.set_draw_color(*COLOR_RULE)
        self.pdf.line(X_BAR, y - FOOTER_RULE_INSET, X_BAR + BAR_W, y - FOOTER_RULE_INSET)
        center = X_BAR + BAR_W / 2.0
        for i, line in enumerate(FOOTER_LINES):
            color = COLOR_ACCENT if i == len(FOOTER_LINES) - 1 else COLOR_MUTED
            self.fonts.draw_centered(center, y + i * FOOTER_LINE_H, line, FONT_SIZE_SMALL, color)

    def _draw_header(self) -> None:
        self.fonts.draw_text(X_LEFT, SELLER_Y, SELLER_NAME, FONT_SIZE_HEADING, COLOR_ACCENT, bold=True)
        self.fonts.draw_text(X_LEFT, TAGLINE_Y, SELLER_TAGLINE, FONT_SIZE_SMALL, COLOR_MUTED)

        self.fonts.draw_right(TITLE_RIGHT, TITLE_Y, "INVOICE", FONT_SIZE_TITLE, COLOR_TITLE)
        self.fonts.draw_right(NUMBER_RIGHT, NUMBER_Y, f"# {self.invoice.number}", FONT_SIZE_NORMAL, COLOR_MUTED)

        self.fonts.draw_right(LABEL_RIGHT, DATE_Y, "Date:", FONT_SIZE_NORMAL, COLOR_MUTED)
        self.fonts.draw_right(NUMBER_RIGHT, DATE_Y, fmt_date(self.invoice.date), FONT_SIZE_NORMAL, COLOR_TEXT)
        self.fonts.draw_right(LABEL_RIGHT, ITEM_COUNT_Y, "Total Items:", FONT_SIZE_NORMAL, COLOR_MUTED)
        self.fonts.draw_right(
            NUMBER_RIGHT,
            ITEM_COUNT_Y,
            str(len(self.invoice.products)),
            FONT_SIZE_NORMAL,
            COLOR_TEXT,
        )

        customer = self.invoice.customer
        if customer is not None:
            self.fonts.draw_text(X_LEFT, BILL_TO_LABEL_Y, "Bill To:", FONT_SIZE_SMALL, COLOR_ACCENT, bold=True)
            if customer.name:
                self.fonts.draw_text(X_LEFT, BILL_TO_NAME_Y, customer.name, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)
            if customer.email:
                email_y = BILL_TO_EMAIL_Y if customer.name else BILL_TO_NAME_Y
                self.fonts.draw_text(X_LEFT, email_y, customer.email, FONT_SIZE_SMALL, COLOR_TEXT)

        self.pdf.set_fill_color(*COLOR_BOX)
        self.pdf.rect(
            GRAND_BOX_X,
            GRAND_BOX_Y,
            GRAND_BOX_W,
            GRAND_BOX_H,
            style="F",
            round_corners=True,
            corner_radius=BOX_RADIUS,
        )
        self.fonts.draw_right(LABEL_RIGHT, GRAND_Y, "Grand Total:", FONT_SIZE_NORMAL, COLOR_TITLE, bold=True)
        self.fonts.draw_right(
            NUMBER_RIGHT,
            GRAND_Y,
            self._money(self.totals.grand_total),
            FONT_SIZE_NORMAL,
            COLOR_TITLE,
            bold=True,
        )

    def _draw_pages(self) -> None:
        pages = split_pages(self.invoice.products)
        row_offset = 0
        items_end_y = ITEMS_START_Y_FIRST
        for page_index, page_items in enumerate(pages):
            if page_index == 0:
                self._draw_header()
                self._draw_table_header(BAR_Y_FIRST, BAR_TEXT_Y_FIRST)
                start_y = ITEMS_START_Y_FIRST
            else:
                self.pdf.add_page()
                self._draw_table_header(BAR_Y_CONT, BAR_TEXT_Y_CONT)
                start_y = ITEMS_START_Y_CONT
            items_end_y = self._draw_items(start_y, page_items, row_offset)
            row_offset += len(page_items)

        totals_end_y = self._draw_totals(items_end_y + TOTALS_GAP)
        self._draw_footer(totals_end_y + FOOTER_GAP)

    def render(self) -> bytes:
        self._draw_pages()
        return bytes(self.pdf.output())


def render_invoice(invoice: Invoice) -> bytes:
    return InvoiceRenderer(invoice).render()
