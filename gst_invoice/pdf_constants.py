"""Layout constants for the invoice PDF (points, top-left origin, US letter)."""

from __future__ import annotations

PAGE_H = 792

X_LEFT = 48
X_ITEM = 45
X_BAR = 30
BAR_W = 552
BAR_H = 20

# First-page table header
BAR_Y_FIRST = 221.0
BAR_TEXT_Y_FIRST = 233.2

# Continuation-page table header
BAR_Y_CONT = 12.8
BAR_TEXT_Y_CONT = 24.8

TITLE_RIGHT = 573
NUMBER_RIGHT = 568
LABEL_RIGHT = 461

# Table columns: quantity is centred, money columns are right-aligned.
QTY_CENTER = 300
RATE_RIGHT = 386
TOTAL_RIGHT = 476
TAX_RIGHT = 566
ITEM_TO_QTY_GUTTER = 24

SELLER_Y = 33.8
TAGLINE_Y = 47.0
TITLE_Y = 48.0
NUMBER_Y = 67.5
DATE_Y = 100.0
ITEM_COUNT_Y = 114.0

BILL_TO_LABEL_Y = 131.2
BILL_TO_NAME_Y = 147.0
BILL_TO_EMAIL_Y = 159.0

GRAND_BOX_X = 317.0
GRAND_BOX_Y = 130.0
GRAND_BOX_W = 270.0
GRAND_BOX_H = 27.0
GRAND_Y = 145.8

ITEMS_START_Y_FIRST = 258.8
ITEMS_START_Y_CONT = 42.0
ITEM_ROW_H = 17.2
NAME_LINE_H = 12.0

TOTALS_GAP = 14.0
TOTAL_ROW_H = 19.0
FOOTER_GAP = 42.0
FOOTER_LINE_H = 14.0
FOOTER_RULE_INSET = 18.0

# Rows per page. The final page reserves room for totals and footer.
FIRST_PAGE_CAPACITY = 22
MID_PAGE_CAPACITY = 40
LAST_PAGE_CAPACITY = 24

# Colors (RGB)
COLOR_ACCENT = (79, 70, 229)        # #4F46E5
COLOR_TITLE = (17, 24, 39)          # #111827
COLOR_MUTED = (107, 114, 128)       # #6B7280
COLOR_TEXT = (55, 65, 81)           # #374151
COLOR_NUM = (75, 85, 99)            # #4B5563
COLOR_RULE = (229, 231, 235)        # #E5E7EB
COLOR_ROW_ALT = (249, 250, 251)     # #F9FAFB
COLOR_BAR_TEXT = (255, 255, 255)
COLOR_BOX = (238, 242, 255)         # #EEF2FF

FONT_SIZE_TITLE = 28
FONT_SIZE_HEADING = 16
FONT_SIZE_NORMAL = 10
FONT_SIZE_SMALL = 9

BAR_RADIUS = 4.0
BOX_RADIUS = 4.0

DEFAULT_CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}

# Used when only the core Latin-1 font is available.
ASCII_CURRENCY_SYMBOLS = {
    "INR": "Rs. ",
    "USD": "$",
    "EUR": "EUR ",
    "GBP": "£",
}
