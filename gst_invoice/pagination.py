"""Helpers for estimating invoice pagination constraints."""

from __future__ import annotations

from typing import List, Sequence, TypeVar

from .pdf_constants import FIRST_PAGE_CAPACITY, LAST_PAGE_CAPACITY, MID_PAGE_CAPACITY

T = TypeVar("T")


def estimate_page_count(item_count: int) -> int:
    if item_count <= FIRST_PAGE_CAPACITY:
        return 1
    remaining = item_count - FIRST_PAGE_CAPACITY
    if remaining <= LAST_PAGE_CAPACITY:
        return 2
    mid_items = remaining - LAST_PAGE_CAPACITY
    mid_pages = (mid_items + MID_PAGE_CAPACITY - 1) // MID_PAGE_CAPACITY
    return 2 + mid_pages


def max_items_for_pages(page_count: int) -> int:
    if page_count <= 1:
        return FIRST_PAGE_CAPACITY
    return FIRST_PAGE_CAPACITY + LAST_PAGE_CAPACITY + MID_PAGE_CAPACITY * (page_count - 2)


def split_pages(items: Sequence[T]) -> List[Sequence[T]]:
    """Split rows into per-page chunks; the last chunk is the totals page."""
    if len(items) <= FIRST_PAGE_CAPACITY:
        return [items]

    pages: List[Sequence[T]] = [items[:FIRST_PAGE_CAPACITY]]
    cursor = FIRST_PAGE_CAPACITY
    last_page_start = len(items) - LAST_PAGE_CAPACITY
    while cursor < last_page_start:
        take = min(MID_PAGE_CAPACITY, last_page_start - cursor)
        pages.append(items[cursor : cursor + take])
        cursor += take
    pages.append(items[cursor:])
    return pages
