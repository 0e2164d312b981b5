"""
core/pagination.py -- Page/limit parsing, pagination metadata, and page-range calculation.

List endpoints accept ?page= and ?limit= query params; parse_pagination()
clamps them into a safe window and build_pagination_meta() produces the
metadata block the dashboard renders under every table.

pagination_range() computes which page buttons to show, collapsing long runs
into "ellipsis" markers:

    pagination_range(1, 10)  -> [1, 2, 3, 4, 5, "ellipsis", 10]
    pagination_range(5, 10)  -> [1, "ellipsis", 4, 5, 6, "ellipsis", 10]
    pagination_range(10, 10) -> [1, "ellipsis", 6, 7, 8, 9, 10]

Layer rule: pure functions, no imports from api/ or auth/.
"""

from __future__ import annotations

from typing import Optional, Union

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

ELLIPSIS = "ellipsis"

PageItem = Union[int, str]


def parse_pagination(page: Optional[int] = None, limit: Optional[int] = None) -> tuple[int, int, int]:
    """Return (page, limit, skip) with page >= 1 and 1 <= limit <= MAX_LIMIT.

    Missing or zero values fall back to the defaults.
    """
    page = max(1, page or DEFAULT_PAGE)
    limit = min(MAX_LIMIT, max(1, limit or DEFAULT_LIMIT))
    return page, limit, (page - 1) * limit


def build_pagination_meta(total: int, page: int, limit: int) -> dict:
    """Build the pagination metadata block for a list response."""
    total_pages = -(-total // limit) if limit > 0 else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "itemsPerPage": limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def _range(start: int, end: int) -> list[int]:
    return list(range(start, end + 1))


def pagination_range(current_page: int, total_pages: int, sibling_count: int = 1) -> list[PageItem]:
    """Return the page numbers to display, with ELLIPSIS markers for gaps.

    Always includes the first and last page. Shows sibling_count pages on
    each side of current_page. When every page fits in the fixed slot count
    (first + last + current + two ellipses + siblings) the full range is
    returned without markers.
    """
    if total_pages <= 0:
        return []

    total_page_numbers = sibling_count + 5
    if total_page_numbers >= total_pages:
        return _range(1, total_pages)

    left_sibling = max(current_page - sibling_count, 1)
    right_sibling = min(current_page + sibling_count, total_pages)

    show_left_dots = left_sibling > 2
    show_right_dots = right_sibling < total_pages - 2

    if not show_left_dots and show_right_dots:
        left_count = 3 + 2 * sibling_count
        return [*_range(1, left_count), ELLIPSIS, total_pages]

    if show_left_dots and not show_right_dots:
        right_count = 3 + 2 * sibling_count
        return [1, ELLIPSIS, *_range(total_pages - right_count + 1, total_pages)]

    if show_left_dots and show_right_dots:
        return [1, ELLIPSIS, *_range(left_sibling, right_sibling), ELLIPSIS, total_pages]

    return _range(1, total_pages)
