"""Standardized API response helpers.

Paginated list endpoints return a consistent envelope:
    {"items": [...], "total": <int>, "page": <int>, "page_size": <int>, "has_more": <bool>}
"""

from stockledger.core.config import settings


def clamp_page(page: int, page_size: int) -> tuple[int, int]:
    """Normalize page / page_size to a usable window."""
    page = max(page, 1)
    if page_size <= 0:
        page_size = settings.default_page_size
    return page, min(page_size, settings.max_page_size)


def paginated_response(items: list, total: int, page: int, page_size: int) -> dict:
    """Wrap a page of results in the standard envelope."""
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "has_more": (page - 1) * page_size + len(items) < total,
    }
