"""Pagination helpers producing ``{data, pagination}`` envelopes"""

import math
from typing import Any, Callable

from sqlalchemy.orm import Query

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 1000


def clamp_page(page: int, limit: int) -> tuple[int, int]:
    """Normalize page/limit to sane bounds"""
    page = max(1, page or 1)
    limit = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
    return page, limit


def paginate(query: Query, page: int, limit: int) -> tuple[list, int]:
    """Return one page of results and the total row count"""
    page, limit = clamp_page(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total


def page_envelope(
    items: list, total: int, page: int, limit: int, serializer: Callable[[Any], Any]
) -> dict:
    page, limit = clamp_page(page, limit)
    return {
        "data": [serializer(item) for item in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }
