# utils/pagination.py
import math
from typing import Any, Dict


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def paginate(total: int, page: int, limit: int) -> Dict[str, Any]:
    """Flat paging fields merged into list responses."""
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages(total, limit),
    }


def page_info(total: int, page: int, limit: int, total_key: str = "total_items") -> Dict[str, Any]:
    """Nested pagination block with next/prev flags."""
    pages = total_pages(total, limit)
    return {
        "current_page": page,
        "total_pages": pages,
        total_key: total,
        "has_next": page < pages,
        "has_prev": page > 1,
    }
