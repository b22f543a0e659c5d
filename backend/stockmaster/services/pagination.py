# Overview: Offset pagination shared by list endpoints.

from __future__ import annotations

from flask import current_app


def paginate(query, page: int | None, per_page: int | None):
    """
    Apply offset/limit to ``query``.

    Returns (rows, pagination) where pagination carries page, per_page, total,
    total_pages, has_next and has_prev.
    """
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)

    per_page = min(per_page or default_size, max_size)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return rows, {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
