# backend/pos_backend/pagination.py
"""
Limit/offset pagination and date-range filtering shared by list endpoints.

Response envelope:
    {"items": [...], "pagination": {"total", "limit", "offset", "page", "pages"}}
"""
from __future__ import annotations

from flask import current_app, has_app_context

from .time_utils import day_range_end, parse_iso_datetime
from .validation import ValidationError


def _limits() -> tuple[int, int]:
    if has_app_context():
        return (
            int(current_app.config.get("DEFAULT_PAGE_LIMIT", 50)),
            int(current_app.config.get("MAX_PAGE_LIMIT", 500)),
        )
    return 50, 500


def clamp_limit_offset(limit, offset) -> tuple[int, int]:
    """Parse raw query-string values; limit is clamped to [1, MAX_PAGE_LIMIT]."""
    default_limit, max_limit = _limits()
    try:
        limit = default_limit if limit in (None, "") else int(limit)
        offset = 0 if offset in (None, "") else int(offset)
    except (TypeError, ValueError):
        raise ValidationError("limit and offset must be integers")
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset


def paginate_query(query, *, limit=None, offset=None, serialize=None) -> dict:
    limit, offset = clamp_limit_offset(limit, offset)

    total = query.order_by(None).count()
    rows = query.offset(offset).limit(limit).all()
    serialize = serialize or (lambda row: row.to_dict())

    return {
        "items": [serialize(row) for row in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "page": offset // limit + 1,
            "pages": (total + limit - 1) // limit if total > 0 else 1,
        },
    }


def filter_date_range(query, column, date_from=None, date_to=None):
    """Restrict `column` to [date_from, date_to]; a plain-date date_to includes that day."""
    try:
        start = parse_iso_datetime(date_from)
        end = day_range_end(date_to)
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates")
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column < end)
    return query
