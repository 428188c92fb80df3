"""Standardized API response helpers.

All list endpoints return a consistent envelope:
    {"items": [...], "total": <int>}

Cursor-paginated endpoints additionally include:
    {"items": [...], "total": <int>, "limit": <int>, "next_cursor": <id|None>}

Single-item endpoints return the object directly (no wrapper).
"""

from typing import Any, Optional

from pydantic import BaseModel


def _dump(item: Any) -> Any:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json")
    return item


def list_response(
    items: list,
    total: Optional[int] = None,
) -> dict:
    """Wrap a list in the standard envelope.

    Args:
        items: The list of items; pydantic models are serialized.
        total: Total count (defaults to len(items) when the full list is returned).

    Returns:
        {"items": items, "total": total}
    """
    return {
        "items": [_dump(i) for i in items],
        "total": total if total is not None else len(items),
    }


def cursor_response(items: list, limit: int) -> dict:
    """Wrap one page of a cursor query.

    ``next_cursor`` is the id of the last item when the page is full, so the
    caller can pass it back as ``start_after``.
    """
    next_cursor = None
    if limit and len(items) >= limit:
        next_cursor = getattr(items[-1], "id", None)
    return {
        "items": [_dump(i) for i in items],
        "total": len(items),
        "limit": limit,
        "next_cursor": next_cursor,
    }
