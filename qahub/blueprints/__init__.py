"""
QaHub
Blueprint registry and response helpers shared by every API blueprint.
"""

import math

from flask import g, jsonify, request


def paginate_query(query, default_limit=20, max_limit=100):
    """Apply page/limit pagination to a SQLAlchemy query.

    Query params:
        page    1-based page number (default 1)
        limit   items per page (default ``default_limit``, capped at ``max_limit``)

    Returns:
        (items_list, pagination_dict)
    """
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
    return items, pagination


def data_response(data, status=200, **extra):
    """``{"data": ...}`` envelope."""
    return jsonify({"data": data, **extra}), status


def list_response(query, serialize=None, **kwargs):
    """Paginate ``query`` and return ``{"data": [...], "pagination": {...}}``."""
    items, pagination = paginate_query(query, **kwargs)
    serialize = serialize or (lambda obj: obj.to_dict())
    return jsonify({"data": [serialize(i) for i in items], "pagination": pagination}), 200


def current_user_id():
    return getattr(g, "user_id", None)
