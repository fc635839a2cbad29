"""
Query-string helpers shared by list endpoints.

    apply_sort(q, Model, args, allowed=("title", "created_at"))
    flag(args, "automated")          → True / False / None
    apply_date_range(q, column, args) → start_date / end_date filter, inclusive
"""

from qahub.utils.helpers import day_bounds, parse_date


def apply_sort(query, model, args, *, allowed, default="created_at", default_order="desc"):
    """``sort_by`` / ``sort_order`` query params; unknown columns fall back to the default."""
    sort_by = args.get("sort_by") or default
    if sort_by not in allowed:
        sort_by = default
    order = (args.get("sort_order") or default_order).lower()
    column = getattr(model, sort_by)
    if order == "asc":
        return query.order_by(column.asc(), model.id.asc())
    return query.order_by(column.desc(), model.id.desc())


def flag(args, name):
    """Tri-state boolean query param: absent or empty → None."""
    value = args.get(name)
    if value is None or value == "":
        return None
    return str(value).lower() in ("1", "true", "yes")


def apply_date_range(query, column, args, *, start="start_date", end="end_date", is_datetime=True):
    start_day = parse_date(args.get(start))
    end_day = parse_date(args.get(end))
    if start_day:
        query = query.filter(column >= (day_bounds(start_day)[0] if is_datetime else start_day))
    if end_day:
        query = query.filter(column <= (day_bounds(end_day)[1] if is_datetime else end_day))
    return query
