"""Small shared helpers: lenient date parsing, request metadata, commits."""

import logging
from datetime import date, datetime, timezone

from flask import request
from sqlalchemy.exc import IntegrityError, OperationalError

from qahub.core.exceptions import ConflictError, DomainError
from qahub.models import db
from qahub.utils.errors import E

logger = logging.getLogger(__name__)


def _fromisoformat(value):
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


def parse_datetime(value):
    """Naive UTC datetime from an ISO-8601 string/date/datetime; None when unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    else:
        parsed = _fromisoformat(value)
        if parsed is None:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value):
    """Calendar date from "YYYY-MM-DD" or a full timestamp; None when unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        parsed = _fromisoformat(value)
        return parsed.date() if parsed else None


def day_bounds(day):
    start = datetime.combine(day, datetime.min.time())
    return start, datetime.combine(day, datetime.max.time())


def client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def commit_or_raise(conflict_message="Duplicate or constraint violation", conflict_code=E.CONFLICT):
    """Commit the session; unique/FK violations become ``ConflictError``."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Commit rejected by constraint: %s", exc.orig)
        raise ConflictError(conflict_message, code=conflict_code) from exc
    except OperationalError as exc:
        db.session.rollback()
        logger.exception("Commit failed")
        raise DomainError("Database error", code=E.DATABASE, status=500) from exc
