"""Standardised API error responses.

Usage
-----
    from qahub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION, "Invalid input data", details=[{"field": "title", "message": "required"}])

Every error body has the same envelope::

    {"error": {"code": "PROJECT_NOT_FOUND", "message": "Project not found", "details": ...}}
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from qahub.core.exceptions import QaHubError

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants shared across blueprints."""

    # Validation – HTTP 400
    VALIDATION = "VALIDATION_ERROR"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    FORBIDDEN = "FORBIDDEN"
    NO_TENANT = "NO_TENANT"

    # Not-found – HTTP 404
    NOT_FOUND = "NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT = "CONFLICT"

    # Transport – 405 / 413 / 415 / 429
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "RATE_LIMITED"

    # Server – HTTP 500
    DATABASE = "DATABASE_ERROR"
    INTERNAL = "INTERNAL_SERVER_ERROR"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION: 400,
    E.UNAUTHORIZED: 401,
    E.INVALID_TOKEN: 401,
    E.TOKEN_EXPIRED: 401,
    E.FORBIDDEN: 403,
    E.NO_TENANT: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details=None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (``E.*`` constants or a resource code).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : list | dict, optional
        Field-level errors or extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    error: dict = {"code": code, "message": message}
    if details is not None:
        error["details"] = details

    return jsonify({"error": error}), http_status


def register_error_handlers(app):
    """Map service exceptions and HTTP errors to the JSON envelope."""

    @app.errorhandler(QaHubError)
    def _handle_qahub_error(exc: QaHubError):
        if exc.status >= 500:
            logger.error("%s: %s", exc.code, exc)
        else:
            logger.debug("%s %s → %s %s", request.method, request.path, exc.status, exc)
        return api_error(exc.code, exc.message, status=exc.status, details=exc.details)

    @app.errorhandler(404)
    def _not_found(e):
        return api_error(E.NOT_FOUND, "Resource not found", status=404)

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed", status=405)

    @app.errorhandler(413)
    def _too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large", status=413)

    @app.errorhandler(415)
    def _unsupported(e):
        return api_error(E.UNSUPPORTED_MEDIA_TYPE, "Content-Type must be application/json", status=415)

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", status=429, details={"retry_after": e.description})

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        return api_error(e.name.upper().replace(" ", "_"), e.description or e.name, status=e.code)

    @app.errorhandler(Exception)
    def _unexpected(e):
        from qahub.models import db

        db.session.rollback()
        logger.exception("Unhandled error endpoint=%s", request.endpoint)
        return api_error(E.INTERNAL, "An unexpected error occurred", status=500)
