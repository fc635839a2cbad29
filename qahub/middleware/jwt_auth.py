"""
Auth Middleware: resolves the caller from ``Authorization: Bearer <token>``.

Accepted credentials:
  1. JWT access token (HS256)          → g.auth_method = "jwt"
  2. Personal access token (64 hex)    → g.auth_method = "pat"
     matched by SHA-256 hash, must be neither revoked nor expired;
     last_used_* columns are refreshed best-effort.

Every /api/v1 request outside PUBLIC_PREFIXES must authenticate. On success:
  g.current_user, g.user_id, g.jwt_tenant_id, g.auth_method
"""

import logging

import jwt as pyjwt
from flask import g, request

from qahub.core.exceptions import AuthenticationError
from qahub.models import db
from qahub.models.auth import PersonalAccessToken, User
from qahub.models.base import utcnow
from qahub.services.jwt_service import decode_token, hash_token, looks_like_jwt
from qahub.utils.errors import api_error

logger = logging.getLogger(__name__)


# Paths that skip authentication entirely
PUBLIC_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/forgot-password",
    "/api/v1/auth/verify-reset-token",
    "/api/v1/auth/reset-password",
    "/api/v1/users/register",
    "/api/v1/health",
)


def _bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise AuthenticationError("Access token required", code="UNAUTHORIZED")
    token = auth_header[7:].strip()
    if not token:
        raise AuthenticationError("Access token required", code="UNAUTHORIZED")
    return token


def _user_from_jwt(token):
    try:
        payload = decode_token(token, expected_type="access")
    except pyjwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired", code="TOKEN_EXPIRED") from exc
    except pyjwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN") from exc
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN") from exc
    return user_id, payload.get("tenant_id"), None


def _user_from_pat(token):
    pat = PersonalAccessToken.query.filter_by(token=hash_token(token)).first()
    if pat is None or pat.is_revoked:
        raise AuthenticationError("Invalid token", code="INVALID_TOKEN")
    if pat.is_expired:
        raise AuthenticationError("Token has expired", code="TOKEN_EXPIRED")
    return pat.user_id, None, pat


def _touch_pat(pat):
    """Refresh last-used columns; a failure here never blocks the request."""
    try:
        pat.last_used_at = utcnow()
        pat.last_used_ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        pat.last_used_user_agent = (request.headers.get("User-Agent") or "")[:500] or None
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.warning("Failed to update personal access token usage id=%s", pat.id, exc_info=True)


def authenticate_request():
    """Resolve and validate the bearer credential; raises AuthenticationError."""
    token = _bearer_token()
    if looks_like_jwt(token):
        user_id, tenant_id, pat = _user_from_jwt(token)
    else:
        user_id, tenant_id, pat = _user_from_pat(token)

    user = db.session.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found", code="USER_NOT_FOUND")
    if not user.is_active:
        raise AuthenticationError("Account is disabled", code="ACCOUNT_DISABLED")

    if pat is not None:
        _touch_pat(pat)

    g.current_user = user
    g.user_id = user.id
    g.jwt_tenant_id = tenant_id
    g.auth_method = "pat" if pat is not None else "jwt"
    return user


def init_jwt_middleware(app):
    """Register auth middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.user_id = None
        g.jwt_tenant_id = None
        g.auth_method = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in PUBLIC_PREFIXES:
            if path.startswith(prefix):
                return None

        try:
            authenticate_request()
        except AuthenticationError as exc:
            logger.info("Authentication failed path=%s code=%s", path, exc.code)
            return api_error(exc.code, exc.message, status=401)
        return None
