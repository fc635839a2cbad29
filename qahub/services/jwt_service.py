"""
Signed bearer tokens for the QaHub API.

Only access tokens exist; there is no refresh flow. Personal access tokens
are opaque random strings and never pass through PyJWT, the middleware tells
the two apart with ``looks_like_jwt``.

Claims:
    sub        user id (string, per RFC 7519)
    email      login e-mail at issue time
    tenant_id  primary tenant, omitted for users without a membership
    type       "access"
    iss        "qahub"
    iat / exp  issue and expiry, JWT_ACCESS_EXPIRES seconds apart
    jti        random id
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from qahub.utils.crypto import sha256_hex

ALGORITHM = "HS256"
ISSUER = "qahub"
ACCESS = "access"


def _signing_key():
    config = current_app.config
    return config.get("JWT_SECRET_KEY") or config["SECRET_KEY"]


def access_ttl() -> int:
    return int(current_app.config.get("JWT_ACCESS_EXPIRES") or 7 * 24 * 3600)


def generate_access_token(user_id: int, email: str, tenant_id: int | None = None) -> str:
    issued = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "email": email,
        "type": ACCESS,
        "iss": ISSUER,
        "iat": issued,
        "exp": issued + timedelta(seconds=access_ttl()),
        "jti": uuid.uuid4().hex,
    }
    if tenant_id is not None:
        claims["tenant_id"] = tenant_id
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM)


def token_response(user_id: int, email: str, tenant_id: int | None = None) -> dict:
    """Body fragment returned by login and password reset."""
    return {
        "access_token": generate_access_token(user_id, email, tenant_id),
        "token_type": "Bearer",
        "expires_in": access_ttl(),
    }


def decode_token(token: str, expected_type: str = ACCESS) -> dict:
    """Verify signature, expiry, issuer and token type.

    PyJWT errors propagate (``ExpiredSignatureError`` before the generic
    ``InvalidTokenError``); the auth middleware turns them into 401s.
    """
    claims = jwt.decode(
        token,
        _signing_key(),
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        options={"require": ["exp", "sub", "type"]},
    )
    if claims["type"] != expected_type:
        raise jwt.InvalidTokenError(f"expected a {expected_type} token")
    return claims


def looks_like_jwt(token: str) -> bool:
    return token.count(".") == 2


def hash_token(token: str) -> str:
    """Digest stored for personal access tokens; the raw value is shown once."""
    return sha256_hex(token)
