"""
Auth service: login and the password lifecycle.

    login                  email + password → access token (7 days)
    request_password_reset always the same answer; mails a 1-hour reset link
    verify_reset_token     INVALID_TOKEN / TOKEN_USED / TOKEN_EXPIRED
    reset_password         new hash + token used + history row, one commit
    set_password           shared by reset and change-password; enforces history
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from qahub.core.exceptions import AuthenticationError, DomainError, ForbiddenError
from qahub.models import db
from qahub.models.audit import write_audit
from qahub.models.auth import PasswordHistory, PasswordReset, User
from qahub.models.base import utcnow
from qahub.services.email_service import EmailService
from qahub.services.jwt_service import token_response
from qahub.tenant import get_user_primary_tenant
from qahub.utils.crypto import generate_token, hash_password, verify_password
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent."


# ═══════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════
def login(email: str, password: str) -> dict:
    user = User.query.filter(func.lower(User.email) == email.strip().lower()).first()
    if user is None:
        logger.info("Login failed: unknown email")
        raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise ForbiddenError("Account is disabled", code="ACCOUNT_DISABLED")
    if not verify_password(password, user.password_hash):
        logger.info("Login failed: wrong password user=%s", user.id)
        raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")

    user.last_login_at = utcnow()
    commit_or_raise()

    tenant = get_user_primary_tenant(user.id)
    tenant_id = tenant.id if tenant else None
    logger.info("User logged in user=%s tenant=%s", user.id, tenant_id)
    return {
        "user": user.to_dict(include_roles=True),
        "tenant": tenant.to_dict() if tenant else None,
        **token_response(user.id, user.email, tenant_id),
    }


# ═══════════════════════════════════════════════════════════════
# Password history
# ═══════════════════════════════════════════════════════════════
def _recent_hashes(user):
    depth = current_app.config.get("PASSWORD_HISTORY_DEPTH", 5)
    rows = (
        PasswordHistory.query.filter_by(user_id=user.id)
        .order_by(PasswordHistory.created_at.desc(), PasswordHistory.id.desc())
        .limit(depth)
        .all()
    )
    hashes = [r.password_hash for r in rows]
    if user.password_hash and user.password_hash not in hashes:
        hashes.insert(0, user.password_hash)
    return hashes


def set_password(user, plain_password: str):
    """Hash and store a new password; refuses any of the recent ones. Flushes only."""
    for old_hash in _recent_hashes(user):
        if verify_password(plain_password, old_hash):
            raise DomainError(
                "Password was used recently; choose a different one",
                code="PASSWORD_REUSED",
            )
    user.password_hash = hash_password(plain_password)
    user.password_changed_at = utcnow()
    db.session.add(PasswordHistory(user_id=user.id, password_hash=user.password_hash))
    db.session.flush()


# ═══════════════════════════════════════════════════════════════
# Reset flow
# ═══════════════════════════════════════════════════════════════
def request_password_reset(email: str) -> str:
    """Create a reset token and mail it. The answer never reveals whether the email exists."""
    user = User.query.filter(func.lower(User.email) == (email or "").strip().lower()).first()
    if user is None or not user.is_active:
        logger.info("Password reset requested for unknown or inactive account")
        return FORGOT_PASSWORD_MESSAGE

    token = generate_token()
    expires = current_app.config.get("PASSWORD_RESET_EXPIRES", 3600)
    db.session.add(PasswordReset(
        email=user.email,
        token=token,
        expires_at=utcnow() + timedelta(seconds=expires),
    ))
    commit_or_raise()

    EmailService.send_password_reset(user=user, token=token)
    logger.info("Password reset token issued user=%s", user.id)
    return FORGOT_PASSWORD_MESSAGE


def _load_reset(token: str) -> PasswordReset:
    reset = PasswordReset.query.filter_by(token=token or "").first()
    if reset is None:
        raise DomainError("Invalid reset token", code="INVALID_TOKEN")
    if reset.used_at is not None:
        raise DomainError("Reset token has already been used", code="TOKEN_USED")
    if reset.expires_at <= utcnow():
        raise DomainError("Reset token has expired", code="TOKEN_EXPIRED")
    return reset


def verify_reset_token(token: str) -> dict:
    reset = _load_reset(token)
    return {"valid": True, "email": reset.email}


def reset_password(token: str, new_password: str) -> User:
    reset = _load_reset(token)
    user = User.query.filter_by(email=reset.email).first()
    if user is None:
        raise DomainError("Invalid reset token", code="INVALID_TOKEN")

    set_password(user, new_password)
    reset.used_at = utcnow()
    write_audit(action="password_reset", model_type="User", model_id=user.id, user_id=user.id)
    commit_or_raise()
    logger.info("Password reset completed user=%s", user.id)
    return user
