"""
Personal access token service.

The plain token (64 hex chars) is returned once at creation; only its
SHA-256 digest is persisted. Tokens are always looked up through their
owner, so another user's token id answers 404.
"""

import logging

from qahub.core.exceptions import DomainError
from qahub.models import db
from qahub.models.auth import PersonalAccessToken
from qahub.models.base import utcnow
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.services.jwt_service import hash_token
from qahub.utils.crypto import generate_token
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def create_token(user_id: int, *, name: str, abilities=None, expires_at=None) -> tuple[PersonalAccessToken, str]:
    plain = generate_token()
    pat = PersonalAccessToken(
        user_id=user_id,
        name=name,
        token=hash_token(plain),
        abilities=abilities or ["*"],
        expires_at=expires_at,
    )
    db.session.add(pat)
    commit_or_raise()
    logger.info("Personal access token created id=%s user=%s", pat.id, user_id)
    return pat, plain


def list_tokens(user_id: int):
    return (
        PersonalAccessToken.query.filter_by(user_id=user_id)
        .filter(PersonalAccessToken.revoked_at.is_(None))
        .order_by(PersonalAccessToken.created_at.desc(), PersonalAccessToken.id.desc())
        .all()
    )


def get_token(user_id: int, token_id: int) -> PersonalAccessToken:
    return get_scoped(PersonalAccessToken, token_id, resource="Token", user_id=user_id)


def revoke_token(user_id: int, token_id: int) -> PersonalAccessToken:
    pat = get_token(user_id, token_id)
    if pat.is_revoked:
        raise DomainError("Token is already revoked", code="TOKEN_ALREADY_REVOKED")
    pat.revoked_at = utcnow()
    commit_or_raise()
    logger.info("Personal access token revoked id=%s user=%s", pat.id, user_id)
    return pat


def revoke_all(user_id: int) -> int:
    now = utcnow()
    count = (
        PersonalAccessToken.query.filter_by(user_id=user_id)
        .filter(PersonalAccessToken.revoked_at.is_(None))
        .update({PersonalAccessToken.revoked_at: now}, synchronize_session=False)
    )
    commit_or_raise()
    logger.info("Revoked %d personal access tokens user=%s", count, user_id)
    return count


def record_usage(user_id: int, token_id: int, *, ip=None, user_agent=None) -> PersonalAccessToken:
    pat = get_token(user_id, token_id)
    pat.last_used_at = utcnow()
    pat.last_used_ip = ip
    pat.last_used_user_agent = (user_agent or "")[:500] or None
    commit_or_raise()
    return pat
