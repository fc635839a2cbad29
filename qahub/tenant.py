"""
QaHub: Multi-Tenant membership helpers (row-level tenancy).

Every tenant-scoped table carries a ``tenant_id`` column (see
``qahub.models.base.TenantModel``). A user may belong to several tenants
through ``tenant_users``; the membership with the earliest ``joined_at`` is
the user's primary tenant.

Resolution of ``g.tenant_id`` for a request (see middleware.tenant_context):
    1. ``tenant_id`` claim of the JWT, if the user still belongs to it
    2. the user's primary tenant
    3. auto-assignment to the tenant with slug ``default`` (role ``member``)

Usage:
    from qahub.tenant import require_tenant
    tenant_id = require_tenant()          # 403 NO_TENANT when unresolved
"""

import logging

from flask import g

from qahub.core.exceptions import ForbiddenError
from qahub.models import db
from qahub.models.auth import Tenant, TenantUser

logger = logging.getLogger(__name__)

DEFAULT_TENANT_SLUG = "default"


# ── Membership queries ───────────────────────────────────────────────────

def get_user_tenants(user_id):
    """All memberships of a user, oldest first, with tenant info."""
    memberships = (
        TenantUser.query.filter_by(user_id=user_id)
        .order_by(TenantUser.joined_at.asc(), TenantUser.id.asc())
        .all()
    )
    return [m.to_dict() for m in memberships]


def user_belongs_to_tenant(user_id, tenant_id) -> bool:
    if user_id is None or tenant_id is None:
        return False
    return (
        TenantUser.query.filter_by(user_id=user_id, tenant_id=tenant_id).first()
        is not None
    )


def get_user_primary_tenant(user_id):
    """
    Return the Tenant of the user's earliest membership.

    A user without memberships is attached to the ``default`` tenant when one
    exists. Returns None when neither is available.
    """
    membership = (
        TenantUser.query.filter_by(user_id=user_id)
        .order_by(TenantUser.joined_at.asc(), TenantUser.id.asc())
        .first()
    )
    if membership is not None:
        return membership.tenant

    default = Tenant.query.filter_by(slug=DEFAULT_TENANT_SLUG).first()
    if default is None:
        return None

    try:
        db.session.add(TenantUser(tenant_id=default.id, user_id=user_id, role="member"))
        db.session.commit()
        logger.info("User %s auto-assigned to default tenant %s", user_id, default.id)
    except Exception:
        db.session.rollback()
        logger.warning("Auto-assign to default tenant failed user=%s", user_id, exc_info=True)
        return None
    return default


def resolve_tenant_id(user_id, jwt_tenant_id=None):
    """Tenant for the current request: the JWT claim if still valid, else primary."""
    if jwt_tenant_id is not None and user_belongs_to_tenant(user_id, jwt_tenant_id):
        return jwt_tenant_id
    tenant = get_user_primary_tenant(user_id)
    return tenant.id if tenant else None


# ── Request helpers ──────────────────────────────────────────────────────

def current_tenant_id():
    return getattr(g, "tenant_id", None)


def require_tenant():
    """Return ``g.tenant_id`` or raise 403 ``NO_TENANT``."""
    tenant_id = current_tenant_id()
    if tenant_id is None:
        raise ForbiddenError("User does not belong to any tenant", code="NO_TENANT")
    return tenant_id
