"""
Tenant-scoped query helpers.

Every get-by-id in QaHub goes through these helpers instead of
``db.session.get(Model, pk)``. A direct get bypasses tenant isolation.

Usage:
    # Scope by tenant_id (TenantModel subclasses)
    project = get_scoped(Project, project_id, tenant_id=tenant_id)

    # Scope by parent
    repo = get_scoped(Repository, repo_id, tenant_id=tenant_id, project_id=project_id)

    # When None is an acceptable outcome
    suite = get_scoped_or_none(Suite, suite_id, repository_id=repo.id)

Each keyword argument maps directly to a column name on the model. A scope
kwarg naming a column the model lacks raises ValueError at call time.
"""

import logging

from sqlalchemy import select

from qahub.core.exceptions import NotFoundError
from qahub.models import db

logger = logging.getLogger(__name__)


def _scoped_stmt(model, pk, scopes):
    scopes = {k: v for k, v in scopes.items() if v is not None}
    if not scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter. "
            "Unscoped lookups bypass tenant isolation."
        )
    missing = sorted(f for f in scopes if not hasattr(model, f))
    if missing:
        raise ValueError(f"{model.__name__} has no scope column(s) {missing}")

    stmt = select(model).where(model.id == pk)
    for field, value in scopes.items():
        stmt = stmt.where(getattr(model, field) == value)
    return stmt


def get_scoped(model, pk, *, resource=None, **scopes):
    """Fetch a single entity by PK with mandatory scope filter.

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Args:
        model: SQLAlchemy model class with an ``id`` PK.
        pk: Primary key value to look up.
        resource: Name used in the error code; defaults to the model name.
        **scopes: column=value filters (tenant_id, project_id, repository_id ...).
    """
    result = db.session.execute(_scoped_stmt(model, pk, scopes)).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in scope %s", model.__name__, pk, scopes)
        raise NotFoundError(
            resource=resource or model.__name__,
            resource_id=pk,
            tenant_id=scopes.get("tenant_id"),
        )
    return result


def get_scoped_or_none(model, pk, **scopes):
    """Like ``get_scoped`` but returns None instead of raising."""
    if pk is None:
        return None
    return db.session.execute(_scoped_stmt(model, pk, scopes)).scalar_one_or_none()


def get_or_404(model, pk, *, resource=None):
    """Fetch a global (non tenant-scoped) entity or raise NotFoundError."""
    result = db.session.get(model, pk)
    if result is None:
        raise NotFoundError(resource=resource or model.__name__, resource_id=pk)
    return result
