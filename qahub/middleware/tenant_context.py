"""
Sets ``g.tenant_id`` after JWT auth has identified the caller.

Resolution never rejects the request on its own: callers with no tenant get
``None`` and the routes that need one answer 403 ``NO_TENANT`` through
``qahub.tenant.require_tenant``.
"""

import logging

from flask import g, request

from qahub.tenant import resolve_tenant_id

logger = logging.getLogger(__name__)


def init_tenant_context(app):
    @app.before_request
    def _resolve_tenant():
        g.tenant_id = None
        user_id = getattr(g, "user_id", None)
        if user_id is None or not request.path.startswith("/api/v1/"):
            return
        g.tenant_id = resolve_tenant_id(user_id, getattr(g, "jwt_tenant_id", None))
        if g.tenant_id is None:
            logger.debug("user %s has no tenant membership", user_id)
