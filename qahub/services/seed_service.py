"""
Seed service: baseline rows for a fresh database (``flask seed``).

Idempotent: existing rows are looked up by their natural keys and reused.
    tenant       slug "default"
    admin user   SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD, role "admin", tenant owner
    project      "Demo Project" with repository prefix "DEMO"
"""

import logging
import os

from qahub.models import db
from qahub.models.auth import PasswordHistory, Tenant, TenantUser, User
from qahub.models.project import Project, Repository
from qahub.services import rbac_service
from qahub.tenant import DEFAULT_TENANT_SLUG
from qahub.utils.crypto import hash_password
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@qahub.local"
DEFAULT_ADMIN_PASSWORD = "ChangeMe123!"
DEMO_REPOSITORY_PREFIX = "DEMO"


def ensure_default_tenant() -> Tenant:
    tenant = Tenant.query.filter_by(slug=DEFAULT_TENANT_SLUG).first()
    if tenant is None:
        tenant = Tenant(name="Default", slug=DEFAULT_TENANT_SLUG, plan="free", settings={})
        db.session.add(tenant)
        db.session.flush()
        logger.info("Default tenant created id=%s", tenant.id)
    return tenant


def _ensure_admin(tenant, email, password) -> User:
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(
            name="Administrator",
            email=email,
            password_hash=hash_password(password),
            is_active=True,
            preferences={},
        )
        db.session.add(user)
        db.session.flush()
        db.session.add(PasswordHistory(user_id=user.id, password_hash=user.password_hash))
        rbac_service.assign_role_by_name(user, "admin")
        logger.info("Admin user created id=%s email=%s", user.id, email)
    if TenantUser.query.filter_by(tenant_id=tenant.id, user_id=user.id).first() is None:
        db.session.add(TenantUser(tenant_id=tenant.id, user_id=user.id, role="owner"))
    return user


def _ensure_demo_project(tenant, user) -> Project:
    project = Project.query.filter_by(tenant_id=tenant.id, title="Demo Project").first()
    if project is None:
        project = Project(
            tenant_id=tenant.id,
            title="Demo Project",
            description="Sample project created by flask seed",
            created_by=user.id,
            updated_by=user.id,
        )
        db.session.add(project)
        db.session.flush()
    if Repository.query.filter_by(prefix=DEMO_REPOSITORY_PREFIX).first() is None:
        db.session.add(Repository(
            tenant_id=tenant.id,
            project_id=project.id,
            title="Demo Squad",
            prefix=DEMO_REPOSITORY_PREFIX,
            created_by=user.id,
            updated_by=user.id,
        ))
    return project


def seed_defaults(admin_email=None, admin_password=None) -> dict:
    """Create the default tenant, admin user and demo project. Returns their ids."""
    email = (admin_email or os.getenv("SEED_ADMIN_EMAIL") or DEFAULT_ADMIN_EMAIL).strip().lower()
    password = admin_password or os.getenv("SEED_ADMIN_PASSWORD") or DEFAULT_ADMIN_PASSWORD

    tenant = ensure_default_tenant()
    user = _ensure_admin(tenant, email, password)
    project = _ensure_demo_project(tenant, user)
    commit_or_raise()
    return {"tenant_id": tenant.id, "admin_user_id": user.id, "project_id": project.id}
