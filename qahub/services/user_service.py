"""
User service: registration, profile, preferences and account administration.

Register:
    email normalised with email_validator and lowercased,
    optional ``role`` (by name, created on demand) replaces existing roles,
    optional ``tenant_id`` creates the membership,
    first password is recorded in password_histories.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, or_

from qahub.core.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from qahub.models import db
from qahub.models.audit import write_audit
from qahub.models.auth import PasswordHistory, Role, Tenant, TenantUser, User, UserRole
from qahub.services import auth_service, rbac_service
from qahub.services.email_service import EmailService
from qahub.utils.crypto import hash_password, verify_password
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "job_role", "avatar")


def normalize_email(raw: str) -> str:
    """Validated, lowercased email; raises ValidationError on bad syntax."""
    try:
        info = validate_email(raw or "", check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(details=[{"field": "email", "message": str(exc)}]) from exc
    return info.normalized.lower()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _email_taken(email, exclude_id=None) -> bool:
    q = User.query.filter(func.lower(User.email) == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


# ═══════════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════════
def register(data: dict) -> User:
    email = normalize_email(data["email"])
    if _email_taken(email):
        raise ConflictError("A user with this email already exists", code="USER_EXISTS")

    tenant = None
    if data.get("tenant_id") is not None:
        tenant = db.session.get(Tenant, data["tenant_id"])
        if tenant is None:
            raise NotFoundError(resource="Tenant", resource_id=data["tenant_id"])

    user = User(
        name=data["name"],
        email=email,
        password_hash=hash_password(data["password"]),
        job_role=data.get("job_role"),
        is_active=True,
        preferences={},
    )
    db.session.add(user)
    db.session.flush()
    db.session.add(PasswordHistory(user_id=user.id, password_hash=user.password_hash))

    if data.get("role"):
        rbac_service.assign_role_by_name(user, data["role"])
    if tenant is not None:
        db.session.add(TenantUser(tenant_id=tenant.id, user_id=user.id, role="member"))

    commit_or_raise("A user with this email already exists", "USER_EXISTS")
    logger.info("User registered id=%s tenant=%s", user.id, tenant.id if tenant else None)

    EmailService.send_welcome(user=user)
    return user


# ═══════════════════════════════════════════════════════════════
# Self-service
# ═══════════════════════════════════════════════════════════════
def me(user) -> dict:
    from qahub.tenant import get_user_tenants

    d = user.to_dict(include_roles=True)
    d["tenants"] = get_user_tenants(user.id)
    return d


def update_profile(user, data: dict) -> User:
    for field in PROFILE_FIELDS:
        if field in data:
            setattr(user, field, data[field])
    commit_or_raise()
    return user


def get_preferences(user) -> dict:
    return dict(user.preferences or {})


def merge_preferences(user, patch: dict) -> dict:
    """Shallow merge; a ``None`` value removes the key."""
    prefs = dict(user.preferences or {})
    for key, value in patch.items():
        if value is None:
            prefs.pop(key, None)
        else:
            prefs[key] = value
    user.preferences = prefs
    commit_or_raise()
    return prefs


def change_password(user, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise DomainError("Current password is incorrect", code="INVALID_PASSWORD")
    auth_service.set_password(user, new_password)
    write_audit(action="password_changed", model_type="User", model_id=user.id, user_id=user.id)
    commit_or_raise()
    logger.info("Password changed user=%s", user.id)


# ═══════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════
def list_query(filters):
    q = User.query
    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))

    is_active = filters.get("is_active")
    if is_active is not None and is_active != "":
        q = q.filter(User.is_active.is_(str(is_active).lower() in ("1", "true")))

    role = (filters.get("role") or "").strip()
    if role:
        q = q.join(UserRole, UserRole.user_id == User.id).join(Role, Role.id == UserRole.role_id)
        q = q.filter(Role.name == role)
    return q.order_by(User.created_at.desc(), User.id.desc())


def update_user(user_id: int, data: dict) -> User:
    user = get_user(user_id)
    if "email" in data:
        email = normalize_email(data["email"])
        if _email_taken(email, exclude_id=user.id):
            raise ConflictError("Email already in use", code="EMAIL_EXISTS")
        user.email = email
    for field in PROFILE_FIELDS + ("is_active",):
        if field in data:
            setattr(user, field, data[field])
    commit_or_raise("Email already in use", "EMAIL_EXISTS")
    logger.info("User updated id=%s", user.id)
    return user


def activate(user_id: int) -> User:
    user = get_user(user_id)
    if user.is_active:
        raise DomainError("User is already active", code="ALREADY_ACTIVE")
    user.is_active = True
    commit_or_raise()
    logger.info("User activated id=%s", user.id)
    return user


def deactivate(user_id: int, *, acting_user_id: int) -> User:
    if user_id == acting_user_id:
        raise DomainError("You cannot deactivate your own account", code="CANNOT_DEACTIVATE_SELF")
    user = get_user(user_id)
    if not user.is_active:
        raise DomainError("User is already deactivated", code="ALREADY_DEACTIVATED")
    user.is_active = False
    commit_or_raise()
    logger.info("User deactivated id=%s by=%s", user.id, acting_user_id)
    return user
