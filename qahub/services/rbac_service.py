"""
RBAC service: roles, permissions and their assignments.

Roles and permissions are unique by ``(name, guard_name)``; ``guard_name``
defaults to ``api``. Deleting a role or permission cascades to its links.

A user's effective permissions are the union of:
  - direct grants (user_permissions)
  - grants of every assigned role (role_permissions)
"""

import logging

from qahub.core.exceptions import ConflictError, DomainError, NotFoundError
from qahub.models import db
from qahub.models.auth import Permission, Role, RolePermission, UserPermission, UserRole
from qahub.services.helpers.scoped_queries import get_or_404
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

DEFAULT_GUARD = "api"


# ── Permissions ──────────────────────────────────────────────────────────────

def create_permission(data: dict) -> Permission:
    guard = data.get("guard_name") or DEFAULT_GUARD
    if Permission.query.filter_by(name=data["name"], guard_name=guard).first():
        raise ConflictError("Permission already exists", code="PERMISSION_EXISTS")
    perm = Permission(name=data["name"], guard_name=guard, description=data.get("description"))
    db.session.add(perm)
    commit_or_raise("Permission already exists", "PERMISSION_EXISTS")
    logger.info("Permission created id=%s name=%s", perm.id, perm.name)
    return perm


def update_permission(perm_id: int, data: dict) -> Permission:
    perm = get_or_404(Permission, perm_id)
    name = data.get("name", perm.name)
    guard = data.get("guard_name") or perm.guard_name
    clash = Permission.query.filter(
        Permission.name == name, Permission.guard_name == guard, Permission.id != perm.id,
    ).first()
    if clash:
        raise ConflictError("Permission already exists", code="PERMISSION_EXISTS")
    perm.name = name
    perm.guard_name = guard
    if "description" in data:
        perm.description = data["description"]
    commit_or_raise("Permission already exists", "PERMISSION_EXISTS")
    return perm


def delete_permission(perm_id: int) -> None:
    perm = get_or_404(Permission, perm_id)
    db.session.delete(perm)
    commit_or_raise()
    logger.info("Permission deleted id=%s", perm_id)


def _load_permissions(permission_ids):
    ids = list(dict.fromkeys(permission_ids))
    perms = Permission.query.filter(Permission.id.in_(ids)).all() if ids else []
    if len(perms) != len(ids):
        found = {p.id for p in perms}
        raise DomainError(
            "One or more permission IDs are invalid",
            code="INVALID_PERMISSIONS",
            details={"invalid_ids": [i for i in ids if i not in found]},
        )
    return perms


# ── Roles ────────────────────────────────────────────────────────────────────

def create_role(data: dict) -> Role:
    guard = data.get("guard_name") or DEFAULT_GUARD
    if Role.query.filter_by(name=data["name"], guard_name=guard).first():
        raise ConflictError("Role already exists", code="ROLE_EXISTS")
    role = Role(name=data["name"], guard_name=guard, description=data.get("description"))
    db.session.add(role)
    db.session.flush()
    if data.get("permission_ids"):
        for perm in _load_permissions(data["permission_ids"]):
            db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    commit_or_raise("Role already exists", "ROLE_EXISTS")
    logger.info("Role created id=%s name=%s", role.id, role.name)
    return role


def update_role(role_id: int, data: dict) -> Role:
    role = get_or_404(Role, role_id)
    name = data.get("name", role.name)
    guard = data.get("guard_name") or role.guard_name
    clash = Role.query.filter(Role.name == name, Role.guard_name == guard, Role.id != role.id).first()
    if clash:
        raise ConflictError("Role already exists", code="ROLE_EXISTS")
    role.name = name
    role.guard_name = guard
    if "description" in data:
        role.description = data["description"]
    commit_or_raise("Role already exists", "ROLE_EXISTS")
    return role


def delete_role(role_id: int) -> None:
    role = get_or_404(Role, role_id)
    db.session.delete(role)
    commit_or_raise()
    logger.info("Role deleted id=%s", role_id)


def get_or_create_role(name: str, guard_name: str = DEFAULT_GUARD) -> Role:
    role = Role.query.filter_by(name=name, guard_name=guard_name).first()
    if role is None:
        role = Role(name=name, guard_name=guard_name)
        db.session.add(role)
        db.session.flush()
    return role


def add_role_permissions(role_id: int, permission_ids) -> tuple[Role, int]:
    """Attach permissions to a role; existing links are skipped. Returns (role, added)."""
    role = get_or_404(Role, role_id)
    perms = _load_permissions(permission_ids)
    existing = {rp.permission_id for rp in role.role_permissions.all()}
    added = 0
    for perm in perms:
        if perm.id in existing:
            continue
        db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
        added += 1
    commit_or_raise()
    return role, added


def remove_role_permission(role_id: int, permission_id: int) -> None:
    role = get_or_404(Role, role_id)
    link = RolePermission.query.filter_by(role_id=role.id, permission_id=permission_id).first()
    if link is None:
        raise NotFoundError("RolePermission", permission_id, code="PERMISSION_NOT_ASSIGNED")
    db.session.delete(link)
    commit_or_raise()


# ── User assignments ─────────────────────────────────────────────────────────

def assign_role_by_name(user, role_name: str) -> Role:
    """Replace the user's roles with ``role_name`` (created on demand). Flushes only."""
    role = get_or_create_role(role_name)
    UserRole.query.filter_by(user_id=user.id).delete()
    db.session.add(UserRole(user_id=user.id, role_id=role.id))
    db.session.flush()
    return role


def assign_roles(user, role_ids) -> int:
    ids = list(dict.fromkeys(role_ids))
    roles = Role.query.filter(Role.id.in_(ids)).all() if ids else []
    if len(roles) != len(ids):
        raise DomainError("One or more role IDs are invalid", code="INVALID_ROLES")
    existing = {ur.role_id for ur in user.user_roles.all()}
    added = 0
    for role in roles:
        if role.id not in existing:
            db.session.add(UserRole(user_id=user.id, role_id=role.id))
            added += 1
    commit_or_raise()
    return added


def remove_role(user, role_id: int) -> None:
    link = UserRole.query.filter_by(user_id=user.id, role_id=role_id).first()
    if link is None:
        raise NotFoundError("UserRole", role_id, code="ROLE_NOT_ASSIGNED")
    db.session.delete(link)
    commit_or_raise()


def grant_permissions(user, permission_ids) -> int:
    perms = _load_permissions(permission_ids)
    existing = {up.permission_id for up in user.user_permissions.all()}
    added = 0
    for perm in perms:
        if perm.id not in existing:
            db.session.add(UserPermission(user_id=user.id, permission_id=perm.id))
            added += 1
    commit_or_raise()
    return added


def revoke_permission(user, permission_id: int) -> None:
    link = UserPermission.query.filter_by(user_id=user.id, permission_id=permission_id).first()
    if link is None:
        raise NotFoundError("UserPermission", permission_id, code="PERMISSION_NOT_ASSIGNED")
    db.session.delete(link)
    commit_or_raise()


def user_permissions(user) -> dict:
    """Direct grants plus role-derived grants (deduplicated by id)."""
    direct = [up.permission.to_dict() for up in user.user_permissions.all()]
    via_roles = {}
    for ur in user.user_roles.all():
        for rp in ur.role.role_permissions.all():
            entry = via_roles.setdefault(rp.permission_id, {**rp.permission.to_dict(), "roles": []})
            entry["roles"].append(ur.role.name)
    all_ids = {p["id"] for p in direct} | set(via_roles)
    return {
        "direct": direct,
        "via_roles": list(via_roles.values()),
        "all": sorted(all_ids),
    }
