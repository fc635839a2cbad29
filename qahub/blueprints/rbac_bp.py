"""
RBAC Blueprint: permission and role CRUD plus role ↔ permission links.
"""

from flask import Blueprint, request

from qahub.blueprints import data_response, list_response
from qahub.models.auth import Permission, Role
from qahub.services import rbac_service
from qahub.services.helpers.scoped_queries import get_or_404
from qahub.utils.validation import Validator

rbac_bp = Blueprint("rbac_bp", __name__, url_prefix="/api/v1")


def _validate(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("name", required=not partial, max_length=255)
    v.string("guard_name", max_length=50)
    v.string("description", max_length=1000)
    return v


# ═══════════════════════════════════════════════════════════════
# Permissions
# ═══════════════════════════════════════════════════════════════
@rbac_bp.route("/permissions", methods=["GET"])
def list_permissions():
    q = Permission.query
    guard = request.args.get("guard_name")
    if guard:
        q = q.filter(Permission.guard_name == guard)
    search = (request.args.get("search") or "").strip()
    if search:
        q = q.filter(Permission.name.ilike(f"%{search}%"))
    return list_response(q.order_by(Permission.name.asc()))


@rbac_bp.route("/permissions/<int:perm_id>", methods=["GET"])
def get_permission(perm_id):
    return data_response(get_or_404(Permission, perm_id).to_dict())


@rbac_bp.route("/permissions", methods=["POST"])
def create_permission():
    v = _validate(request.get_json(silent=True) or {}, partial=False)
    return data_response(rbac_service.create_permission(v.check()).to_dict(), 201)


@rbac_bp.route("/permissions/<int:perm_id>", methods=["PATCH", "PUT"])
def update_permission(perm_id):
    v = _validate(request.get_json(silent=True) or {}, partial=True)
    return data_response(rbac_service.update_permission(perm_id, v.check()).to_dict())


@rbac_bp.route("/permissions/<int:perm_id>", methods=["DELETE"])
def delete_permission(perm_id):
    rbac_service.delete_permission(perm_id)
    return data_response({"message": "Permission deleted"})


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════
@rbac_bp.route("/roles", methods=["GET"])
def list_roles():
    q = Role.query
    search = (request.args.get("search") or "").strip()
    if search:
        q = q.filter(Role.name.ilike(f"%{search}%"))
    return list_response(q.order_by(Role.name.asc()))


@rbac_bp.route("/roles/<int:role_id>", methods=["GET"])
def get_role(role_id):
    return data_response(get_or_404(Role, role_id).to_dict(include_permissions=True))


@rbac_bp.route("/roles", methods=["POST"])
def create_role():
    v = _validate(request.get_json(silent=True) or {}, partial=False)
    v.id_list("permission_ids")
    role = rbac_service.create_role(v.check())
    return data_response(role.to_dict(include_permissions=True), 201)


@rbac_bp.route("/roles/<int:role_id>", methods=["PATCH", "PUT"])
def update_role(role_id):
    v = _validate(request.get_json(silent=True) or {}, partial=True)
    return data_response(rbac_service.update_role(role_id, v.check()).to_dict(include_permissions=True))


@rbac_bp.route("/roles/<int:role_id>", methods=["DELETE"])
def delete_role(role_id):
    rbac_service.delete_role(role_id)
    return data_response({"message": "Role deleted"})


@rbac_bp.route("/roles/<int:role_id>/permissions", methods=["POST"])
def add_role_permissions(role_id):
    v = Validator(request.get_json(silent=True) or {})
    v.id_list("permission_ids", required=True, min_items=1)
    data = v.check()
    role, added = rbac_service.add_role_permissions(role_id, data["permission_ids"])
    return data_response({**role.to_dict(include_permissions=True), "added": added})


@rbac_bp.route("/roles/<int:role_id>/permissions/<int:permission_id>", methods=["DELETE"])
def remove_role_permission(role_id, permission_id):
    rbac_service.remove_role_permission(role_id, permission_id)
    return data_response({"message": "Permission removed from role"})
