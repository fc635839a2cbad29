"""
User Blueprint: registration, self-service profile and user administration.

  POST   /api/v1/users/register
  GET    /api/v1/users/me                    PATCH  /api/v1/users/me
  GET    /api/v1/users/me/preferences        PATCH  /api/v1/users/me/preferences
  POST   /api/v1/users/change-password
  GET    /api/v1/users                       GET|PATCH /api/v1/users/<id>
  POST   /api/v1/users/<id>/activate         POST   /api/v1/users/<id>/deactivate
  GET|POST   /api/v1/users/<id>/roles        DELETE /api/v1/users/<id>/roles/<role_id>
  GET|POST   /api/v1/users/<id>/permissions  DELETE /api/v1/users/<id>/permissions/<pid>
"""

import logging

from flask import Blueprint, g, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.core.exceptions import ValidationError
from qahub.services import rbac_service, user_service
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1/users")


def _profile_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("name", required=not partial, max_length=255)
    v.string("job_role", max_length=255)
    v.string("avatar", max_length=500)
    return v


# ═══════════════════════════════════════════════════════════════
# Registration (public)
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/register", methods=["POST"])
def register():
    v = _profile_validator(request.get_json(silent=True) or {}, partial=False)
    v.string("email", required=True, max_length=255)
    v.string("password", required=True, min_length=8, max_length=255)
    v.string("role", max_length=100)
    v.integer("tenant_id", min_value=1)
    user = user_service.register(v.check())
    return data_response(user.to_dict(include_roles=True), 201)


# ═══════════════════════════════════════════════════════════════
# Self-service
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/me", methods=["GET"])
def get_me():
    return data_response(user_service.me(g.current_user))


@user_bp.route("/me", methods=["PATCH"])
def update_me():
    v = _profile_validator(request.get_json(silent=True) or {}, partial=True)
    user = user_service.update_profile(g.current_user, v.check())
    return data_response(user.to_dict(include_roles=True))


@user_bp.route("/me/preferences", methods=["GET"])
def get_preferences():
    return data_response(user_service.get_preferences(g.current_user))


@user_bp.route("/me/preferences", methods=["PATCH"])
def update_preferences():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Preferences must be a JSON object",
                              details=[{"field": "body", "message": "must be a JSON object"}])
    return data_response(user_service.merge_preferences(g.current_user, data))


@user_bp.route("/change-password", methods=["POST"])
def change_password():
    v = Validator(request.get_json(silent=True) or {})
    v.string("current_password", required=True)
    v.string("new_password", required=True, min_length=8, max_length=255)
    data = v.check()
    user_service.change_password(g.current_user, data["current_password"], data["new_password"])
    return data_response({"message": "Password changed successfully"})


# ═══════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════
@user_bp.route("", methods=["GET"])
def list_users():
    return list_response(user_service.list_query(request.args), lambda u: u.to_dict(include_roles=True))


@user_bp.route("/<int:user_id>", methods=["GET"])
def get_user(user_id):
    return data_response(user_service.get_user(user_id).to_dict(include_roles=True))


@user_bp.route("/<int:user_id>", methods=["PATCH"])
def update_user(user_id):
    v = _profile_validator(request.get_json(silent=True) or {}, partial=True)
    v.string("email", max_length=255)
    v.boolean("is_active")
    user = user_service.update_user(user_id, v.check())
    return data_response(user.to_dict(include_roles=True))


@user_bp.route("/<int:user_id>/activate", methods=["POST"])
def activate_user(user_id):
    return data_response(user_service.activate(user_id).to_dict())


@user_bp.route("/<int:user_id>/deactivate", methods=["POST"])
def deactivate_user(user_id):
    user = user_service.deactivate(user_id, acting_user_id=current_user_id())
    return data_response(user.to_dict())


# ── Roles ────────────────────────────────────────────────────────────────

@user_bp.route("/<int:user_id>/roles", methods=["GET"])
def list_user_roles(user_id):
    user = user_service.get_user(user_id)
    return data_response([ur.role.to_dict() for ur in user.user_roles.all()])


@user_bp.route("/<int:user_id>/roles", methods=["POST"])
def assign_user_roles(user_id):
    v = Validator(request.get_json(silent=True) or {})
    v.id_list("role_ids", required=True, min_items=1)
    data = v.check()
    user = user_service.get_user(user_id)
    added = rbac_service.assign_roles(user, data["role_ids"])
    return data_response({"added": added, "roles": [ur.role.to_dict() for ur in user.user_roles.all()]})


@user_bp.route("/<int:user_id>/roles/<int:role_id>", methods=["DELETE"])
def remove_user_role(user_id, role_id):
    rbac_service.remove_role(user_service.get_user(user_id), role_id)
    return data_response({"message": "Role removed"})


# ── Direct permissions ───────────────────────────────────────────────────

@user_bp.route("/<int:user_id>/permissions", methods=["GET"])
def list_user_permissions(user_id):
    return data_response(rbac_service.user_permissions(user_service.get_user(user_id)))


@user_bp.route("/<int:user_id>/permissions", methods=["POST"])
def grant_user_permissions(user_id):
    v = Validator(request.get_json(silent=True) or {})
    v.id_list("permission_ids", required=True, min_items=1)
    data = v.check()
    user = user_service.get_user(user_id)
    added = rbac_service.grant_permissions(user, data["permission_ids"])
    return data_response({"added": added, **rbac_service.user_permissions(user)})


@user_bp.route("/<int:user_id>/permissions/<int:permission_id>", methods=["DELETE"])
def revoke_user_permission(user_id, permission_id):
    rbac_service.revoke_permission(user_service.get_user(user_id), permission_id)
    return data_response({"message": "Permission revoked"})
