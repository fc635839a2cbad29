"""
Auth Blueprint: login and password reset.

  POST /api/v1/auth/login                email + password → access token
  GET  /api/v1/auth/verify               bearer token → current user
  POST /api/v1/auth/forgot-password      mails a reset link
  GET  /api/v1/auth/verify-reset-token   checks a reset token
  POST /api/v1/auth/reset-password       token + new password
"""

from flask import Blueprint, g, request

from qahub.blueprints import data_response
from qahub.services import auth_service
from qahub.tenant import get_user_primary_tenant
from qahub.utils.validation import Validator

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    """
    v = Validator(request.get_json(silent=True) or {})
    v.string("email", required=True, max_length=255)
    v.string("password", required=True)
    data = v.check()
    return data_response(auth_service.login(data["email"], data["password"]))


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/verify
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/verify", methods=["GET"])
def verify():
    """Authentication already ran in the middleware; echo the caller back."""
    user = g.current_user
    tenant = get_user_primary_tenant(user.id)
    return data_response({
        "valid": True,
        "user": user.to_dict(include_roles=True),
        "tenant": tenant.to_dict() if tenant else None,
        "auth_method": g.auth_method,
    })


# ═══════════════════════════════════════════════════════════════
# Password reset
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    v = Validator(request.get_json(silent=True) or {})
    v.string("email", required=True, max_length=255)
    data = v.check()
    message = auth_service.request_password_reset(data["email"])
    return data_response({"message": message})


@auth_bp.route("/verify-reset-token", methods=["GET"])
def verify_reset_token():
    return data_response(auth_service.verify_reset_token(request.args.get("token", "")))


@auth_bp.route("/reset-password", methods=["POST"])
def reset_password():
    v = Validator(request.get_json(silent=True) or {})
    v.string("token", required=True)
    v.string("password", required=True, min_length=8, max_length=255)
    data = v.check()
    auth_service.reset_password(data["token"], data["password"])
    return data_response({"message": "Password has been reset successfully"})
