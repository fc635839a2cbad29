"""
Personal Access Token Blueprint.

The plain token is returned once, on creation; only its SHA-256 hash is stored.
"""

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response
from qahub.services import token_service
from qahub.utils.helpers import client_ip
from qahub.utils.validation import Validator

token_bp = Blueprint("token_bp", __name__, url_prefix="/api/v1/tokens")


@token_bp.route("", methods=["POST"])
def create_token():
    data = request.get_json(silent=True) or {}
    v = Validator(data)
    v.string("name", required=True, max_length=255)
    v.datetime("expires_at")
    abilities = data.get("abilities")
    if abilities is not None and (
        not isinstance(abilities, list) or not all(isinstance(a, str) for a in abilities)
    ):
        v.error("abilities", "abilities must be a list of strings")
    cleaned = v.check()
    pat, plain = token_service.create_token(
        current_user_id(),
        name=cleaned["name"],
        abilities=abilities,
        expires_at=cleaned.get("expires_at"),
    )
    return data_response({**pat.to_dict(), "token": plain}, 201)


@token_bp.route("", methods=["GET"])
def list_tokens():
    return data_response([t.to_dict() for t in token_service.list_tokens(current_user_id())])


@token_bp.route("/<int:token_id>", methods=["GET"])
def get_token(token_id):
    return data_response(token_service.get_token(current_user_id(), token_id).to_dict())


@token_bp.route("/<int:token_id>", methods=["DELETE"])
def revoke_token(token_id):
    token_service.revoke_token(current_user_id(), token_id)
    return data_response({"message": "Token revoked"})


@token_bp.route("", methods=["DELETE"])
def revoke_all_tokens():
    return data_response({"count": token_service.revoke_all(current_user_id())})


@token_bp.route("/<int:token_id>/usage", methods=["PATCH"])
def record_usage(token_id):
    pat = token_service.record_usage(
        current_user_id(), token_id,
        ip=client_ip(),
        user_agent=request.headers.get("User-Agent"),
    )
    return data_response(pat.to_dict())
