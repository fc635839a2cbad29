"""
Admin Blueprint: application settings, menu visibility and entity metadata.

  Settings          GET|POST /api/v1/settings
                    GET /api/v1/settings/category/<category>
                    PATCH /api/v1/settings/bulk
                    GET|PATCH|PUT|DELETE /api/v1/settings/<key>
  Menu visibility   GET|POST /api/v1/menu-visibilities
                    GET /api/v1/menu-visibilities/tree
                    PATCH /api/v1/menu-visibilities/bulk
                    GET|PATCH|PUT|DELETE /api/v1/menu-visibilities/<id>
  Entity metadata   GET|POST /api/v1/entity-metadata
                    GET|PATCH|PUT|DELETE /api/v1/entity-metadata/<id>
                    GET|DELETE /api/v1/entity-metadata/entity/<type>/<id>
                    PUT /api/v1/entity-metadata/entity/<type>/<id>/bulk
"""

import logging

from flask import Blueprint, request

from qahub.blueprints import data_response, list_response
from qahub.core.exceptions import ValidationError
from qahub.models.admin import SETTING_TYPES
from qahub.services import admin_service
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/v1")


def _json_list(message):
    """Request body (or its ``items`` key) as a list; 400 otherwise."""
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        body = body.get("items")
    if not isinstance(body, list):
        raise ValidationError(message, details=[{"field": "body", "message": message}])
    return body


# ═══════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════
def _setting_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.json("value")
    v.choice("type", SETTING_TYPES, default="string")
    v.string("category", max_length=100)
    v.string("description")
    return v


@admin_bp.route("/settings", methods=["GET"])
def list_settings():
    return list_response(admin_service.list_settings_query(request.args), max_limit=500)


@admin_bp.route("/settings/category/<category>", methods=["GET"])
def settings_by_category(category):
    return data_response([s.to_dict() for s in admin_service.settings_by_category(category)])


@admin_bp.route("/settings/<key>", methods=["GET"])
def get_setting(key):
    return data_response(admin_service.get_setting(key).to_dict())


@admin_bp.route("/settings", methods=["POST"])
def create_setting():
    v = _setting_validator(request.get_json(silent=True) or {}, partial=False)
    v.string("key", required=True, max_length=255)
    return data_response(admin_service.create_setting(v.check()).to_dict(), 201)


@admin_bp.route("/settings/bulk", methods=["PATCH"])
def bulk_update_settings():
    items = _json_list("Body must be a list of {key, value}")
    return data_response(admin_service.bulk_update_settings(items))


@admin_bp.route("/settings/<key>", methods=["PATCH", "PUT"])
def update_setting(key):
    v = _setting_validator(request.get_json(silent=True) or {}, partial=True)
    return data_response(admin_service.update_setting(key, v.check()).to_dict())


@admin_bp.route("/settings/<key>", methods=["DELETE"])
def delete_setting(key):
    admin_service.delete_setting(key)
    return data_response({"message": "Setting deleted"})


# ═══════════════════════════════════════════════════════════════
# Menu visibilities
# ═══════════════════════════════════════════════════════════════
def _menu_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("menu_key", required=not partial, max_length=100)
    v.string("menu_name", required=not partial, max_length=255)
    v.boolean("is_visible", default=True)
    v.string("parent_key", max_length=100)
    v.integer("sort_order", default=0)
    metadata = v.json("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        v.error("metadata", "metadata must be an object")
    data = v.check()
    if "metadata" in data:
        data["menu_metadata"] = data.pop("metadata")
    return data


@admin_bp.route("/menu-visibilities", methods=["GET"])
def list_menus():
    return list_response(admin_service.list_menus_query(request.args), max_limit=500)


@admin_bp.route("/menu-visibilities/tree", methods=["GET"])
def menu_tree():
    return data_response(admin_service.menu_tree())


@admin_bp.route("/menu-visibilities/<int:menu_id>", methods=["GET"])
def get_menu(menu_id):
    return data_response(admin_service.get_menu(menu_id).to_dict())


@admin_bp.route("/menu-visibilities", methods=["POST"])
def create_menu():
    data = _menu_validator(request.get_json(silent=True) or {}, partial=False)
    return data_response(admin_service.create_menu(data).to_dict(), 201)


@admin_bp.route("/menu-visibilities/bulk", methods=["PATCH"])
def bulk_update_menus():
    items = _json_list("Body must be a list of {menu_key, is_visible?, sort_order?}")
    return data_response(admin_service.bulk_update_menus(items))


@admin_bp.route("/menu-visibilities/<int:menu_id>", methods=["PATCH", "PUT"])
def update_menu(menu_id):
    data = _menu_validator(request.get_json(silent=True) or {}, partial=True)
    return data_response(admin_service.update_menu(menu_id, data).to_dict())


@admin_bp.route("/menu-visibilities/<int:menu_id>", methods=["DELETE"])
def delete_menu(menu_id):
    admin_service.delete_menu(menu_id)
    return data_response({"message": "Menu visibility deleted"})


# ═══════════════════════════════════════════════════════════════
# Entity metadata
# ═══════════════════════════════════════════════════════════════
def _metadata_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("entity_type", required=not partial, max_length=100)
    if isinstance(v.data.get("entity_id"), int):
        v.data["entity_id"] = str(v.data["entity_id"])
    v.string("entity_id", required=not partial, max_length=64)
    v.string("meta_key", required=not partial, max_length=255)
    v.string("meta_value")
    return v


@admin_bp.route("/entity-metadata", methods=["GET"])
def list_metadata():
    return list_response(admin_service.list_metadata_query(request.args), max_limit=500)


@admin_bp.route("/entity-metadata/<int:meta_id>", methods=["GET"])
def get_metadata(meta_id):
    return data_response(admin_service.get_metadata(meta_id).to_dict())


@admin_bp.route("/entity-metadata", methods=["POST"])
def create_metadata():
    v = _metadata_validator(request.get_json(silent=True) or {}, partial=False)
    return data_response(admin_service.create_metadata(v.check()).to_dict(), 201)


@admin_bp.route("/entity-metadata/<int:meta_id>", methods=["PATCH", "PUT"])
def update_metadata(meta_id):
    v = _metadata_validator(request.get_json(silent=True) or {}, partial=True)
    return data_response(admin_service.update_metadata(meta_id, v.check()).to_dict())


@admin_bp.route("/entity-metadata/<int:meta_id>", methods=["DELETE"])
def delete_metadata(meta_id):
    admin_service.delete_metadata(meta_id)
    return data_response({"message": "Metadata deleted"})


@admin_bp.route("/entity-metadata/entity/<entity_type>/<entity_id>", methods=["GET"])
def entity_metadata(entity_type, entity_id):
    return data_response(admin_service.entity_metadata_dict(entity_type, entity_id))


@admin_bp.route("/entity-metadata/entity/<entity_type>/<entity_id>/bulk", methods=["PUT"])
def bulk_upsert_metadata(entity_type, entity_id):
    body = request.get_json(silent=True) or {}
    items = body.get("metadata") if isinstance(body, dict) else None
    if not isinstance(items, list):
        raise ValidationError("metadata must be a list",
                              details=[{"field": "metadata", "message": "metadata must be a list"}])
    errors = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or not isinstance(item.get("meta_key"), str) or not item["meta_key"].strip():
            errors.append({"field": f"metadata[{index}].meta_key", "message": "meta_key is required"})
        elif item.get("meta_value") is not None and not isinstance(item["meta_value"], str):
            errors.append({"field": f"metadata[{index}].meta_value", "message": "meta_value must be a string"})
    if errors:
        raise ValidationError("Invalid input data", details=errors)
    return data_response(admin_service.bulk_upsert_metadata(entity_type, entity_id, items))


@admin_bp.route("/entity-metadata/entity/<entity_type>/<entity_id>", methods=["DELETE"])
def delete_entity_metadata(entity_type, entity_id):
    return data_response({"count": admin_service.delete_entity_metadata(entity_type, entity_id)})
