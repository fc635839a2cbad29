"""
Administration service: settings, menu visibilities and entity metadata.

Bulk endpoints report per-item outcomes instead of failing the batch:
    [{"key": ..., "success": True, "data": {...}},
     {"key": ..., "success": False, "error": "..."}]
"""

import json
import logging

from qahub.core.exceptions import ConflictError, NotFoundError
from qahub.models import db
from qahub.models.admin import EntityMetadata, MenuVisibility, Setting
from qahub.services.helpers.listing import flag
from qahub.services.helpers.scoped_queries import get_or_404
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def _encode_setting_value(value):
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


# ═══════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════
def get_setting_value(key, default=None):
    """Typed value of setting ``key``; ``default`` when missing or empty."""
    setting = Setting.query.filter_by(key=key).first()
    if setting is None or setting.value in (None, ""):
        return default
    return setting.typed_value


def list_settings_query(args):
    q = Setting.query
    category = args.get("category")
    if category:
        q = q.filter(Setting.category == category)
    return q.order_by(Setting.category.asc(), Setting.key.asc())


def settings_by_category(category):
    return Setting.query.filter_by(category=category).order_by(Setting.key.asc()).all()


def get_setting(key) -> Setting:
    setting = Setting.query.filter_by(key=key).first()
    if setting is None:
        raise NotFoundError(resource="Setting", resource_id=key)
    return setting


def create_setting(data: dict) -> Setting:
    if Setting.query.filter_by(key=data["key"]).first():
        raise ConflictError("Setting already exists", code="SETTING_EXISTS")
    setting = Setting(
        key=data["key"],
        value=_encode_setting_value(data.get("value")),
        type=data.get("type") or "string",
        category=data.get("category"),
        description=data.get("description"),
    )
    db.session.add(setting)
    commit_or_raise("Setting already exists", "SETTING_EXISTS")
    logger.info("Setting created key=%s", setting.key)
    return setting


def update_setting(key, data: dict) -> Setting:
    setting = get_setting(key)
    if "value" in data:
        setting.value = _encode_setting_value(data["value"])
    for field in ("type", "category", "description"):
        if field in data:
            setattr(setting, field, data[field])
    commit_or_raise()
    return setting


def delete_setting(key) -> None:
    db.session.delete(get_setting(key))
    commit_or_raise()


def bulk_update_settings(items) -> list[dict]:
    results = []
    for item in items:
        key = item.get("key") if isinstance(item, dict) else None
        if not key:
            results.append({"key": key, "success": False, "error": "key is required"})
            continue
        setting = Setting.query.filter_by(key=key).first()
        if setting is None:
            results.append({"key": key, "success": False, "error": "Setting not found"})
            continue
        setting.value = _encode_setting_value(item.get("value"))
        results.append({"key": key, "success": True, "data": setting.to_dict()})
    commit_or_raise()
    return results


# ═══════════════════════════════════════════════════════════════
# Menu visibilities
# ═══════════════════════════════════════════════════════════════
MENU_FIELDS = ("menu_name", "is_visible", "parent_key", "sort_order", "menu_metadata")


def list_menus_query(args):
    q = MenuVisibility.query
    if "parent_key" in args:
        parent = args.get("parent_key")
        if parent in ("", "null"):
            q = q.filter(MenuVisibility.parent_key.is_(None))
        else:
            q = q.filter(MenuVisibility.parent_key == parent)
    visible = flag(args, "is_visible")
    if visible is not None:
        q = q.filter(MenuVisibility.is_visible.is_(visible))
    return q.order_by(MenuVisibility.sort_order.asc(), MenuVisibility.id.asc())


def get_menu(menu_id: int) -> MenuVisibility:
    return get_or_404(MenuVisibility, menu_id, resource="MenuVisibility")


def create_menu(data: dict) -> MenuVisibility:
    if MenuVisibility.query.filter_by(menu_key=data["menu_key"]).first():
        raise ConflictError("Menu key already exists", code="MENU_KEY_EXISTS")
    menu = MenuVisibility(menu_key=data["menu_key"])
    for field in MENU_FIELDS:
        if data.get(field) is not None:
            setattr(menu, field, data[field])
    db.session.add(menu)
    commit_or_raise("Menu key already exists", "MENU_KEY_EXISTS")
    return menu


def update_menu(menu_id: int, data: dict) -> MenuVisibility:
    menu = get_menu(menu_id)
    if "menu_key" in data and data["menu_key"] != menu.menu_key:
        if MenuVisibility.query.filter_by(menu_key=data["menu_key"]).first():
            raise ConflictError("Menu key already exists", code="MENU_KEY_EXISTS")
        menu.menu_key = data["menu_key"]
    for field in MENU_FIELDS:
        if field in data:
            setattr(menu, field, data[field])
    commit_or_raise("Menu key already exists", "MENU_KEY_EXISTS")
    return menu


def delete_menu(menu_id: int) -> None:
    db.session.delete(get_menu(menu_id))
    commit_or_raise()


def menu_tree() -> list[dict]:
    """Visible menus nested by ``parent_key``; an item whose parent is missing becomes a root."""
    menus = (
        MenuVisibility.query.filter(MenuVisibility.is_visible.is_(True))
        .order_by(MenuVisibility.sort_order.asc(), MenuVisibility.id.asc())
        .all()
    )
    nodes = {m.menu_key: {**m.to_dict(), "children": []} for m in menus}
    roots = []
    for m in menus:
        parent = nodes.get(m.parent_key) if m.parent_key else None
        if parent is None or m.parent_key == m.menu_key:
            roots.append(nodes[m.menu_key])
        else:
            parent["children"].append(nodes[m.menu_key])
    return roots


def bulk_update_menus(items) -> list[dict]:
    results = []
    for item in items:
        key = item.get("menu_key") if isinstance(item, dict) else None
        menu = MenuVisibility.query.filter_by(menu_key=key).first() if key else None
        if menu is None:
            results.append({"menu_key": key, "success": False, "error": "Menu not found"})
            continue
        if "is_visible" in item:
            menu.is_visible = bool(item["is_visible"])
        if "sort_order" in item:
            try:
                menu.sort_order = int(item["sort_order"])
            except (TypeError, ValueError):
                results.append({"menu_key": key, "success": False, "error": "sort_order must be an integer"})
                continue
        results.append({"menu_key": key, "success": True, "data": menu.to_dict()})
    commit_or_raise()
    return results


# ═══════════════════════════════════════════════════════════════
# Entity metadata
# ═══════════════════════════════════════════════════════════════
def _meta_exists(entity_type, entity_id, meta_key, exclude_id=None):
    q = EntityMetadata.query.filter_by(entity_type=entity_type, entity_id=str(entity_id), meta_key=meta_key)
    if exclude_id is not None:
        q = q.filter(EntityMetadata.id != exclude_id)
    return q.first() is not None


def list_metadata_query(args):
    q = EntityMetadata.query
    for name in ("entity_type", "entity_id", "meta_key"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(EntityMetadata, name) == value)
    return q.order_by(EntityMetadata.entity_type, EntityMetadata.entity_id, EntityMetadata.meta_key)


def get_metadata(meta_id: int) -> EntityMetadata:
    return get_or_404(EntityMetadata, meta_id, resource="EntityMetadata")


def create_metadata(data: dict) -> EntityMetadata:
    if _meta_exists(data["entity_type"], data["entity_id"], data["meta_key"]):
        raise ConflictError("Metadata key already exists for this entity", code="METADATA_EXISTS")
    meta = EntityMetadata(
        entity_type=data["entity_type"],
        entity_id=str(data["entity_id"]),
        meta_key=data["meta_key"],
        meta_value=data.get("meta_value"),
    )
    db.session.add(meta)
    commit_or_raise("Metadata key already exists for this entity", "METADATA_EXISTS")
    return meta


def update_metadata(meta_id: int, data: dict) -> EntityMetadata:
    meta = get_metadata(meta_id)
    target = (
        data.get("entity_type", meta.entity_type),
        str(data.get("entity_id", meta.entity_id)),
        data.get("meta_key", meta.meta_key),
    )
    if _meta_exists(*target, exclude_id=meta.id):
        raise ConflictError("Metadata key already exists for this entity", code="METADATA_EXISTS")
    meta.entity_type, meta.entity_id, meta.meta_key = target
    if "meta_value" in data:
        meta.meta_value = data["meta_value"]
    commit_or_raise("Metadata key already exists for this entity", "METADATA_EXISTS")
    return meta


def delete_metadata(meta_id: int) -> None:
    db.session.delete(get_metadata(meta_id))
    commit_or_raise()


def entity_metadata_dict(entity_type, entity_id) -> dict:
    rows = EntityMetadata.query.filter_by(entity_type=entity_type, entity_id=str(entity_id)).all()
    return {row.meta_key: row.meta_value for row in rows}


def bulk_upsert_metadata(entity_type, entity_id, items) -> dict:
    entity_id = str(entity_id)
    existing = {
        row.meta_key: row
        for row in EntityMetadata.query.filter_by(entity_type=entity_type, entity_id=entity_id).all()
    }
    for item in items:
        key = item["meta_key"]
        row = existing.get(key)
        if row is None:
            row = EntityMetadata(entity_type=entity_type, entity_id=entity_id, meta_key=key)
            db.session.add(row)
            existing[key] = row
        row.meta_value = item.get("meta_value")
    commit_or_raise()
    return entity_metadata_dict(entity_type, entity_id)


def delete_entity_metadata(entity_type, entity_id) -> int:
    count = (
        EntityMetadata.query.filter_by(entity_type=entity_type, entity_id=str(entity_id))
        .delete(synchronize_session=False)
    )
    commit_or_raise()
    return count
