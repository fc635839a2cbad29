"""
QaHub
Administration models.

Models:
    - Setting: typed key/value application setting grouped by category
    - MenuVisibility: per-menu-entry visibility and ordering, nested by parent_key
    - EntityMetadata: free-form key/value pairs attached to any entity
"""

import json

from qahub.models import db
from qahub.models.base import iso, utcnow


SETTING_TYPES = {"string", "number", "boolean", "json"}


class Setting(db.Model):
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), unique=True, nullable=False)
    value = db.Column(db.Text)
    type = db.Column(db.String(20), default="string", nullable=False)
    category = db.Column(db.String(100), index=True)
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def typed_value(self):
        """``value`` decoded according to ``type``; falls back to the raw text."""
        if self.value is None:
            return None
        try:
            if self.type == "number":
                number = float(self.value)
                return int(number) if number.is_integer() else number
            if self.type == "boolean":
                return self.value.strip().lower() in ("1", "true", "yes", "on")
            if self.type == "json":
                return json.loads(self.value)
        except (TypeError, ValueError):
            return self.value
        return self.value

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "typed_value": self.typed_value,
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class MenuVisibility(db.Model):
    __tablename__ = "menu_visibilities"

    id = db.Column(db.Integer, primary_key=True)
    menu_key = db.Column(db.String(100), unique=True, nullable=False)
    menu_name = db.Column(db.String(255), nullable=False)
    is_visible = db.Column(db.Boolean, default=True, nullable=False)
    parent_key = db.Column(db.String(100), index=True)
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    menu_metadata = db.Column("metadata", db.JSON)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "menu_key": self.menu_key,
            "menu_name": self.menu_name,
            "is_visible": self.is_visible,
            "parent_key": self.parent_key,
            "sort_order": self.sort_order,
            "metadata": self.menu_metadata,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class EntityMetadata(db.Model):
    __tablename__ = "entity_metadata"
    __table_args__ = (
        db.UniqueConstraint("entity_type", "entity_id", "meta_key", name="uq_entity_meta_key"),
        db.Index("idx_entity_metadata_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(100), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)
    meta_key = db.Column(db.String(255), nullable=False)
    meta_value = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "meta_key": self.meta_key,
            "meta_value": self.meta_value,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
