"""
QaHub
Editor image model: images pasted into rich-text fields.

Bytes live either on disk (``storage == "filesystem"``, ``path`` set) or in
the ``data`` blob column (``storage == "database"``).
"""

from qahub.models import db
from qahub.models.base import iso, utcnow


class EditorImage(db.Model):
    __tablename__ = "editor_images"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = db.Column(db.String(255), nullable=False, unique=True)
    original_name = db.Column(db.String(255))
    mime_type = db.Column(db.String(100), nullable=False)
    size = db.Column(db.Integer, nullable=False)
    storage = db.Column(db.String(20), nullable=False, default="filesystem")
    path = db.Column(db.String(1000))
    data = db.deferred(db.Column(db.LargeBinary))
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "filename": self.filename,
            "original_name": self.original_name,
            "mime_type": self.mime_type,
            "size": self.size,
            "storage": self.storage,
            "url": f"/api/v1/editor/images/{self.id}/file",
            "created_at": iso(self.created_at),
        }
