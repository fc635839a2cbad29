"""
QaHub
Notification domain model.

Models:
    - Notification: polymorphic in-app notification with read tracking.
      A user's inbox is ``notifiable_type == "user"`` and
      ``notifiable_id == user.id``.
"""

import json

from qahub.models import db
from qahub.models.base import iso, utcnow


class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notifications_notifiable", "notifiable_type", "notifiable_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(255), nullable=False, index=True)
    notifiable_type = db.Column(db.String(255), nullable=False, default="user")
    notifiable_id = db.Column(db.Integer, nullable=False)
    data = db.Column(db.Text, nullable=False, default="{}")
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def mark_read(self):
        self.read_at = utcnow()

    @property
    def payload(self):
        """``data`` decoded as JSON when possible, otherwise the raw text."""
        try:
            return json.loads(self.data) if self.data else {}
        except (TypeError, ValueError):
            return self.data

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "notifiable_type": self.notifiable_type,
            "notifiable_id": self.notifiable_id,
            "data": self.payload,
            "read_at": iso(self.read_at),
            "is_read": self.read_at is not None,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type}>"
