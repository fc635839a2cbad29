"""
Tombstone columns for rows that are hidden instead of removed.

Test cases and test case comments keep their history this way: listings go
through ``query_active()``, while restore endpoints clear the tombstone.
"""

from qahub.models import db
from qahub.models.base import utcnow


class SoftDeleteMixin:
    deleted_at = db.Column(db.DateTime, index=True)
    deleted_by = db.Column(db.Integer)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, user_id=None):
        self.deleted_at, self.deleted_by = utcnow(), user_id

    def restore(self):
        self.deleted_at = self.deleted_by = None

    @classmethod
    def query_active(cls):
        return cls.query.filter(cls.deleted_at.is_(None))
