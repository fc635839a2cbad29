"""
QaHub
Notification Service.

A user's inbox is every row with ``notifiable_type == "user"`` and
``notifiable_id == user.id``; rows outside it answer 404.
"""

import json
import logging

from sqlalchemy import func

from qahub.core.exceptions import NotFoundError
from qahub.models import db
from qahub.models.base import utcnow
from qahub.models.notification import Notification
from qahub.services.helpers.listing import flag
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

USER_NOTIFIABLE = "user"


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Scope ─────────────────────────────────────────────────────────────

    @staticmethod
    def inbox(user_id):
        return Notification.query.filter(
            Notification.notifiable_type == USER_NOTIFIABLE,
            Notification.notifiable_id == user_id,
        )

    @classmethod
    def get(cls, user_id, notification_id):
        notif = cls.inbox(user_id).filter(Notification.id == notification_id).first()
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notif

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, type, notifiable_id, notifiable_type=USER_NOTIFIABLE, data=None):
        """Create one notification; ``data`` may be a dict or plain text."""
        if data is None:
            payload = "{}"
        elif isinstance(data, str):
            payload = data
        else:
            payload = json.dumps(data)
        notif = Notification(
            type=type,
            notifiable_type=notifiable_type,
            notifiable_id=notifiable_id,
            data=payload,
        )
        db.session.add(notif)
        commit_or_raise()
        logger.info("Notification created id=%s type=%s for %s:%s",
                    notif.id, type, notifiable_type, notifiable_id)
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @classmethod
    def list_query(cls, user_id, args):
        q = cls.inbox(user_id)
        ntype = args.get("type")
        if ntype:
            q = q.filter(Notification.type == ntype)
        read = flag(args, "read")
        if read is True:
            q = q.filter(Notification.read_at.isnot(None))
        elif read is False:
            q = q.filter(Notification.read_at.is_(None))
        return q.order_by(Notification.created_at.desc(), Notification.id.desc())

    @classmethod
    def stats(cls, user_id):
        total = cls.inbox(user_id).count()
        unread = cls.inbox(user_id).filter(Notification.read_at.is_(None)).count()
        by_type = dict(
            cls.inbox(user_id)
            .with_entities(Notification.type, func.count(Notification.id))
            .group_by(Notification.type)
            .all()
        )
        return {"total": total, "unread": unread, "read": total - unread, "by_type": by_type}

    # ── Update ────────────────────────────────────────────────────────────

    @classmethod
    def set_read(cls, user_id, notification_id, read_at):
        """``read_at`` None marks unread; any datetime marks read at that time."""
        notif = cls.get(user_id, notification_id)
        notif.read_at = read_at
        commit_or_raise()
        return notif

    @classmethod
    def mark_all_read(cls, user_id):
        count = (
            cls.inbox(user_id)
            .filter(Notification.read_at.is_(None))
            .update({Notification.read_at: utcnow()}, synchronize_session=False)
        )
        commit_or_raise()
        return count

    # ── Delete ────────────────────────────────────────────────────────────

    @classmethod
    def delete(cls, user_id, notification_id):
        notif = cls.get(user_id, notification_id)
        db.session.delete(notif)
        commit_or_raise()

    @classmethod
    def bulk_delete(cls, user_id, ids):
        if not ids:
            return 0
        count = (
            cls.inbox(user_id)
            .filter(Notification.id.in_(ids))
            .delete(synchronize_session=False)
        )
        commit_or_raise()
        return count
