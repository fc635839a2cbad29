"""
QaHub
Audit domain model.

Models:
    - AuditLog: who did what to which row (old/new values, ip, user agent)
    - AuditEvent: append-only record of every emitted domain event
    - ChangeLog: before/after snapshots written by the change logger

``write_audit`` is the single entry point for AuditLog rows. It runs in a
savepoint so a failed audit write never rolls back the caller's work.
"""

import logging

from flask import has_request_context, request

from qahub.models import db
from qahub.models.base import iso, utcnow

logger = logging.getLogger(__name__)


AUDIT_ACTIONS = {"created", "updated", "deleted", "restored", "moved", "password_reset", "password_changed"}
CHANGE_TYPES = {"insert", "update", "delete"}


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_model", "model_type", "model_id"),
        db.Index("idx_audit_user", "user_id"),
        db.Index("idx_audit_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = db.Column(db.String(50), nullable=False)
    model_type = db.Column(db.String(100), nullable=False)
    model_id = db.Column(db.Integer, nullable=False)
    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_brief() if self.user else None,
            "action": self.action,
            "model_type": self.model_type,
            "model_id": self.model_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": iso(self.created_at),
        }


class AuditEvent(db.Model):
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("idx_audit_events_aggregate", "aggregate_type", "aggregate_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(100), nullable=False, index=True)
    aggregate_type = db.Column(db.String(100), nullable=False)
    aggregate_id = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    event_data = db.Column(db.JSON)
    event_metadata = db.Column("metadata", db.JSON)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "event_type": self.event_type,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "user_id": self.user_id,
            "event_data": self.event_data,
            "metadata": self.event_metadata,
            "created_at": iso(self.created_at),
        }


class ChangeLog(db.Model):
    __tablename__ = "change_log"
    __table_args__ = (
        db.Index("idx_change_log_record", "table_name", "record_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(100), nullable=False, index=True)
    record_id = db.Column(db.String(64), nullable=False)
    change_type = db.Column(db.String(10), nullable=False, index=True)
    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)
    changed_fields = db.Column(db.JSON)
    user_id = db.Column(db.Integer, nullable=True)
    transaction_id = db.Column(db.String(64), index=True)
    source = db.Column(db.String(50), default="api")
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "change_type": self.change_type,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "changed_fields": self.changed_fields,
            "user_id": self.user_id,
            "transaction_id": self.transaction_id,
            "source": self.source,
            "created_at": iso(self.created_at),
        }


# ── Audit helper ─────────────────────────────────────────────────────────────


def write_audit(
    *,
    action,
    model_type,
    model_id,
    user_id=None,
    old_values=None,
    new_values=None,
):
    """Append an AuditLog row inside a savepoint.

    Failures are logged and swallowed; the caller's transaction is left intact.
    Returns the new row, or None when the write failed.
    """
    from qahub.utils.change_logger import sanitize_for_change_log

    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:500] or None

    try:
        with db.session.begin_nested():
            entry = AuditLog(
                user_id=user_id,
                action=action,
                model_type=model_type,
                model_id=model_id,
                old_values=sanitize_for_change_log(old_values) if old_values else None,
                new_values=sanitize_for_change_log(new_values) if new_values else None,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            db.session.add(entry)
        return entry
    except Exception:
        logger.warning(
            "Audit log write failed action=%s model=%s id=%s",
            action, model_type, model_id, exc_info=True,
        )
        return None
