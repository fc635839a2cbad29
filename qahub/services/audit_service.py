"""
Audit read side: audit logs, audit events and the change log.

Rows are written elsewhere (``write_audit``, the event listeners and the
change logger); this module only filters and summarizes them, plus the
manual ``POST /audit-events`` entry.
"""

import logging
from datetime import timedelta

from sqlalchemy import func

from qahub.models import db
from qahub.models.audit import AuditEvent, AuditLog, ChangeLog
from qahub.models.base import utcnow
from qahub.services.helpers.listing import apply_date_range
from qahub.services.helpers.scoped_queries import get_or_404
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


# ── Audit logs ───────────────────────────────────────────────────────────

def list_audit_logs_query(args):
    q = AuditLog.query
    for name in ("model_type", "action"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(AuditLog, name) == value)
    for name in ("model_id", "user_id"):
        value = args.get(name, type=int)
        if value is not None:
            q = q.filter(getattr(AuditLog, name) == value)
    q = apply_date_range(q, AuditLog.created_at, args)
    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


def get_audit_log(log_id: int) -> AuditLog:
    return get_or_404(AuditLog, log_id, resource="AuditLog")


# ── Audit events ─────────────────────────────────────────────────────────

def list_audit_events_query(args):
    q = AuditEvent.query
    for name in ("event_type", "aggregate_type", "aggregate_id"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(AuditEvent, name) == value)
    user_id = args.get("user_id", type=int)
    if user_id is not None:
        q = q.filter(AuditEvent.user_id == user_id)
    q = apply_date_range(q, AuditEvent.created_at, args)
    return q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())


def get_audit_event(event_id: int) -> AuditEvent:
    return get_or_404(AuditEvent, event_id, resource="AuditEvent")


def aggregate_events(aggregate_type: str, aggregate_id) -> list:
    return (
        AuditEvent.query.filter_by(aggregate_type=aggregate_type, aggregate_id=str(aggregate_id))
        .order_by(AuditEvent.created_at.asc(), AuditEvent.id.asc())
        .all()
    )


def create_audit_event(*, user_id, data: dict) -> AuditEvent:
    event = AuditEvent(
        event_type=data["event_type"],
        aggregate_type=data["aggregate_type"],
        aggregate_id=str(data["aggregate_id"]),
        user_id=data.get("user_id") or user_id,
        event_data=data.get("event_data"),
        event_metadata=data.get("metadata") or {"source": "manual", "timestamp": utcnow().isoformat()},
    )
    db.session.add(event)
    commit_or_raise()
    logger.info("Manual audit event recorded id=%s type=%s", event.id, event.event_type)
    return event


# ── Change log ───────────────────────────────────────────────────────────

def list_change_logs_query(args):
    q = ChangeLog.query
    for name in ("table_name", "record_id", "change_type", "source", "transaction_id"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(ChangeLog, name) == value)
    q = apply_date_range(q, ChangeLog.created_at, args)
    return q.order_by(ChangeLog.created_at.desc(), ChangeLog.id.desc())


def get_change_log(log_id: int) -> ChangeLog:
    return get_or_404(ChangeLog, log_id, resource="ChangeLog")


def record_history_query(table_name: str, record_id):
    return (
        ChangeLog.query.filter_by(table_name=table_name, record_id=str(record_id))
        .order_by(ChangeLog.created_at.desc(), ChangeLog.id.desc())
    )


def change_log_summary() -> dict:
    since = utcnow() - timedelta(hours=24)
    total = db.session.query(func.count(ChangeLog.id)).scalar() or 0
    recent = (
        db.session.query(func.count(ChangeLog.id)).filter(ChangeLog.created_at >= since).scalar() or 0
    )
    by_type = dict(
        db.session.query(ChangeLog.change_type, func.count(ChangeLog.id))
        .group_by(ChangeLog.change_type)
        .all()
    )
    by_table = [
        {"table_name": table, "count": count}
        for table, count in (
            db.session.query(ChangeLog.table_name, func.count(ChangeLog.id).label("n"))
            .group_by(ChangeLog.table_name)
            .order_by(func.count(ChangeLog.id).desc(), ChangeLog.table_name.asc())
            .limit(10)
            .all()
        )
    ]
    return {"total": total, "recent_24_hours": recent, "by_type": by_type, "by_table": by_table}
