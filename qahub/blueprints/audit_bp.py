"""
QaHub
Audit blueprint: audit events, audit logs and the change log.

Endpoints:
    GET  /api/v1/audit-events                                 list / filter events
    POST /api/v1/audit-events                                 manual entry
    GET  /api/v1/audit-events/<id>                            single event
    GET  /api/v1/audit-events/aggregate/<type>/<id>           event stream of one aggregate
    GET  /api/v1/audit-logs                                   list / filter audit logs
    GET  /api/v1/audit-logs/<id>                              single audit entry
    GET  /api/v1/change-logs                                  list / filter change log
    GET  /api/v1/change-logs/<id>                             single change
    GET  /api/v1/change-logs/table/<table>/record/<id>        history of one row
    GET  /api/v1/change-logs/statistics/summary               totals by type and table
"""

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.services import audit_service
from qahub.tenant import require_tenant
from qahub.utils.validation import Validator

audit_bp = Blueprint("audit_bp", __name__, url_prefix="/api/v1")


@audit_bp.before_request
def _require_tenant():
    require_tenant()


# ── Audit events ─────────────────────────────────────────────────────────────

@audit_bp.route("/audit-events", methods=["GET"])
def list_audit_events():
    """
    Query params:
        event_type, aggregate_type, aggregate_id, user_id
        start_date, end_date   created_at range
        page, limit            pagination (limit max 200)
    """
    return list_response(audit_service.list_audit_events_query(request.args), default_limit=50, max_limit=200)


@audit_bp.route("/audit-events/<int:event_id>", methods=["GET"])
def get_audit_event(event_id):
    return data_response(audit_service.get_audit_event(event_id).to_dict())


@audit_bp.route("/audit-events/aggregate/<aggregate_type>/<aggregate_id>", methods=["GET"])
def aggregate_events(aggregate_type, aggregate_id):
    events = audit_service.aggregate_events(aggregate_type, aggregate_id)
    return data_response([e.to_dict() for e in events])


@audit_bp.route("/audit-events", methods=["POST"])
def create_audit_event():
    data = request.get_json(silent=True) or {}
    if isinstance(data.get("aggregate_id"), int):
        data["aggregate_id"] = str(data["aggregate_id"])
    v = Validator(data)
    v.string("event_type", required=True, max_length=100)
    v.string("aggregate_type", required=True, max_length=100)
    v.string("aggregate_id", required=True, max_length=64)
    v.integer("user_id", min_value=1)
    v.json("event_data")
    metadata = v.json("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        v.error("metadata", "metadata must be an object")
    event = audit_service.create_audit_event(user_id=current_user_id(), data=v.check())
    return data_response(event.to_dict(), 201)


# ── Audit logs ───────────────────────────────────────────────────────────────

@audit_bp.route("/audit-logs", methods=["GET"])
def list_audit_logs():
    """
    Query params:
        model_type, model_id, action, user_id
        start_date, end_date
        page, limit
    """
    return list_response(audit_service.list_audit_logs_query(request.args), default_limit=50, max_limit=200)


@audit_bp.route("/audit-logs/<int:log_id>", methods=["GET"])
def get_audit_log(log_id):
    return data_response(audit_service.get_audit_log(log_id).to_dict())


# ── Change log ───────────────────────────────────────────────────────────────

@audit_bp.route("/change-logs", methods=["GET"])
def list_change_logs():
    """
    Query params:
        table_name, record_id, change_type, source, transaction_id
        start_date, end_date
        page, limit
    """
    return list_response(audit_service.list_change_logs_query(request.args), default_limit=50, max_limit=200)


@audit_bp.route("/change-logs/statistics/summary", methods=["GET"])
def change_log_summary():
    return data_response(audit_service.change_log_summary())


@audit_bp.route("/change-logs/table/<table_name>/record/<record_id>", methods=["GET"])
def record_history(table_name, record_id):
    return list_response(audit_service.record_history_query(table_name, record_id), default_limit=50, max_limit=200)


@audit_bp.route("/change-logs/<int:log_id>", methods=["GET"])
def get_change_log(log_id):
    return data_response(audit_service.get_change_log(log_id).to_dict())
