"""
Bug budget service: Jira issue mirror, grouped metadata and reporting view.

``refresh_bug_budget_view`` derives the reporting row:
    status_category        To Do / In Progress / Done
    resolution_time_hours  resolved_date - created_date
    age_days               (resolved_date or now) - created_date
    epic_name              metadata.epic_hierarchy.epic_name
    service_feature        metadata.classification_fields.service_feature
It runs on create, update and metadata changes.
"""

import logging

from sqlalchemy import or_

from qahub.core.exceptions import ConflictError, NotFoundError
from qahub.events import EventType, emit
from qahub.models import db
from qahub.models.base import utcnow
from qahub.models.bug_budget import (
    METADATA_GROUPS,
    BugBudget,
    BugBudgetMetadata,
    BugBudgetView,
    status_category,
)
from qahub.services.helpers.listing import apply_sort, flag
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.change_logger import log_delete, log_insert, log_update
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

BUG_FIELDS = (
    "jira_key", "summary", "description", "issue_type", "status", "priority",
    "severity_issue", "project", "project_id", "assignee", "reporter", "sprint",
    "story_points", "labels", "components", "is_open", "created_date",
    "resolved_date", "closed_date", "reopened_count",
)
SORT_FIELDS = ("jira_key", "status", "priority", "created_date", "resolved_date", "created_at", "updated_at")


def _group_value(meta, group, key):
    if meta is None:
        return None
    value = getattr(meta, group) or {}
    return value.get(key) if isinstance(value, dict) else None


# ═══════════════════════════════════════════════════════════════
# Reporting view
# ═══════════════════════════════════════════════════════════════
def refresh_bug_budget_view(bug_id: int):
    """Rebuild the view row for one bug. Flushes only; None when the bug is gone."""
    bug = db.session.get(BugBudget, bug_id)
    if bug is None:
        logger.warning("refresh_bug_budget_view: bug %s not found", bug_id)
        return None

    row = db.session.get(BugBudgetView, bug.id)
    if row is None:
        row = BugBudgetView(bug_budget_id=bug.id)
        db.session.add(row)

    for field in ("tenant_id", "jira_key", "summary", "issue_type", "status", "priority",
                  "severity_issue", "project", "project_id", "assignee", "sprint", "is_open",
                  "created_date", "resolved_date"):
        setattr(row, field, getattr(bug, field))
    row.status_category = status_category(bug.status)

    meta = bug.bug_metadata
    row.epic_name = _group_value(meta, "epic_hierarchy", "epic_name")
    row.service_feature = _group_value(meta, "classification_fields", "service_feature")

    row.resolution_time_hours = None
    row.age_days = None
    if bug.created_date:
        if bug.resolved_date:
            hours = (bug.resolved_date - bug.created_date).total_seconds() / 3600
            row.resolution_time_hours = round(hours, 2)
        end = bug.resolved_date or utcnow()
        row.age_days = max((end - bug.created_date).days, 0)
    row.updated_at = utcnow()
    db.session.flush()
    return row


def list_view_query(*, tenant_id: int, args):
    q = BugBudgetView.query.filter(BugBudgetView.tenant_id == tenant_id)
    for name in ("project", "status", "assignee", "sprint", "status_category",
                 "epic_name", "service_feature"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(BugBudgetView, name) == value)
    project_id = args.get("project_id", type=int)
    if project_id is not None:
        q = q.filter(BugBudgetView.project_id == project_id)
    is_open = flag(args, "is_open")
    if is_open is not None:
        q = q.filter(BugBudgetView.is_open.is_(is_open))
    return q.order_by(BugBudgetView.created_date.desc(), BugBudgetView.bug_budget_id.desc())


def get_view(*, tenant_id: int, bug_id: int) -> BugBudgetView:
    row = BugBudgetView.query.filter_by(bug_budget_id=bug_id, tenant_id=tenant_id).first()
    if row is None:
        raise NotFoundError(resource="BugBudgetView", resource_id=bug_id, tenant_id=tenant_id,
                            code="BUG_BUDGET_VIEW_NOT_FOUND")
    return row


# ═══════════════════════════════════════════════════════════════
# Bug budget CRUD
# ═══════════════════════════════════════════════════════════════
def get_bug(*, tenant_id: int, bug_id: int) -> BugBudget:
    return get_scoped(BugBudget, bug_id, tenant_id=tenant_id)


def list_query(*, tenant_id: int, args):
    q = BugBudget.query_for_tenant(tenant_id)
    for name in ("project", "status", "issue_type", "priority", "severity_issue", "sprint", "assignee"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(BugBudget, name) == value)
    project_id = args.get("project_id", type=int)
    if project_id is not None:
        q = q.filter(BugBudget.project_id == project_id)
    is_open = flag(args, "is_open")
    if is_open is not None:
        q = q.filter(BugBudget.is_open.is_(is_open))
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(BugBudget.jira_key.ilike(like), BugBudget.summary.ilike(like)))
    return apply_sort(q, BugBudget, args, allowed=SORT_FIELDS)


def _ensure_key_free(jira_key, exclude_id=None):
    q = BugBudget.query.filter(BugBudget.jira_key == jira_key)
    if exclude_id is not None:
        q = q.filter(BugBudget.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("A bug with this Jira key already exists", code="JIRA_KEY_EXISTS")


def create_bug(*, tenant_id: int, user_id: int, data: dict) -> BugBudget:
    _ensure_key_free(data["jira_key"])
    bug = BugBudget(tenant_id=tenant_id)
    for field in BUG_FIELDS:
        if data.get(field) is not None:
            setattr(bug, field, data[field])
    db.session.add(bug)
    db.session.flush()
    refresh_bug_budget_view(bug.id)
    log_insert("bug_budget", bug.id, bug.snapshot(), user_id=user_id)
    commit_or_raise("A bug with this Jira key already exists", "JIRA_KEY_EXISTS")
    logger.info("Bug budget entry created id=%s key=%s", bug.id, bug.jira_key)
    emit(EventType.BUG_BUDGET_CREATED, "bug_budget", bug.id, bug.to_dict(), user_id)
    return bug


def update_bug(*, tenant_id: int, bug_id: int, user_id: int, data: dict) -> BugBudget:
    bug = get_bug(tenant_id=tenant_id, bug_id=bug_id)
    if "jira_key" in data and data["jira_key"] != bug.jira_key:
        _ensure_key_free(data["jira_key"], exclude_id=bug.id)
    before = bug.snapshot()
    for field in BUG_FIELDS:
        if field in data:
            setattr(bug, field, data[field])
    db.session.flush()
    refresh_bug_budget_view(bug.id)
    log_update("bug_budget", bug.id, before, bug.snapshot(), user_id=user_id)
    commit_or_raise("A bug with this Jira key already exists", "JIRA_KEY_EXISTS")
    emit(EventType.BUG_BUDGET_UPDATED, "bug_budget", bug.id, bug.to_dict(), user_id)
    return bug


def delete_bug(*, tenant_id: int, bug_id: int, user_id: int) -> None:
    bug = get_bug(tenant_id=tenant_id, bug_id=bug_id)
    log_delete("bug_budget", bug.id, bug.snapshot(), user_id=user_id)
    view = db.session.get(BugBudgetView, bug.id)
    if view is not None:
        db.session.delete(view)
    db.session.delete(bug)
    commit_or_raise()
    logger.info("Bug budget entry deleted id=%s", bug_id)
    emit(EventType.BUG_BUDGET_DELETED, "bug_budget", bug_id, {"id": bug_id}, user_id)


# ── Metadata ─────────────────────────────────────────────────────────────

def get_metadata(*, tenant_id: int, bug_id: int) -> dict:
    bug = get_bug(tenant_id=tenant_id, bug_id=bug_id)
    if bug.bug_metadata is None:
        return {"bug_budget_id": bug.id, **{g: None for g in METADATA_GROUPS}, "updated_at": None}
    return bug.bug_metadata.to_dict()


def upsert_metadata(*, tenant_id: int, bug_id: int, user_id: int, data: dict) -> BugBudgetMetadata:
    """Replace the supplied groups; groups absent from ``data`` are kept."""
    bug = get_bug(tenant_id=tenant_id, bug_id=bug_id)
    meta = bug.bug_metadata
    if meta is None:
        meta = BugBudgetMetadata(bug_budget_id=bug.id)
        db.session.add(meta)
        bug.bug_metadata = meta
    for group in METADATA_GROUPS:
        if group in data:
            setattr(meta, group, data[group])
    db.session.flush()
    refresh_bug_budget_view(bug.id)
    commit_or_raise()
    emit(EventType.BUG_BUDGET_UPDATED, "bug_budget", bug.id, {"id": bug.id, "metadata": True}, user_id)
    return meta
