"""
QaHub
Bug budget domain model: mirror of Jira issues counted against a
project's bug budget.

Models:
    - BugBudget: one Jira issue
    - BugBudgetMetadata: grouped JSON blobs imported alongside the issue
    - BugBudgetView: denormalized reporting row derived from the two above
"""

from qahub.models import db
from qahub.models.base import TenantModel, iso, utcnow


METADATA_GROUPS = (
    "epic_hierarchy",
    "assignee_details",
    "date_fields",
    "analysis_fields",
    "classification_fields",
    "report_fields",
    "story_points_data",
    "version_fields",
    "raw_jira_data",
)

DONE_STATUSES = {"done", "closed", "resolved"}
TODO_STATUSES = {"to do", "open", "backlog", "new", "reopened"}


def status_category(status):
    """Collapse a free-form Jira status into To Do / In Progress / Done."""
    value = (status or "").strip().lower()
    if value in DONE_STATUSES:
        return "Done"
    if value in TODO_STATUSES:
        return "To Do"
    return "In Progress"


class BugBudget(TenantModel):
    __tablename__ = "bug_budget"

    id = db.Column(db.Integer, primary_key=True)
    jira_key = db.Column(db.String(45), unique=True, nullable=False)
    summary = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text)
    issue_type = db.Column(db.String(50), default="Bug")
    status = db.Column(db.String(50), default="Open")
    priority = db.Column(db.String(50))
    severity_issue = db.Column(db.String(50))
    project = db.Column(db.String(255), index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    assignee = db.Column(db.String(255))
    reporter = db.Column(db.String(255))
    sprint = db.Column(db.String(255))
    story_points = db.Column(db.Float)
    labels = db.Column(db.JSON, default=list)
    components = db.Column(db.JSON, default=list)
    is_open = db.Column(db.Boolean, default=True, nullable=False)
    created_date = db.Column(db.DateTime)
    resolved_date = db.Column(db.DateTime)
    closed_date = db.Column(db.DateTime)
    reopened_count = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    bug_metadata = db.relationship(
        "BugBudgetMetadata", back_populates="bug", uselist=False, cascade="all, delete-orphan",
    )

    SNAPSHOT_FIELDS = (
        "jira_key", "summary", "issue_type", "status", "priority", "severity_issue",
        "project", "project_id", "assignee", "sprint", "is_open",
        "resolved_date", "closed_date", "reopened_count",
    )

    def snapshot(self):
        return {f: getattr(self, f) for f in self.SNAPSHOT_FIELDS}

    def to_dict(self):
        return {
            "id": self.id,
            "jira_key": self.jira_key,
            "summary": self.summary,
            "description": self.description,
            "issue_type": self.issue_type,
            "status": self.status,
            "priority": self.priority,
            "severity_issue": self.severity_issue,
            "project": self.project,
            "project_id": self.project_id,
            "assignee": self.assignee,
            "reporter": self.reporter,
            "sprint": self.sprint,
            "story_points": self.story_points,
            "labels": self.labels or [],
            "components": self.components or [],
            "is_open": self.is_open,
            "created_date": iso(self.created_date),
            "resolved_date": iso(self.resolved_date),
            "closed_date": iso(self.closed_date),
            "reopened_count": self.reopened_count,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class BugBudgetMetadata(db.Model):
    __tablename__ = "bug_budget_metadata"

    id = db.Column(db.Integer, primary_key=True)
    bug_budget_id = db.Column(
        db.Integer, db.ForeignKey("bug_budget.id", ondelete="CASCADE"), unique=True, nullable=False,
    )
    epic_hierarchy = db.Column(db.JSON)
    assignee_details = db.Column(db.JSON)
    date_fields = db.Column(db.JSON)
    analysis_fields = db.Column(db.JSON)
    classification_fields = db.Column(db.JSON)
    report_fields = db.Column(db.JSON)
    story_points_data = db.Column(db.JSON)
    version_fields = db.Column(db.JSON)
    raw_jira_data = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    bug = db.relationship("BugBudget", back_populates="bug_metadata")

    def to_dict(self):
        d = {"bug_budget_id": self.bug_budget_id}
        for group in METADATA_GROUPS:
            d[group] = getattr(self, group)
        d["updated_at"] = iso(self.updated_at)
        return d


class BugBudgetView(db.Model):
    __tablename__ = "bug_budget_view"

    bug_budget_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    tenant_id = db.Column(db.Integer, index=True)
    jira_key = db.Column(db.String(45))
    summary = db.Column(db.String(500))
    issue_type = db.Column(db.String(50))
    status = db.Column(db.String(50))
    status_category = db.Column(db.String(20), index=True)
    priority = db.Column(db.String(50))
    severity_issue = db.Column(db.String(50))
    project = db.Column(db.String(255), index=True)
    project_id = db.Column(db.Integer, index=True)
    assignee = db.Column(db.String(255))
    sprint = db.Column(db.String(255))
    is_open = db.Column(db.Boolean)
    epic_name = db.Column(db.String(255))
    service_feature = db.Column(db.String(255))
    resolution_time_hours = db.Column(db.Float)
    age_days = db.Column(db.Integer)
    created_date = db.Column(db.DateTime)
    resolved_date = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "bug_budget_id": self.bug_budget_id,
            "jira_key": self.jira_key,
            "summary": self.summary,
            "issue_type": self.issue_type,
            "status": self.status,
            "status_category": self.status_category,
            "priority": self.priority,
            "severity_issue": self.severity_issue,
            "project": self.project,
            "project_id": self.project_id,
            "assignee": self.assignee,
            "sprint": self.sprint,
            "is_open": self.is_open,
            "epic_name": self.epic_name,
            "service_feature": self.service_feature,
            "resolution_time_hours": self.resolution_time_hours,
            "age_days": self.age_days,
            "created_date": iso(self.created_date),
            "resolved_date": iso(self.resolved_date),
            "updated_at": iso(self.updated_at),
        }
