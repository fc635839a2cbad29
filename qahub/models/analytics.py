"""
QaHub
Analytics models.

Integration mirrors (filled by external collectors, read through the API):
    - AllureReport
    - GitlabMrLeadTime, GitlabMrContributor
    - JiraLeadTime
    - MonthlyContribution

Daily summaries (filled by the populate-analytics job):
    - TestExecutionSummary   one row per (project, day)
    - BugAnalyticsDaily      one row per (bug project, day)
    - TestCaseAnalytics      one row per (repository, day)
"""

from qahub.models import db
from qahub.models.auth import brief
from qahub.models.base import iso, utcnow


ALLURE_STATUSES = {"pending", "running", "completed", "failed"}


# ═════════════════════════════════════════════════════════════════════════════
# INTEGRATION MIRRORS
# ═════════════════════════════════════════════════════════════════════════════

class AllureReport(db.Model):
    __tablename__ = "allure_reports"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    version = db.Column(db.String(255))
    summary = db.Column(db.JSON)
    status = db.Column(db.String(50), default="pending", nullable=False)
    execution_started_at = db.Column(db.DateTime)
    execution_stopped_at = db.Column(db.DateTime)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "summary": self.summary,
            "status": self.status,
            "execution_started_at": iso(self.execution_started_at),
            "execution_stopped_at": iso(self.execution_stopped_at),
            "created_by": brief(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class GitlabMrLeadTime(db.Model):
    __tablename__ = "gitlab_mr_lead_times"

    id = db.Column(db.Integer, primary_key=True)
    project_name = db.Column(db.String(255), nullable=False, index=True)
    project_id = db.Column(db.Integer)
    mr_id = db.Column(db.String(255), nullable=False)
    title = db.Column(db.String(500), nullable=False)
    author = db.Column(db.String(255), nullable=False)
    author_id = db.Column(db.Integer)
    mr_created_at = db.Column(db.DateTime, nullable=False)
    merged_at = db.Column(db.DateTime)
    lead_time_hours = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_name": self.project_name,
            "project_id": self.project_id,
            "mr_id": self.mr_id,
            "title": self.title,
            "author": self.author,
            "author_id": self.author_id,
            "mr_created_at": iso(self.mr_created_at),
            "merged_at": iso(self.merged_at),
            "lead_time_hours": self.lead_time_hours,
        }


class GitlabMrContributor(db.Model):
    __tablename__ = "gitlab_mr_contributors"

    id = db.Column(db.Integer, primary_key=True)
    project_name = db.Column(db.String(255), nullable=False, index=True)
    project_id = db.Column(db.Integer)
    username = db.Column(db.String(255), nullable=False)
    user_id = db.Column(db.Integer)
    name = db.Column(db.String(255))
    email = db.Column(db.String(255))
    contributions = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_name": self.project_name,
            "project_id": self.project_id,
            "username": self.username,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "contributions": self.contributions,
        }


class JiraLeadTime(db.Model):
    __tablename__ = "jira_lead_times"

    id = db.Column(db.Integer, primary_key=True)
    project_key = db.Column(db.String(255), nullable=False, index=True)
    project_id = db.Column(db.Integer)
    issue_key = db.Column(db.String(255), nullable=False)
    bug_budget_id = db.Column(db.Integer, db.ForeignKey("bug_budget.id", ondelete="SET NULL"), nullable=True)
    issue_type = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(255), nullable=False)
    issue_created_at = db.Column(db.DateTime, nullable=False)
    resolved_at = db.Column(db.DateTime)
    lead_time_hours = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_key": self.project_key,
            "project_id": self.project_id,
            "issue_key": self.issue_key,
            "bug_budget_id": self.bug_budget_id,
            "issue_type": self.issue_type,
            "status": self.status,
            "issue_created_at": iso(self.issue_created_at),
            "resolved_at": iso(self.resolved_at),
            "lead_time_hours": self.lead_time_hours,
        }


class MonthlyContribution(db.Model):
    __tablename__ = "monthly_contributions"

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    month_name = db.Column(db.String(50))
    username = db.Column(db.String(255))
    user_id = db.Column(db.Integer)
    name = db.Column(db.String(255))
    squad = db.Column(db.String(255))
    project_id = db.Column(db.Integer)
    mr_created = db.Column(db.Integer, default=0, nullable=False)
    mr_approved = db.Column(db.Integer, default=0, nullable=False)
    repo_pushes = db.Column(db.Integer, default=0, nullable=False)
    total_events = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "year": self.year,
            "month": self.month,
            "month_name": self.month_name,
            "username": self.username,
            "user_id": self.user_id,
            "name": self.name,
            "squad": self.squad,
            "project_id": self.project_id,
            "mr_created": self.mr_created,
            "mr_approved": self.mr_approved,
            "repo_pushes": self.repo_pushes,
            "total_events": self.total_events,
        }


# ═════════════════════════════════════════════════════════════════════════════
# DAILY SUMMARIES
# ═════════════════════════════════════════════════════════════════════════════

class TestExecutionSummary(db.Model):
    __tablename__ = "test_execution_summaries"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("project_id", "summary_date", name="uq_exec_summary_project_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    summary_date = db.Column(db.Date, nullable=False)
    total_runs = db.Column(db.Integer, default=0)
    passed_runs = db.Column(db.Integer, default=0)
    failed_runs = db.Column(db.Integer, default=0)
    skipped_runs = db.Column(db.Integer, default=0)
    blocked_runs = db.Column(db.Integer, default=0)
    automated_count = db.Column(db.Integer, default=0)
    manual_count = db.Column(db.Integer, default=0)
    avg_execution_time = db.Column(db.Float)
    total_test_cases = db.Column(db.Integer, default=0)
    last_updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "date": iso(self.summary_date),
            "total_runs": self.total_runs,
            "passed_runs": self.passed_runs,
            "failed_runs": self.failed_runs,
            "skipped_runs": self.skipped_runs,
            "blocked_runs": self.blocked_runs,
            "automated_count": self.automated_count,
            "manual_count": self.manual_count,
            "avg_execution_time": self.avg_execution_time,
            "total_test_cases": self.total_test_cases,
            "last_updated_at": iso(self.last_updated_at),
        }


class BugAnalyticsDaily(db.Model):
    __tablename__ = "bug_analytics_daily"
    __table_args__ = (
        db.UniqueConstraint("project_id", "analytics_date", name="uq_bug_analytics_project_id_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, index=True)
    project = db.Column(db.String(255), nullable=False)
    project_id = db.Column(db.Integer, index=True)
    analytics_date = db.Column(db.Date, nullable=False)
    bugs_created = db.Column(db.Integer, default=0)
    bugs_resolved = db.Column(db.Integer, default=0)
    bugs_closed = db.Column(db.Integer, default=0)
    bugs_reopened = db.Column(db.Integer, default=0)
    open_bugs = db.Column(db.Integer, default=0)
    critical_bugs = db.Column(db.Integer, default=0)
    high_bugs = db.Column(db.Integer, default=0)
    medium_bugs = db.Column(db.Integer, default=0)
    low_bugs = db.Column(db.Integer, default=0)
    avg_resolution_hours = db.Column(db.Float)
    last_updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "project": self.project,
            "project_id": self.project_id,
            "date": iso(self.analytics_date),
            "bugs_created": self.bugs_created,
            "bugs_resolved": self.bugs_resolved,
            "bugs_closed": self.bugs_closed,
            "bugs_reopened": self.bugs_reopened,
            "open_bugs": self.open_bugs,
            "critical_bugs": self.critical_bugs,
            "high_bugs": self.high_bugs,
            "medium_bugs": self.medium_bugs,
            "low_bugs": self.low_bugs,
            "avg_resolution_hours": self.avg_resolution_hours,
            "last_updated_at": iso(self.last_updated_at),
        }


class TestCaseAnalytics(db.Model):
    __tablename__ = "test_case_analytics"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("repository_id", "analytics_date", name="uq_case_analytics_repo_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    repository_id = db.Column(db.Integer, db.ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False)
    analytics_date = db.Column(db.Date, nullable=False)
    total_cases = db.Column(db.Integer, default=0)
    automated_cases = db.Column(db.Integer, default=0)
    manual_cases = db.Column(db.Integer, default=0)
    regression_cases = db.Column(db.Integer, default=0)
    high_priority_cases = db.Column(db.Integer, default=0)
    medium_priority_cases = db.Column(db.Integer, default=0)
    low_priority_cases = db.Column(db.Integer, default=0)
    last_updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "repository_id": self.repository_id,
            "date": iso(self.analytics_date),
            "total_cases": self.total_cases,
            "automated_cases": self.automated_cases,
            "manual_cases": self.manual_cases,
            "regression_cases": self.regression_cases,
            "high_priority_cases": self.high_priority_cases,
            "medium_priority_cases": self.medium_priority_cases,
            "low_priority_cases": self.low_priority_cases,
            "last_updated_at": iso(self.last_updated_at),
        }
