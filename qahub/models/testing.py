"""
QaHub
Test management domain model.

Models:
    - Suite: folder tree of test cases inside a repository
    - TestCase: versioned, soft-deletable test case
    - TestCaseComment: threaded discussion on a test case
    - TestPlan / TestPlanTestCase: ordered selection of test cases
    - TestRun: one execution of a test plan
    - TestRunResult: outcome of one test case inside a run
    - TestRunComment / TestRunAttachment: run-level discussion and evidence
    - TestRunsView: denormalized read model kept in sync by domain events
"""

from sqlalchemy import func

from qahub.models import db
from qahub.models.auth import brief
from qahub.models.base import TenantModel, iso, utcnow
from qahub.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

DEFECT_STAGES = {"pre_development", "development", "post_development", "release_production"}
TEST_PLAN_STATUSES = {"draft", "active", "archived"}
TEST_RUN_STATUSES = {"pending", "running", "completed", "failed", "cancelled"}
RESULT_STATUSES = {"passed", "failed", "skipped", "blocked", "inProgress"}


# ═════════════════════════════════════════════════════════════════════════════
# SUITES
# ═════════════════════════════════════════════════════════════════════════════

class Suite(TenantModel):
    __tablename__ = "suites"

    id = db.Column(db.Integer, primary_key=True)
    repository_id = db.Column(
        db.Integer, db.ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    parent_id = db.Column(db.Integer, db.ForeignKey("suites.id", ondelete="CASCADE"), nullable=True, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    order = db.Column(db.Integer, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    children = db.relationship("Suite", backref=db.backref("parent", remote_side=[id]), lazy="dynamic")
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self):
        return {
            "id": self.id,
            "repository_id": self.repository_id,
            "parent_id": self.parent_id,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "created_by": brief(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASES
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(SoftDeleteMixin, TenantModel):
    """
    Test case with optimistic locking.

    ``version`` starts at 1 and is incremented on every update or move;
    a client that sends a stale version gets a 409.
    """

    __tablename__ = "test_cases"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    repository_id = db.Column(
        db.Integer, db.ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    suite_id = db.Column(db.Integer, db.ForeignKey("suites.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    labels = db.Column(db.String(255))
    automated = db.Column(db.Boolean, default=False, nullable=False)
    priority = db.Column(db.Integer, default=2, nullable=False)
    data = db.Column(db.JSON)
    order = db.Column(db.Integer, default=0)
    regression = db.Column(db.Boolean, default=True, nullable=False)
    epic_link = db.Column(db.String(255))
    linked_issue = db.Column(db.String(255))
    jira_key = db.Column(db.String(45), index=True)
    platform = db.Column(db.String(100))
    release_version = db.Column(db.String(100))
    severity = db.Column(db.String(45), default="Moderate")
    defect_stage = db.Column(db.String(45))
    version = db.Column(db.Integer, default=1, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    suite = db.relationship("Suite")
    repository = db.relationship("Repository")
    creator = db.relationship("User", foreign_keys=[created_by])
    updater = db.relationship("User", foreign_keys=[updated_by])

    # Columns copied into audit / change-log snapshots
    SNAPSHOT_FIELDS = (
        "title", "description", "labels", "automated", "priority", "data", "order",
        "regression", "epic_link", "linked_issue", "jira_key", "platform",
        "release_version", "severity", "defect_stage", "suite_id", "version",
    )

    def snapshot(self):
        return {f: getattr(self, f) for f in self.SNAPSHOT_FIELDS}

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "repository_id": self.repository_id,
            "suite_id": self.suite_id,
            "title": self.title,
            "description": self.description,
            "labels": self.labels,
            "automated": self.automated,
            "priority": self.priority,
            "data": self.data,
            "order": self.order,
            "regression": self.regression,
            "epic_link": self.epic_link,
            "linked_issue": self.linked_issue,
            "jira_key": self.jira_key,
            "platform": self.platform,
            "release_version": self.release_version,
            "severity": self.severity,
            "defect_stage": self.defect_stage,
            "version": self.version,
            "created_by": brief(self.creator),
            "updated_by": brief(self.updater),
            "deleted_by": self.deleted_by,
            "deleted_at": iso(self.deleted_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_counts:
            d["counts"] = {
                "comments": TestCaseComment.query_active().filter_by(test_case_id=self.id).count(),
                "test_plans": TestPlanTestCase.query.filter_by(test_case_id=self.id).count(),
                "test_runs": TestRunResult.query.filter_by(test_case_id=self.id).count(),
            }
        return d


class TestCaseComment(SoftDeleteMixin, db.Model):
    __tablename__ = "test_case_comments"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey("test_case_comments.id", ondelete="CASCADE"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    is_resolved = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "parent_id": self.parent_id,
            "content": self.content,
            "is_resolved": self.is_resolved,
            "user": brief(self.user),
            "deleted_at": iso(self.deleted_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# TEST PLANS
# ═════════════════════════════════════════════════════════════════════════════

class TestPlan(TenantModel):
    __tablename__ = "test_plans"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    repository_id = db.Column(
        db.Integer, db.ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default="draft", nullable=False)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    project = db.relationship("Project")
    repository = db.relationship("Repository")
    creator = db.relationship("User", foreign_keys=[created_by])
    plan_cases = db.relationship(
        "TestPlanTestCase", back_populates="test_plan", lazy="dynamic", cascade="all, delete-orphan",
        order_by="TestPlanTestCase.order",
    )

    def to_dict(self, include_cases=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "repository_id": self.repository_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "test_case_count": self.plan_cases.count(),
            "created_by": brief(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_cases:
            d["test_cases"] = [pc.to_dict() for pc in self.plan_cases.all()]
        return d


class TestPlanTestCase(db.Model):
    __tablename__ = "test_plan_test_cases"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("test_plan_id", "test_case_id", name="uq_plan_test_case"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_plan_id = db.Column(db.Integer, db.ForeignKey("test_plans.id", ondelete="CASCADE"), nullable=False)
    test_case_id = db.Column(db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False)
    order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    test_plan = db.relationship("TestPlan", back_populates="plan_cases")
    test_case = db.relationship("TestCase")

    def to_dict(self):
        return {
            "test_plan_id": self.test_plan_id,
            "test_case_id": self.test_case_id,
            "order": self.order,
            "test_case": self.test_case.to_dict() if self.test_case else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUNS
# ═════════════════════════════════════════════════════════════════════════════

class TestRun(TenantModel):
    __tablename__ = "test_runs"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    test_plan_id = db.Column(db.Integer, db.ForeignKey("test_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    repository_id = db.Column(db.Integer, db.ForeignKey("repositories.id", ondelete="SET NULL"), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), default="pending", nullable=False)
    environment = db.Column(db.String(100))
    build_version = db.Column(db.String(100))
    execution_date = db.Column(db.Date)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    project = db.relationship("Project")
    test_plan = db.relationship("TestPlan")
    repository = db.relationship("Repository")
    creator = db.relationship("User", foreign_keys=[created_by])
    results = db.relationship(
        "TestRunResult", back_populates="test_run", lazy="dynamic", cascade="all, delete-orphan",
    )

    SNAPSHOT_FIELDS = (
        "title", "description", "status", "environment", "build_version",
        "execution_date", "started_at", "completed_at", "test_plan_id", "repository_id",
    )

    def snapshot(self):
        return {f: getattr(self, f) for f in self.SNAPSHOT_FIELDS}

    def result_counts(self):
        counts = {s: 0 for s in RESULT_STATUSES}
        for (status, n) in (
            db.session.query(TestRunResult.status, func.count(TestRunResult.id))
            .filter(TestRunResult.test_run_id == self.id)
            .group_by(TestRunResult.status)
            .all()
        ):
            counts[status] = n
        counts["total"] = sum(counts.values())
        return counts

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "test_plan_id": self.test_plan_id,
            "repository_id": self.repository_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "environment": self.environment,
            "build_version": self.build_version,
            "execution_date": iso(self.execution_date),
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "test_plan": {"id": self.test_plan.id, "title": self.test_plan.title} if self.test_plan else None,
            "created_by": brief(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_counts:
            d["result_counts"] = self.result_counts()
        return d


class TestRunResult(db.Model):
    __tablename__ = "test_run_results"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("test_run_id", "test_case_id", name="uq_run_test_case"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    test_case_id = db.Column(db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    execution_time = db.Column(db.Float)
    error_message = db.Column(db.Text)
    stack_trace = db.Column(db.Text)
    screenshots = db.Column(db.JSON)
    logs = db.Column(db.Text)
    defect_found_at_stage = db.Column(db.String(45))
    defect_severity = db.Column(db.String(50))
    bug_ticket_url = db.Column(db.String(500))
    retry_count = db.Column(db.Integer, default=0)
    is_valid = db.Column(db.Boolean, default=True, nullable=False)
    executed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    executed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    test_run = db.relationship("TestRun", back_populates="results")
    test_case = db.relationship("TestCase")
    executor = db.relationship("User", foreign_keys=[executed_by])

    SNAPSHOT_FIELDS = (
        "status", "execution_time", "error_message", "defect_found_at_stage",
        "defect_severity", "bug_ticket_url", "retry_count", "executed_at", "is_valid",
    )

    def snapshot(self):
        return {f: getattr(self, f) for f in self.SNAPSHOT_FIELDS}

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "status": self.status,
            "execution_time": self.execution_time,
            "error_message": self.error_message,
            "stack_trace": self.stack_trace,
            "screenshots": self.screenshots,
            "logs": self.logs,
            "defect_found_at_stage": self.defect_found_at_stage,
            "defect_severity": self.defect_severity,
            "bug_ticket_url": self.bug_ticket_url,
            "retry_count": self.retry_count,
            "is_valid": self.is_valid,
            "test_case": {"id": self.test_case.id, "title": self.test_case.title} if self.test_case else None,
            "executed_by": brief(self.executor),
            "executed_at": iso(self.executed_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TestRunComment(db.Model):
    __tablename__ = "test_run_comments"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    test_case_id = db.Column(db.Integer, db.ForeignKey("test_cases.id", ondelete="SET NULL"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    comments = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "comments": self.comments,
            "user": brief(self.user),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TestRunAttachment(db.Model):
    __tablename__ = "test_run_attachments"
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    test_case_id = db.Column(db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"), nullable=False)
    comment_id = db.Column(db.Integer, db.ForeignKey("test_run_comments.id", ondelete="SET NULL"), nullable=True)
    url = db.Column(db.String(1000), nullable=False)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    uploader = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "comment_id": self.comment_id,
            "url": self.url,
            "uploaded_by": brief(self.uploader),
            "created_at": iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# READ MODEL
# ═════════════════════════════════════════════════════════════════════════════

class TestRunsView(db.Model):
    """One denormalized row per test run; rebuilt by ``update_test_runs_view``."""

    __tablename__ = "test_runs_view"
    __test__ = False

    test_run_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    tenant_id = db.Column(db.Integer, index=True)
    test_run_title = db.Column(db.String(255))
    status = db.Column(db.String(20))
    environment = db.Column(db.String(100))
    build_version = db.Column(db.String(100))
    execution_date = db.Column(db.Date)
    test_plan_id = db.Column(db.Integer, index=True)
    test_plan_title = db.Column(db.String(255))
    project_id = db.Column(db.Integer, index=True)
    project_title = db.Column(db.String(255))
    repository_id = db.Column(db.Integer, index=True, default=0)
    repository_title = db.Column(db.String(255), default="")
    total_test_cases = db.Column(db.Integer, default=0)
    passed_count = db.Column(db.Integer, default=0)
    failed_count = db.Column(db.Integer, default=0)
    skipped_count = db.Column(db.Integer, default=0)
    blocked_count = db.Column(db.Integer, default=0)
    execution_duration = db.Column(db.Float)
    created_by_id = db.Column(db.Integer)
    created_by_name = db.Column(db.String(255))
    created_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "test_run_id": self.test_run_id,
            "test_run_title": self.test_run_title,
            "status": self.status,
            "environment": self.environment,
            "build_version": self.build_version,
            "execution_date": iso(self.execution_date),
            "test_plan_id": self.test_plan_id,
            "test_plan_title": self.test_plan_title,
            "project_id": self.project_id,
            "project_title": self.project_title,
            "repository_id": self.repository_id,
            "repository_title": self.repository_title,
            "total_test_cases": self.total_test_cases,
            "passed_count": self.passed_count,
            "failed_count": self.failed_count,
            "skipped_count": self.skipped_count,
            "blocked_count": self.blocked_count,
            "execution_duration": self.execution_duration,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by_name,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
