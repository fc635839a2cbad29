"""
Analytics service: integration mirrors and the daily summary tables.

Summaries are rebuilt per day by ``populate_analytics`` (the populate-analytics
job and ``flask populate-analytics``). Each populate function upserts one row
keyed by its unique constraint and flushes; the caller commits.

Run classification for a day's test execution summary, first match wins:
    any failed result         → failed
    any blocked result        → blocked
    every result skipped      → skipped  (also a run with no results)
    otherwise                 → passed
"""

import logging
from datetime import timedelta

from sqlalchemy import and_, or_

from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.analytics import (
    AllureReport,
    BugAnalyticsDaily,
    GitlabMrContributor,
    GitlabMrLeadTime,
    JiraLeadTime,
    MonthlyContribution,
    TestCaseAnalytics,
    TestExecutionSummary,
)
from qahub.models.base import utcnow
from qahub.models.bug_budget import BugBudget
from qahub.models.project import Project, Repository
from qahub.models.testing import TestCase, TestRun, TestRunResult
from qahub.services.helpers.listing import apply_date_range, apply_sort
from qahub.utils.helpers import commit_or_raise, day_bounds, parse_date

logger = logging.getLogger(__name__)

CLOSED_STATUSES = {"Closed", "Done", "Resolved"}
CRITICAL_PRIORITIES = {"Highest", "Critical", "Blocker"}
HIGH_PRIORITIES = {"High", "Major"}
MEDIUM_PRIORITIES = {"Medium"}
LOW_PRIORITIES = {"Low", "Lowest", "Minor", "Trivial"}
MAX_POPULATE_DAYS = 366


# ═══════════════════════════════════════════════════════════════
# Integration mirrors
# ═══════════════════════════════════════════════════════════════
def list_allure_reports_query(args):
    q = AllureReport.query
    status = args.get("status")
    if status:
        q = q.filter(AllureReport.status == status)
    search = (args.get("search") or "").strip()
    if search:
        q = q.filter(AllureReport.name.ilike(f"%{search}%"))
    q = apply_date_range(q, AllureReport.execution_started_at, args)
    return apply_sort(q, AllureReport, args, allowed=("name", "status", "execution_started_at", "created_at"))


def create_allure_report(*, user_id: int, data: dict) -> AllureReport:
    report = AllureReport(
        name=data["name"],
        version=data.get("version"),
        summary=data.get("summary"),
        status=data.get("status") or "pending",
        execution_started_at=data.get("execution_started_at"),
        execution_stopped_at=data.get("execution_stopped_at"),
        created_by=user_id,
        updated_by=user_id,
    )
    db.session.add(report)
    commit_or_raise()
    logger.info("Allure report stored id=%s name=%s", report.id, report.name)
    return report


def list_mr_lead_times_query(args):
    q = GitlabMrLeadTime.query
    for name in ("project_name", "author"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(GitlabMrLeadTime, name) == value)
    project_id = args.get("project_id", type=int)
    if project_id is not None:
        q = q.filter(GitlabMrLeadTime.project_id == project_id)
    q = apply_date_range(q, GitlabMrLeadTime.merged_at, args)
    return q.order_by(GitlabMrLeadTime.mr_created_at.desc(), GitlabMrLeadTime.id.desc())


def list_contributors_query(args):
    q = GitlabMrContributor.query
    for name in ("project_name", "username"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(GitlabMrContributor, name) == value)
    return q.order_by(GitlabMrContributor.contributions.desc(), GitlabMrContributor.id.asc())


def list_jira_lead_times_query(args):
    q = JiraLeadTime.query
    for name in ("project_key", "issue_type", "status"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(JiraLeadTime, name) == value)
    q = apply_date_range(q, JiraLeadTime.resolved_at, args)
    return q.order_by(JiraLeadTime.issue_created_at.desc(), JiraLeadTime.id.desc())


def list_monthly_contributions_query(args):
    q = MonthlyContribution.query
    for name in ("year", "month", "project_id"):
        value = args.get(name, type=int)
        if value is not None:
            q = q.filter(getattr(MonthlyContribution, name) == value)
    for name in ("username", "squad"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(MonthlyContribution, name) == value)
    return q.order_by(
        MonthlyContribution.year.desc(), MonthlyContribution.month.desc(),
        MonthlyContribution.total_events.desc(),
    )


# ═══════════════════════════════════════════════════════════════
# Daily summaries
# ═══════════════════════════════════════════════════════════════
def _runs_on(project_id, day):
    start, end = day_bounds(day)
    return TestRun.query.filter(
        TestRun.project_id == project_id,
        or_(
            TestRun.execution_date == day,
            and_(TestRun.execution_date.is_(None), TestRun.created_at.between(start, end)),
        ),
    ).all()


def classify_run(statuses) -> str:
    statuses = list(statuses)
    if "failed" in statuses:
        return "failed"
    if "blocked" in statuses:
        return "blocked"
    if all(s == "skipped" for s in statuses):
        return "skipped"
    return "passed"


def populate_test_execution_summary(project_id: int, day) -> TestExecutionSummary:
    runs = _runs_on(project_id, day)
    buckets = {"passed": 0, "failed": 0, "blocked": 0, "skipped": 0}
    automated = manual = 0
    times = []
    case_ids = set()

    for run in runs:
        rows = (
            db.session.query(TestRunResult.status, TestRunResult.execution_time,
                             TestRunResult.test_case_id, TestCase.automated)
            .join(TestCase, TestCase.id == TestRunResult.test_case_id)
            .filter(TestRunResult.test_run_id == run.id)
            .all()
        )
        buckets[classify_run(r.status for r in rows)] += 1
        for status, execution_time, case_id, is_automated in rows:
            case_ids.add(case_id)
            if is_automated:
                automated += 1
            else:
                manual += 1
            if execution_time is not None:
                times.append(execution_time)

    row = TestExecutionSummary.query.filter_by(project_id=project_id, summary_date=day).first()
    if row is None:
        row = TestExecutionSummary(project_id=project_id, summary_date=day)
        db.session.add(row)
    row.total_runs = len(runs)
    row.passed_runs = buckets["passed"]
    row.failed_runs = buckets["failed"]
    row.blocked_runs = buckets["blocked"]
    row.skipped_runs = buckets["skipped"]
    row.automated_count = automated
    row.manual_count = manual
    row.avg_execution_time = round(sum(times) / len(times), 2) if times else None
    row.total_test_cases = len(case_ids)
    row.last_updated_at = utcnow()
    db.session.flush()
    return row


def populate_bug_analytics_daily(project: str, project_id, day, *, tenant_id=None) -> BugAnalyticsDaily:
    """Upsert one day of bug counts.

    Rows for linked projects are keyed by ``project_id``; Jira projects with
    no QaHub counterpart fall back to (tenant, project name).
    """
    start, end = day_bounds(day)
    q = BugBudget.query
    if tenant_id is not None:
        q = q.filter(BugBudget.tenant_id == tenant_id)
    if project_id is not None:
        q = q.filter(BugBudget.project_id == project_id)
    else:
        q = q.filter(BugBudget.project == project, BugBudget.project_id.is_(None))
    bugs = q.all()

    created = resolved = closed = reopened = 0
    open_bugs = []
    resolution_hours = []
    for bug in bugs:
        if bug.created_date and start <= bug.created_date <= end:
            created += 1
        if bug.resolved_date and start <= bug.resolved_date <= end:
            resolved += 1
            if bug.status in CLOSED_STATUSES:
                closed += 1
            if bug.created_date:
                resolution_hours.append((bug.resolved_date - bug.created_date).total_seconds() / 3600)
        if bug.is_open and bug.resolved_date and bug.updated_at and start <= bug.updated_at <= end:
            reopened += 1
        if bug.is_open and bug.created_date and bug.created_date <= end:
            open_bugs.append(bug)

    if project_id is not None:
        row = BugAnalyticsDaily.query.filter_by(project_id=project_id, analytics_date=day).first()
    else:
        row = BugAnalyticsDaily.query.filter_by(
            tenant_id=tenant_id, project=project, project_id=None, analytics_date=day,
        ).first()
    if row is None:
        row = BugAnalyticsDaily(project_id=project_id, tenant_id=tenant_id, analytics_date=day)
        db.session.add(row)
    row.project = project
    row.bugs_created = created
    row.bugs_resolved = resolved
    row.bugs_closed = closed
    row.bugs_reopened = reopened
    row.open_bugs = len(open_bugs)
    row.critical_bugs = sum(1 for b in open_bugs if b.priority in CRITICAL_PRIORITIES)
    row.high_bugs = sum(1 for b in open_bugs if b.priority in HIGH_PRIORITIES)
    row.medium_bugs = sum(1 for b in open_bugs if b.priority in MEDIUM_PRIORITIES)
    row.low_bugs = sum(1 for b in open_bugs if b.priority in LOW_PRIORITIES)
    row.avg_resolution_hours = (
        round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else None
    )
    row.last_updated_at = utcnow()
    db.session.flush()
    return row


def populate_test_case_analytics(project_id: int, repository_id: int, day) -> TestCaseAnalytics:
    _, end = day_bounds(day)
    cases = (
        TestCase.query.filter(
            TestCase.repository_id == repository_id,
            TestCase.created_at <= end,
            or_(TestCase.deleted_at.is_(None), TestCase.deleted_at > end),
        ).all()
    )
    row = TestCaseAnalytics.query.filter_by(repository_id=repository_id, analytics_date=day).first()
    if row is None:
        row = TestCaseAnalytics(project_id=project_id, repository_id=repository_id, analytics_date=day)
        db.session.add(row)
    row.total_cases = len(cases)
    row.automated_cases = sum(1 for c in cases if c.automated)
    row.manual_cases = row.total_cases - row.automated_cases
    row.regression_cases = sum(1 for c in cases if c.regression)
    row.high_priority_cases = sum(1 for c in cases if c.priority in (1, 2))
    row.medium_priority_cases = sum(1 for c in cases if c.priority == 3)
    row.low_priority_cases = sum(1 for c in cases if c.priority in (4, 5))
    row.last_updated_at = utcnow()
    db.session.flush()
    return row


# ── Job ──────────────────────────────────────────────────────────────────

def resolve_days(*, days=None, yesterday=False, start_date=None, end_date=None) -> list:
    """Expand job options into the list of days to rebuild (oldest first)."""
    today = utcnow().date()
    if yesterday:
        return [today - timedelta(days=1)]
    if start_date or end_date:
        start = parse_date(start_date)
        end = parse_date(end_date) or today
        if start is None:
            raise ValidationError("Invalid date range",
                                  details=[{"field": "start_date", "message": "start_date must be a date (YYYY-MM-DD)"}])
        if start > end:
            raise ValidationError("Invalid date range",
                                  details=[{"field": "start_date", "message": "start_date must not be after end_date"}])
        span = (end - start).days + 1
        if span > MAX_POPULATE_DAYS:
            raise ValidationError("Invalid date range",
                                  details=[{"field": "end_date", "message": f"range must not exceed {MAX_POPULATE_DAYS} days"}])
        return [start + timedelta(days=i) for i in range(span)]
    days = int(days or 1)
    return [today - timedelta(days=i) for i in range(days - 1, -1, -1)]


def _bug_projects(projects, tenant_id):
    """(tenant_id, name, project_id) triples to summarize bugs for.

    Every QaHub project, plus Jira project names in ``bug_budget`` that are
    not linked to one.
    """
    pairs = [(p.tenant_id, p.title, p.id) for p in projects]
    q = (
        db.session.query(BugBudget.tenant_id, BugBudget.project)
        .filter(BugBudget.project_id.is_(None), BugBudget.project.isnot(None))
        .distinct()
    )
    if tenant_id is not None:
        q = q.filter(BugBudget.tenant_id == tenant_id)
    pairs.extend((tid, name, None) for tid, name in q.order_by(BugBudget.project).all())
    return pairs


def populate_analytics(day_list, *, tenant_id=None) -> dict:
    """Rebuild every summary for ``day_list``; ``tenant_id`` None covers all tenants."""
    projects_q = Project.query
    if tenant_id is not None:
        projects_q = projects_q.filter(Project.tenant_id == tenant_id)
    projects = projects_q.order_by(Project.id).all()
    repositories = (
        Repository.query.filter(Repository.project_id.in_([p.id for p in projects])).all()
        if projects else []
    )

    bug_projects = _bug_projects(projects, tenant_id)

    counts = {"days": len(day_list), "test_execution": 0, "bugs": 0, "test_cases": 0}
    for day in day_list:
        for project in projects:
            populate_test_execution_summary(project.id, day)
            counts["test_execution"] += 1
        for tid, name, pid in bug_projects:
            populate_bug_analytics_daily(name, pid, day, tenant_id=tid)
            counts["bugs"] += 1
        for repo in repositories:
            populate_test_case_analytics(repo.project_id, repo.id, day)
            counts["test_cases"] += 1
    commit_or_raise()
    logger.info("Analytics populated: %s", counts)
    return counts


# ── Read side ────────────────────────────────────────────────────────────

def _default_window(args):
    end = parse_date(args.get("end_date")) or utcnow().date()
    start = parse_date(args.get("start_date")) or end - timedelta(days=29)
    return start, end


def test_execution_summaries(project_id: int, args) -> list:
    start, end = _default_window(args)
    return (
        TestExecutionSummary.query.filter(
            TestExecutionSummary.project_id == project_id,
            TestExecutionSummary.summary_date.between(start, end),
        )
        .order_by(TestExecutionSummary.summary_date.asc())
        .all()
    )


def bug_analytics(project_id: int, args) -> list:
    start, end = _default_window(args)
    return (
        BugAnalyticsDaily.query.filter(
            BugAnalyticsDaily.project_id == project_id,
            BugAnalyticsDaily.analytics_date.between(start, end),
        )
        .order_by(BugAnalyticsDaily.analytics_date.asc())
        .all()
    )


def test_case_analytics(repository_id: int, args) -> list:
    start, end = _default_window(args)
    return (
        TestCaseAnalytics.query.filter(
            TestCaseAnalytics.repository_id == repository_id,
            TestCaseAnalytics.analytics_date.between(start, end),
        )
        .order_by(TestCaseAnalytics.analytics_date.asc())
        .all()
    )


def summary_totals(rows, fields) -> dict:
    return {field: sum(getattr(r, field) or 0 for r in rows) for field in fields}
