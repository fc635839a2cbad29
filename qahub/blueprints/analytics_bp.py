"""
Analytics Blueprint: integration mirrors, daily summaries and the jobs that fill them.

  Mirrors     GET|POST /api/v1/analytics-integrations/allure-reports
              GET /api/v1/analytics-integrations/gitlab/mr-lead-times
              GET /api/v1/analytics-integrations/gitlab/contributors
              GET /api/v1/analytics-integrations/jira/lead-times
              GET /api/v1/analytics-integrations/monthly-contributions
  Summaries   GET /api/v1/projects/<pid>/analytics/test-execution
              GET /api/v1/projects/<pid>/analytics/bugs
              GET /api/v1/projects/<pid>/repositories/<rid>/analytics/test-cases
  Jobs        POST /api/v1/jobs/populate-analytics
              POST /api/v1/jobs/update-test-runs-view
"""

import logging

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.models.analytics import ALLURE_STATUSES
from qahub.services import analytics_service, comment_service, project_service, test_runs_view_service
from qahub.tenant import require_tenant
from qahub.utils.helpers import commit_or_raise
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

analytics_bp = Blueprint("analytics_bp", __name__, url_prefix="/api/v1")

EXECUTION_TOTALS = (
    "total_runs", "passed_runs", "failed_runs", "skipped_runs", "blocked_runs",
    "automated_count", "manual_count",
)
BUG_TOTALS = ("bugs_created", "bugs_resolved", "bugs_closed", "bugs_reopened")


# ═══════════════════════════════════════════════════════════════
# Integration mirrors
# ═══════════════════════════════════════════════════════════════
@analytics_bp.route("/analytics-integrations/allure-reports", methods=["GET"])
def list_allure_reports():
    return list_response(analytics_service.list_allure_reports_query(request.args))


@analytics_bp.route("/analytics-integrations/allure-reports", methods=["POST"])
def create_allure_report():
    v = Validator(request.get_json(silent=True) or {})
    v.string("name", required=True, max_length=255)
    v.string("version", max_length=255)
    v.json("summary")
    v.choice("status", ALLURE_STATUSES, default="pending")
    v.datetime("execution_started_at")
    v.datetime("execution_stopped_at")
    report = analytics_service.create_allure_report(user_id=current_user_id(), data=v.check())
    return data_response(report.to_dict(), 201)


@analytics_bp.route("/analytics-integrations/gitlab/mr-lead-times", methods=["GET"])
def list_mr_lead_times():
    return list_response(analytics_service.list_mr_lead_times_query(request.args))


@analytics_bp.route("/analytics-integrations/gitlab/contributors", methods=["GET"])
def list_contributors():
    return list_response(analytics_service.list_contributors_query(request.args))


@analytics_bp.route("/analytics-integrations/jira/lead-times", methods=["GET"])
def list_jira_lead_times():
    return list_response(analytics_service.list_jira_lead_times_query(request.args))


@analytics_bp.route("/analytics-integrations/monthly-contributions", methods=["GET"])
def list_monthly_contributions():
    return list_response(analytics_service.list_monthly_contributions_query(request.args))


# ═══════════════════════════════════════════════════════════════
# Daily summaries
# ═══════════════════════════════════════════════════════════════
@analytics_bp.route("/projects/<int:project_id>/analytics/test-execution", methods=["GET"])
def test_execution_analytics(project_id):
    project = project_service.get_project(tenant_id=require_tenant(), project_id=project_id)
    rows = analytics_service.test_execution_summaries(project.id, request.args)
    return data_response(
        [r.to_dict() for r in rows],
        totals=analytics_service.summary_totals(rows, EXECUTION_TOTALS),
    )


@analytics_bp.route("/projects/<int:project_id>/analytics/bugs", methods=["GET"])
def bug_analytics(project_id):
    project = project_service.get_project(tenant_id=require_tenant(), project_id=project_id)
    rows = analytics_service.bug_analytics(project.id, request.args)
    return data_response(
        [r.to_dict() for r in rows],
        totals=analytics_service.summary_totals(rows, BUG_TOTALS),
    )


@analytics_bp.route("/projects/<int:project_id>/repositories/<int:repository_id>/analytics/test-cases",
                    methods=["GET"])
def test_case_analytics(project_id, repository_id):
    repo = project_service.get_repository(
        tenant_id=require_tenant(), project_id=project_id, repository_id=repository_id,
    )
    rows = analytics_service.test_case_analytics(repo.id, request.args)
    return data_response([r.to_dict() for r in rows])


# ═══════════════════════════════════════════════════════════════
# Jobs
# ═══════════════════════════════════════════════════════════════
@analytics_bp.route("/jobs/populate-analytics", methods=["POST"])
def populate_analytics_job():
    tenant_id = require_tenant()
    v = Validator(request.get_json(silent=True) or {})
    v.integer("days", min_value=1, max_value=analytics_service.MAX_POPULATE_DAYS)
    v.boolean("yesterday", default=False)
    v.string("start_date")
    v.string("end_date")
    data = v.check()
    days = analytics_service.resolve_days(
        days=data.get("days"),
        yesterday=bool(data.get("yesterday")),
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
    )
    counts = analytics_service.populate_analytics(days, tenant_id=tenant_id)
    return data_response({
        **counts,
        "start_date": days[0].isoformat(),
        "end_date": days[-1].isoformat(),
    })


@analytics_bp.route("/jobs/update-test-runs-view", methods=["POST"])
def update_test_runs_view_job():
    tenant_id = require_tenant()
    v = Validator(request.get_json(silent=True) or {})
    v.integer("test_run_id", min_value=1)
    v.integer("days", min_value=1, max_value=3650)
    data = v.check()

    if data.get("test_run_id"):
        run = comment_service.get_run(tenant_id=tenant_id, test_run_id=data["test_run_id"])
        test_runs_view_service.update_test_runs_view(run.id)
        updated = 1
    elif data.get("days"):
        updated = test_runs_view_service.update_recent_test_runs_views(data["days"], tenant_id=tenant_id)
    else:
        updated = test_runs_view_service.update_all_test_runs_views(tenant_id=tenant_id)
    commit_or_raise()
    logger.info("update-test-runs-view job finished updated=%d", updated)
    return data_response({"updated": updated})
