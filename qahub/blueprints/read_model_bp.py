"""
Read-model Blueprint: denormalized views kept in sync by domain events.

  GET /api/v1/test-runs-view          filters project_id, test_plan_id, repository_id,
                                      start_date, end_date, search
  GET /api/v1/test-runs-view/<id>
  GET /api/v1/bug-budget-view         filters project, project_id, status, is_open, assignee,
                                      sprint, status_category, epic_name, service_feature
  GET /api/v1/bug-budget-view/<id>
"""

from flask import Blueprint, request

from qahub.blueprints import data_response, list_response
from qahub.services import bug_budget_service, test_runs_view_service
from qahub.tenant import require_tenant

read_model_bp = Blueprint("read_model_bp", __name__, url_prefix="/api/v1")


@read_model_bp.route("/test-runs-view", methods=["GET"])
def list_test_runs_view():
    q = test_runs_view_service.list_views_query(tenant_id=require_tenant(), filters=request.args)
    return list_response(q)


@read_model_bp.route("/test-runs-view/<int:test_run_id>", methods=["GET"])
def get_test_runs_view(test_run_id):
    row = test_runs_view_service.get_view(tenant_id=require_tenant(), test_run_id=test_run_id)
    return data_response(row.to_dict())


@read_model_bp.route("/bug-budget-view", methods=["GET"])
def list_bug_budget_view():
    q = bug_budget_service.list_view_query(tenant_id=require_tenant(), args=request.args)
    return list_response(q)


@read_model_bp.route("/bug-budget-view/<int:bug_id>", methods=["GET"])
def get_bug_budget_view(bug_id):
    return data_response(bug_budget_service.get_view(tenant_id=require_tenant(), bug_id=bug_id).to_dict())
