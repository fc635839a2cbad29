"""
Testing Blueprint: suites, test cases and test plans of a repository.

All routes hang below ``/api/v1/projects/<pid>/repositories/<rid>``; the
repository is resolved against the caller's tenant and the project first.

  Suites      GET|POST .../suites   GET .../suites/tree   GET|PATCH|DELETE .../suites/<sid>
  Test cases  GET|POST .../suites/<sid>/test-cases
              GET|PATCH|DELETE .../suites/<sid>/test-cases/<id>
              POST .../suites/<sid>/test-cases/<id>/restore
              POST .../test-cases/<id>/move
  Test plans  GET|POST .../test-plans   GET|PATCH|DELETE .../test-plans/<id>
              POST .../test-plans/<id>/test-cases
              DELETE .../test-plans/<id>/test-cases/<tc>
              PATCH .../test-plans/<id>/test-cases/<tc>/order
"""

import logging

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.models.testing import DEFECT_STAGES, TEST_PLAN_STATUSES
from qahub.services import project_service, suite_service, test_case_service, test_plan_service
from qahub.tenant import require_tenant
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

testing_bp = Blueprint(
    "testing_bp", __name__,
    url_prefix="/api/v1/projects/<int:project_id>/repositories/<int:repository_id>",
)


def _scope(project_id, repository_id):
    """(tenant_id, repository) for the URL; 404 when the repository is not the tenant's."""
    tenant_id = require_tenant()
    repo = project_service.get_repository(
        tenant_id=tenant_id, project_id=project_id, repository_id=repository_id,
    )
    return tenant_id, repo


# ═══════════════════════════════════════════════════════════════
# Suites
# ═══════════════════════════════════════════════════════════════
def _suite_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("title", required=not partial, max_length=255)
    v.string("description", max_length=5000)
    v.integer("parent_id", min_value=1)
    v.integer("order", min_value=0)
    return v


@testing_bp.route("/suites", methods=["GET"])
def list_suites(project_id, repository_id):
    tenant_id, repo = _scope(project_id, repository_id)
    q = suite_service.list_suites_query(tenant_id=tenant_id, repository_id=repo.id, args=request.args)
    return list_response(q, max_limit=500)


@testing_bp.route("/suites/tree", methods=["GET"])
def suite_tree(project_id, repository_id):
    tenant_id, repo = _scope(project_id, repository_id)
    return data_response(suite_service.suite_tree(tenant_id=tenant_id, repository_id=repo.id))


@testing_bp.route("/suites/<int:suite_id>", methods=["GET"])
def get_suite(project_id, repository_id, suite_id):
    tenant_id, repo = _scope(project_id, repository_id)
    suite = suite_service.get_suite(tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id)
    return data_response(suite.to_dict())


@testing_bp.route("/suites", methods=["POST"])
def create_suite(project_id, repository_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = _suite_validator(request.get_json(silent=True) or {}, partial=False)
    suite = suite_service.create_suite(
        tenant_id=tenant_id, repository_id=repo.id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(suite.to_dict(), 201)


@testing_bp.route("/suites/<int:suite_id>", methods=["PATCH", "PUT"])
def update_suite(project_id, repository_id, suite_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = _suite_validator(request.get_json(silent=True) or {}, partial=True)
    suite = suite_service.update_suite(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id,
        user_id=current_user_id(), data=v.check(),
    )
    return data_response(suite.to_dict())


@testing_bp.route("/suites/<int:suite_id>", methods=["DELETE"])
def delete_suite(project_id, repository_id, suite_id):
    tenant_id, repo = _scope(project_id, repository_id)
    suite_service.delete_suite(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id, user_id=current_user_id(),
    )
    return data_response({"message": "Suite deleted"})


# ═══════════════════════════════════════════════════════════════
# Test cases
# ═══════════════════════════════════════════════════════════════
def _test_case_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("title", required=not partial, max_length=255)
    v.string("description")
    v.string("labels", max_length=255)
    v.boolean("automated", default=False)
    v.integer("priority", min_value=1, max_value=5, default=2)
    v.json("data")
    v.integer("order", min_value=0)
    v.boolean("regression", default=True)
    v.string("epic_link", max_length=255)
    v.string("linked_issue", max_length=255)
    v.string("jira_key", max_length=45)
    v.string("platform", max_length=100)
    v.string("release_version", max_length=100)
    v.string("severity", max_length=45, default="Moderate")
    v.choice("defect_stage", DEFECT_STAGES)
    return v


@testing_bp.route("/suites/<int:suite_id>/test-cases", methods=["GET"])
def list_test_cases(project_id, repository_id, suite_id):
    tenant_id, repo = _scope(project_id, repository_id)
    suite_service.get_suite(tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id)
    q = test_case_service.list_query(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id, args=request.args,
    )
    return list_response(q, lambda tc: tc.to_dict(include_counts=True))


@testing_bp.route("/suites/<int:suite_id>/test-cases/<int:test_case_id>", methods=["GET"])
def get_test_case(project_id, repository_id, suite_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    tc = test_case_service.get_test_case(
        tenant_id=tenant_id, repository_id=repo.id, test_case_id=test_case_id, suite_id=suite_id,
    )
    return data_response(tc.to_dict(include_counts=True))


@testing_bp.route("/suites/<int:suite_id>/test-cases", methods=["POST"])
def create_test_case(project_id, repository_id, suite_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = _test_case_validator(request.get_json(silent=True) or {}, partial=False)
    tc = test_case_service.create_test_case(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id,
        user_id=current_user_id(), data=v.check(),
    )
    return data_response(tc.to_dict(), 201)


@testing_bp.route("/suites/<int:suite_id>/test-cases/<int:test_case_id>", methods=["PATCH", "PUT"])
def update_test_case(project_id, repository_id, suite_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = _test_case_validator(request.get_json(silent=True) or {}, partial=True)
    v.integer("version", min_value=1)
    tc = test_case_service.update_test_case(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id, test_case_id=test_case_id,
        user_id=current_user_id(), data=v.check(),
    )
    return data_response(tc.to_dict())


@testing_bp.route("/suites/<int:suite_id>/test-cases/<int:test_case_id>", methods=["DELETE"])
def delete_test_case(project_id, repository_id, suite_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    tc = test_case_service.delete_test_case(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id, test_case_id=test_case_id,
        user_id=current_user_id(),
    )
    return data_response(tc.to_dict())


@testing_bp.route("/suites/<int:suite_id>/test-cases/<int:test_case_id>/restore", methods=["POST"])
def restore_test_case(project_id, repository_id, suite_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    tc = test_case_service.restore_test_case(
        tenant_id=tenant_id, repository_id=repo.id, suite_id=suite_id, test_case_id=test_case_id,
        user_id=current_user_id(),
    )
    return data_response(tc.to_dict())


@testing_bp.route("/test-cases/<int:test_case_id>/move", methods=["POST"])
def move_test_case(project_id, repository_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = Validator(request.get_json(silent=True) or {})
    v.integer("target_suite_id", required=True, min_value=1)
    data = v.check()
    tc = test_case_service.move_test_case(
        tenant_id=tenant_id, repository_id=repo.id, test_case_id=test_case_id,
        user_id=current_user_id(), target_suite_id=data["target_suite_id"],
    )
    return data_response(tc.to_dict())


# ═══════════════════════════════════════════════════════════════
# Test plans
# ═══════════════════════════════════════════════════════════════
def _plan_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("title", required=not partial, max_length=255)
    v.string("description")
    v.choice("status", TEST_PLAN_STATUSES, default="draft")
    v.date("start_date")
    v.date("end_date")
    return v


@testing_bp.route("/test-plans", methods=["GET"])
def list_test_plans(project_id, repository_id):
    tenant_id, repo = _scope(project_id, repository_id)
    q = test_plan_service.list_query(tenant_id=tenant_id, repository_id=repo.id, args=request.args)
    return list_response(q)


@testing_bp.route("/test-plans/<int:plan_id>", methods=["GET"])
def get_test_plan(project_id, repository_id, plan_id):
    tenant_id, repo = _scope(project_id, repository_id)
    plan = test_plan_service.get_plan(tenant_id=tenant_id, repository_id=repo.id, plan_id=plan_id)
    return data_response(plan.to_dict(include_cases=True))


@testing_bp.route("/test-plans", methods=["POST"])
def create_test_plan(project_id, repository_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = _plan_validator(request.get_json(silent=True) or {}, partial=False)
    v.id_list("test_case_ids")
    plan = test_plan_service.create_plan(
        tenant_id=tenant_id, project_id=repo.project_id, repository_id=repo.id,
        user_id=current_user_id(), data=v.check(),
    )
    return data_response(plan.to_dict(include_cases=True), 201)


@testing_bp.route("/test-plans/<int:plan_id>", methods=["PATCH", "PUT"])
def update_test_plan(project_id, repository_id, plan_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = _plan_validator(request.get_json(silent=True) or {}, partial=True)
    plan = test_plan_service.update_plan(
        tenant_id=tenant_id, repository_id=repo.id, plan_id=plan_id,
        user_id=current_user_id(), data=v.check(),
    )
    return data_response(plan.to_dict())


@testing_bp.route("/test-plans/<int:plan_id>", methods=["DELETE"])
def delete_test_plan(project_id, repository_id, plan_id):
    tenant_id, repo = _scope(project_id, repository_id)
    test_plan_service.delete_plan(
        tenant_id=tenant_id, repository_id=repo.id, plan_id=plan_id, user_id=current_user_id(),
    )
    return data_response({"message": "Test plan deleted"})


@testing_bp.route("/test-plans/<int:plan_id>/test-cases", methods=["POST"])
def add_plan_test_cases(project_id, repository_id, plan_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = Validator(request.get_json(silent=True) or {})
    v.id_list("test_case_ids", required=True, min_items=1)
    data = v.check()
    plan, added = test_plan_service.add_test_cases(
        tenant_id=tenant_id, repository_id=repo.id, plan_id=plan_id, test_case_ids=data["test_case_ids"],
    )
    return data_response({**plan.to_dict(include_cases=True), "added": added})


@testing_bp.route("/test-plans/<int:plan_id>/test-cases/<int:test_case_id>", methods=["DELETE"])
def remove_plan_test_case(project_id, repository_id, plan_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    test_plan_service.remove_test_case(
        tenant_id=tenant_id, repository_id=repo.id, plan_id=plan_id, test_case_id=test_case_id,
    )
    return data_response({"message": "Test case removed from plan"})


@testing_bp.route("/test-plans/<int:plan_id>/test-cases/<int:test_case_id>/order", methods=["PATCH"])
def reorder_plan_test_case(project_id, repository_id, plan_id, test_case_id):
    tenant_id, repo = _scope(project_id, repository_id)
    v = Validator(request.get_json(silent=True) or {})
    v.integer("order", required=True, min_value=0)
    data = v.check()
    link = test_plan_service.reorder_test_case(
        tenant_id=tenant_id, repository_id=repo.id, plan_id=plan_id,
        test_case_id=test_case_id, order=data["order"],
    )
    return data_response(link.to_dict())
