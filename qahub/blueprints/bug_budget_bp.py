"""
Bug Budget Blueprint: Jira issue mirror and its grouped metadata.

  GET|POST          /api/v1/bug-budget
  GET|PATCH|DELETE  /api/v1/bug-budget/<id>
  GET|PUT           /api/v1/bug-budget/<id>/metadata
"""

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.models.bug_budget import METADATA_GROUPS
from qahub.services import bug_budget_service
from qahub.tenant import require_tenant
from qahub.utils.validation import Validator

bug_budget_bp = Blueprint("bug_budget_bp", __name__, url_prefix="/api/v1/bug-budget")


def _bug_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("jira_key", required=not partial, max_length=45)
    v.string("summary", required=not partial, max_length=500)
    v.string("description")
    v.string("issue_type", max_length=50)
    v.string("status", max_length=50)
    v.string("priority", max_length=50)
    v.string("severity_issue", max_length=50)
    v.string("project", max_length=255)
    v.integer("project_id", min_value=1)
    v.string("assignee", max_length=255)
    v.string("reporter", max_length=255)
    v.string("sprint", max_length=255)
    v.number("story_points", min_value=0)
    for field in ("labels", "components"):
        value = v.json(field)
        if value is not None and not isinstance(value, list):
            v.error(field, f"{field} must be a list")
    v.boolean("is_open")
    v.datetime("created_date")
    v.datetime("resolved_date")
    v.datetime("closed_date")
    v.integer("reopened_count", min_value=0)
    return v


@bug_budget_bp.route("", methods=["GET"])
def list_bugs():
    return list_response(bug_budget_service.list_query(tenant_id=require_tenant(), args=request.args))


@bug_budget_bp.route("/<int:bug_id>", methods=["GET"])
def get_bug(bug_id):
    return data_response(bug_budget_service.get_bug(tenant_id=require_tenant(), bug_id=bug_id).to_dict())


@bug_budget_bp.route("", methods=["POST"])
def create_bug():
    v = _bug_validator(request.get_json(silent=True) or {}, partial=False)
    bug = bug_budget_service.create_bug(tenant_id=require_tenant(), user_id=current_user_id(), data=v.check())
    return data_response(bug.to_dict(), 201)


@bug_budget_bp.route("/<int:bug_id>", methods=["PATCH", "PUT"])
def update_bug(bug_id):
    v = _bug_validator(request.get_json(silent=True) or {}, partial=True)
    bug = bug_budget_service.update_bug(
        tenant_id=require_tenant(), bug_id=bug_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(bug.to_dict())


@bug_budget_bp.route("/<int:bug_id>", methods=["DELETE"])
def delete_bug(bug_id):
    bug_budget_service.delete_bug(tenant_id=require_tenant(), bug_id=bug_id, user_id=current_user_id())
    return data_response({"message": "Bug deleted"})


# ── Metadata ─────────────────────────────────────────────────────────────

@bug_budget_bp.route("/<int:bug_id>/metadata", methods=["GET"])
def get_metadata(bug_id):
    return data_response(bug_budget_service.get_metadata(tenant_id=require_tenant(), bug_id=bug_id))


@bug_budget_bp.route("/<int:bug_id>/metadata", methods=["PUT"])
def upsert_metadata(bug_id):
    v = Validator(request.get_json(silent=True) or {}, partial=True)
    for group in METADATA_GROUPS:
        value = v.json(group)
        if value is not None and not isinstance(value, (dict, list)):
            v.error(group, f"{group} must be an object or a list")
    meta = bug_budget_service.upsert_metadata(
        tenant_id=require_tenant(), bug_id=bug_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(meta.to_dict())
