"""
Project Blueprint: projects and their repositories ("squads").

  GET    /api/v1/projects/stats
  GET    /api/v1/projects                      POST   /api/v1/projects
  GET    /api/v1/projects/<id>                 PATCH|DELETE /api/v1/projects/<id>
  GET    /api/v1/projects/<id>/repositories    POST   /api/v1/projects/<id>/repositories
  GET|PATCH|DELETE /api/v1/projects/<id>/repositories/<repo_id>
"""

import logging

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.services import project_service
from qahub.tenant import current_tenant_id, require_tenant
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1/projects")

PREFIX_PATTERN = r"^[A-Za-z0-9_-]+$"


def _project_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("title", required=not partial, max_length=255)
    v.string("description", max_length=500)
    return v


def _repository_validator(data, *, partial):
    v = Validator(data, partial=partial)
    v.string("title", required=not partial, max_length=255)
    v.string("prefix", required=not partial, max_length=50, pattern=PREFIX_PATTERN,
             pattern_message="prefix may only contain letters, digits, '-' and '_'")
    v.string("description", max_length=255)
    return v


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
@project_bp.route("/stats", methods=["GET"])
def project_stats():
    return data_response(project_service.stats(current_tenant_id()))


@project_bp.route("", methods=["GET"])
def list_projects():
    q = project_service.list_projects_query(tenant_id=require_tenant(), args=request.args)
    return list_response(q)


@project_bp.route("/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(tenant_id=require_tenant(), project_id=project_id)
    return data_response(project.to_dict(include_counts=True))


@project_bp.route("", methods=["POST"])
def create_project():
    v = _project_validator(request.get_json(silent=True) or {}, partial=False)
    project = project_service.create_project(
        tenant_id=require_tenant(), user_id=current_user_id(), data=v.check(),
    )
    return data_response(project.to_dict(), 201)


@project_bp.route("/<int:project_id>", methods=["PATCH", "PUT"])
def update_project(project_id):
    v = _project_validator(request.get_json(silent=True) or {}, partial=True)
    project = project_service.update_project(
        tenant_id=require_tenant(), project_id=project_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(project.to_dict())


@project_bp.route("/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project_service.delete_project(tenant_id=require_tenant(), project_id=project_id, user_id=current_user_id())
    return data_response({"message": "Project deleted"})


# ═══════════════════════════════════════════════════════════════
# Repositories
# ═══════════════════════════════════════════════════════════════
@project_bp.route("/<int:project_id>/repositories", methods=["GET"])
def list_repositories(project_id):
    q = project_service.list_repositories_query(
        tenant_id=require_tenant(), project_id=project_id, args=request.args,
    )
    return list_response(q)


@project_bp.route("/<int:project_id>/repositories/<int:repository_id>", methods=["GET"])
def get_repository(project_id, repository_id):
    repo = project_service.get_repository(
        tenant_id=require_tenant(), project_id=project_id, repository_id=repository_id,
    )
    return data_response(repo.to_dict())


@project_bp.route("/<int:project_id>/repositories", methods=["POST"])
def create_repository(project_id):
    v = _repository_validator(request.get_json(silent=True) or {}, partial=False)
    repo = project_service.create_repository(
        tenant_id=require_tenant(), project_id=project_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(repo.to_dict(), 201)


@project_bp.route("/<int:project_id>/repositories/<int:repository_id>", methods=["PATCH", "PUT"])
def update_repository(project_id, repository_id):
    v = _repository_validator(request.get_json(silent=True) or {}, partial=True)
    repo = project_service.update_repository(
        tenant_id=require_tenant(), project_id=project_id, repository_id=repository_id,
        user_id=current_user_id(), data=v.check(),
    )
    return data_response(repo.to_dict())


@project_bp.route("/<int:project_id>/repositories/<int:repository_id>", methods=["DELETE"])
def delete_repository(project_id, repository_id):
    project_service.delete_repository(
        tenant_id=require_tenant(), project_id=project_id, repository_id=repository_id,
        user_id=current_user_id(),
    )
    return data_response({"message": "Repository deleted"})
