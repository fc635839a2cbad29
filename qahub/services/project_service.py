"""Project and repository CRUD with strict tenant ownership checks."""

from __future__ import annotations

import logging

from sqlalchemy import or_

from qahub.core.exceptions import ConflictError
from qahub.events import EventType, emit
from qahub.models import db
from qahub.models.project import Project, Repository
from qahub.models.testing import TestPlan, TestRun, TestRunsView
from qahub.services.helpers.listing import apply_sort
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.change_logger import log_delete, log_insert, log_update
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

PROJECT_SORT_FIELDS = ("title", "created_at", "updated_at")
REPOSITORY_SORT_FIELDS = ("title", "prefix", "created_at", "updated_at")


def _snapshot(obj, fields):
    return {f: getattr(obj, f) for f in fields}


# ═══════════════════════════════════════════════════════════════
# Stats
# ═══════════════════════════════════════════════════════════════
def stats(tenant_id: int | None) -> dict:
    if tenant_id is None:
        return {"projects": 0, "squads": 0, "test_plans": 0, "test_runs": 0}
    return {
        "projects": Project.query_for_tenant(tenant_id).count(),
        "squads": Repository.query_for_tenant(tenant_id).count(),
        "test_plans": TestPlan.query_for_tenant(tenant_id).count(),
        "test_runs": TestRun.query_for_tenant(tenant_id).count(),
    }


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
def list_projects_query(*, tenant_id: int, args):
    q = Project.query_for_tenant(tenant_id)
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Project.title.ilike(like), Project.description.ilike(like)))
    return apply_sort(q, Project, args, allowed=PROJECT_SORT_FIELDS)


def get_project(*, tenant_id: int, project_id: int) -> Project:
    return get_scoped(Project, project_id, tenant_id=tenant_id)


def create_project(*, tenant_id: int, user_id: int, data: dict) -> Project:
    project = Project(
        tenant_id=tenant_id,
        title=data["title"],
        description=data.get("description"),
        created_by=user_id,
        updated_by=user_id,
    )
    db.session.add(project)
    db.session.flush()
    log_insert("projects", project.id, _snapshot(project, ("title", "description")), user_id=user_id)
    commit_or_raise()
    logger.info("Project created id=%s tenant=%s", project.id, tenant_id)
    emit(EventType.PROJECT_CREATED, "project", project.id, project.to_dict(), user_id)
    return project


def update_project(*, tenant_id: int, project_id: int, user_id: int, data: dict) -> Project:
    project = get_project(tenant_id=tenant_id, project_id=project_id)
    before = _snapshot(project, ("title", "description"))
    for field in ("title", "description"):
        if field in data:
            setattr(project, field, data[field])
    project.updated_by = user_id
    log_update("projects", project.id, before, _snapshot(project, ("title", "description")), user_id=user_id)
    commit_or_raise()
    emit(EventType.PROJECT_UPDATED, "project", project.id, project.to_dict(), user_id)
    return project


def delete_project(*, tenant_id: int, project_id: int, user_id: int) -> None:
    project = get_project(tenant_id=tenant_id, project_id=project_id)
    log_delete("projects", project.id, _snapshot(project, ("title", "description")), user_id=user_id)
    TestRunsView.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    db.session.delete(project)
    commit_or_raise()
    logger.info("Project deleted id=%s tenant=%s", project_id, tenant_id)


# ═══════════════════════════════════════════════════════════════
# Repositories
# ═══════════════════════════════════════════════════════════════
def _ensure_prefix_free(prefix, exclude_id=None):
    q = Repository.query.filter(Repository.prefix == prefix)
    if exclude_id is not None:
        q = q.filter(Repository.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Repository prefix already exists", code="PREFIX_EXISTS")


def list_repositories_query(*, tenant_id: int, project_id: int, args):
    get_project(tenant_id=tenant_id, project_id=project_id)
    q = Repository.query_for_tenant(tenant_id).filter(Repository.project_id == project_id)
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Repository.title.ilike(like), Repository.prefix.ilike(like)))
    return apply_sort(q, Repository, args, allowed=REPOSITORY_SORT_FIELDS)


def get_repository(*, tenant_id: int, project_id: int, repository_id: int) -> Repository:
    return get_scoped(Repository, repository_id, tenant_id=tenant_id, project_id=project_id)


def create_repository(*, tenant_id: int, project_id: int, user_id: int, data: dict) -> Repository:
    get_project(tenant_id=tenant_id, project_id=project_id)
    _ensure_prefix_free(data["prefix"])
    repo = Repository(
        tenant_id=tenant_id,
        project_id=project_id,
        title=data["title"],
        prefix=data["prefix"],
        description=data.get("description"),
        created_by=user_id,
        updated_by=user_id,
    )
    db.session.add(repo)
    db.session.flush()
    log_insert("repositories", repo.id, _snapshot(repo, ("title", "prefix", "description")), user_id=user_id)
    commit_or_raise("Repository prefix already exists", "PREFIX_EXISTS")
    logger.info("Repository created id=%s project=%s", repo.id, project_id)
    emit(EventType.REPOSITORY_CREATED, "repository", repo.id, repo.to_dict(), user_id)
    return repo


def update_repository(*, tenant_id: int, project_id: int, repository_id: int, user_id: int, data: dict) -> Repository:
    repo = get_repository(tenant_id=tenant_id, project_id=project_id, repository_id=repository_id)
    before = _snapshot(repo, ("title", "prefix", "description"))
    if "prefix" in data and data["prefix"] != repo.prefix:
        _ensure_prefix_free(data["prefix"], exclude_id=repo.id)
    for field in ("title", "prefix", "description"):
        if field in data:
            setattr(repo, field, data[field])
    repo.updated_by = user_id
    log_update("repositories", repo.id, before, _snapshot(repo, ("title", "prefix", "description")), user_id=user_id)
    commit_or_raise("Repository prefix already exists", "PREFIX_EXISTS")
    emit(EventType.REPOSITORY_UPDATED, "repository", repo.id, repo.to_dict(), user_id)
    return repo


def delete_repository(*, tenant_id: int, project_id: int, repository_id: int, user_id: int) -> None:
    repo = get_repository(tenant_id=tenant_id, project_id=project_id, repository_id=repository_id)
    log_delete("repositories", repo.id, _snapshot(repo, ("title", "prefix", "description")), user_id=user_id)
    db.session.delete(repo)
    commit_or_raise()
    logger.info("Repository deleted id=%s project=%s", repository_id, project_id)
