"""
Tests for qahub/services/helpers/scoped_queries.py

Scenarios covered:
  1. ValueError when called with no scope parameter at all
  2. ValueError when the provided scope field does not exist on the model
  3. NotFoundError when PK is correct but scope (tenant) does not match
  4. Correct entity returned when PK + scope both match
  5. get_scoped_or_none returns None instead of raising NotFoundError
  6. get_or_404 for global tables
"""

import pytest

from qahub.core.exceptions import NotFoundError
from qahub.models import db
from qahub.models.auth import Tenant
from qahub.models.notification import Notification
from qahub.models.project import Project, Repository
from qahub.services.helpers.scoped_queries import get_or_404, get_scoped, get_scoped_or_none


def _make_tenant(*, name="Test Tenant", slug="test-tenant"):
    tenant = Tenant(name=name, slug=slug)
    db.session.add(tenant)
    db.session.flush()
    return tenant


def _make_project(*, tenant_id, title="Checkout"):
    project = Project(tenant_id=tenant_id, title=title)
    db.session.add(project)
    db.session.flush()
    return project


class TestScopeRequired:
    def test_without_scope_raises(self):
        with pytest.raises(ValueError, match="requires at least one scope filter"):
            get_scoped(Project, 999)

    def test_all_none_scopes_count_as_missing(self):
        with pytest.raises(ValueError, match="Project"):
            get_scoped(Project, 1, tenant_id=None, project_id=None)

    def test_scope_column_must_exist(self):
        with pytest.raises(ValueError, match="repository_id"):
            get_scoped(Project, 1, repository_id=9)

    def test_or_none_still_requires_scope(self):
        with pytest.raises(ValueError):
            get_scoped_or_none(Project, 1)


class TestWrongScope:
    def test_other_tenant_is_not_found(self):
        tenant_a = _make_tenant(name="A", slug="a")
        tenant_b = _make_tenant(name="B", slug="b")
        project = _make_project(tenant_id=tenant_a.id)

        with pytest.raises(NotFoundError) as exc_info:
            get_scoped(Project, project.id, tenant_id=tenant_b.id)
        assert exc_info.value.resource == "Project"
        assert exc_info.value.code == "PROJECT_NOT_FOUND"

    def test_resource_name_override(self):
        tenant = _make_tenant()
        with pytest.raises(NotFoundError) as exc_info:
            get_scoped(Repository, 5, resource="ParentRepository", tenant_id=tenant.id)
        assert exc_info.value.code == "PARENT_REPOSITORY_NOT_FOUND"


class TestCorrectScope:
    def test_returns_entity(self):
        tenant = _make_tenant()
        first = _make_project(tenant_id=tenant.id, title="One")
        second = _make_project(tenant_id=tenant.id, title="Two")

        assert get_scoped(Project, second.id, tenant_id=tenant.id).title == "Two"
        assert get_scoped(Project, first.id, tenant_id=tenant.id, id=first.id) is first

    def test_parent_scope(self):
        tenant = _make_tenant()
        project = _make_project(tenant_id=tenant.id)
        other = _make_project(tenant_id=tenant.id, title="Other")
        repo = Repository(tenant_id=tenant.id, project_id=project.id, title="Squad", prefix="SQ")
        db.session.add(repo)
        db.session.flush()

        assert get_scoped(Repository, repo.id, tenant_id=tenant.id, project_id=project.id) is repo
        assert get_scoped_or_none(Repository, repo.id, project_id=other.id) is None

    def test_or_none_with_none_pk(self):
        assert get_scoped_or_none(Project, None, tenant_id=1) is None


class TestGetOr404:
    def test_global_lookup(self):
        notif = Notification(type="digest", notifiable_id=1)
        db.session.add(notif)
        db.session.flush()
        assert get_or_404(Notification, notif.id) is notif

        with pytest.raises(NotFoundError) as exc_info:
            get_or_404(Notification, 999)
        assert exc_info.value.code == "NOTIFICATION_NOT_FOUND"
