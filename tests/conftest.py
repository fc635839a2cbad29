"""
Shared pytest fixtures for the QaHub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_tenant: Pre-created tenant with slug "default"
    - register_and_login: factory returning auth headers for a new user
    - auth_headers / user: the default logged-in user
    - other_tenant / other_tenant_headers: a second tenant and one of its users
    - project, repository, suite, test_case, test_plan, test_run: API-created entities
"""

import pytest

from qahub import create_app
from qahub.models import db as _db
from qahub.services.seed_service import ensure_default_tenant

DEFAULT_PASSWORD = "Secret123!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        ensure_default_tenant()
        _db.session.commit()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_tenant():
    """Return the auto-created default tenant."""
    from qahub.models.auth import Tenant
    return Tenant.query.filter_by(slug="default").first()


# ── Auth fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def register_and_login(client):
    """Factory: register a user through the API, log in, return (user_dict, headers)."""

    def _make(email="tester@example.com", name="Test User", password=DEFAULT_PASSWORD, **extra):
        res = client.post("/api/v1/users/register", json={
            "name": name, "email": email, "password": password, **extra,
        })
        assert res.status_code == 201, res.get_json()
        res = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.get_json()
        body = res.get_json()["data"]
        return body["user"], {"Authorization": f"Bearer {body['access_token']}"}

    return _make


@pytest.fixture()
def logged_in(register_and_login):
    return register_and_login()


@pytest.fixture()
def user(logged_in):
    return logged_in[0]


@pytest.fixture()
def auth_headers(logged_in):
    return logged_in[1]


@pytest.fixture()
def other_tenant():
    from qahub.models.auth import Tenant
    tenant = Tenant(name="Other Corp", slug="other-corp")
    _db.session.add(tenant)
    _db.session.commit()
    return tenant


@pytest.fixture()
def other_tenant_headers(register_and_login, other_tenant):
    """Auth headers of a user whose only membership is in ``other_tenant``."""
    _, headers = register_and_login("outsider@example.com", tenant_id=other_tenant.id)
    return headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(client, auth_headers):
    """Create and return a project via the API."""
    res = client.post("/api/v1/projects", json={"title": "Checkout"}, headers=auth_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


@pytest.fixture()
def repository(client, auth_headers, project):
    res = client.post(
        f"/api/v1/projects/{project['id']}/repositories",
        json={"title": "Payments squad", "prefix": "PAY"},
        headers=auth_headers,
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


@pytest.fixture()
def repo_url(project, repository):
    return f"/api/v1/projects/{project['id']}/repositories/{repository['id']}"


@pytest.fixture()
def suite(client, auth_headers, repo_url):
    res = client.post(f"{repo_url}/suites", json={"title": "Smoke"}, headers=auth_headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


@pytest.fixture()
def test_case(client, auth_headers, repo_url, suite):
    res = client.post(
        f"{repo_url}/suites/{suite['id']}/test-cases",
        json={"title": "Pay with card", "priority": 1},
        headers=auth_headers,
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


@pytest.fixture()
def test_plan(client, auth_headers, repo_url, test_case):
    res = client.post(
        f"{repo_url}/test-plans",
        json={"title": "Release 1.0", "test_case_ids": [test_case["id"]]},
        headers=auth_headers,
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]


@pytest.fixture()
def test_run(client, auth_headers, project, test_plan):
    res = client.post(
        f"/api/v1/projects/{project['id']}/test-runs",
        json={"title": "Nightly", "test_plan_id": test_plan["id"], "environment": "staging"},
        headers=auth_headers,
    )
    assert res.status_code == 201, res.get_json()
    return res.get_json()["data"]
