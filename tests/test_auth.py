"""
Auth, user, personal access token and RBAC tests.

Tests cover:
  - Password hashing (bcrypt) and JWT round trip
  - Login, verify, the password-reset flow and password history
  - Registration, profile, preferences and user administration
  - Personal access tokens: creation, bearer auth, revocation
  - Roles, permissions and their assignment
"""

import pytest

from qahub.models import db
from qahub.models.auth import PasswordReset, User
from qahub.services.jwt_service import decode_token, generate_access_token
from qahub.utils.crypto import hash_password, verify_password

# Password used by the register_and_login fixture
DEFAULT_PASSWORD = "Secret123!"


# ═══════════════════════════════════════════════════════════════
# Crypto & JWT
# ═══════════════════════════════════════════════════════════════

class TestCrypto:
    def test_hash_and_verify(self):
        hashed = hash_password("Secret123!")
        assert hashed != "Secret123!"
        assert verify_password("Secret123!", hashed)
        assert not verify_password("wrong", hashed)

    def test_jwt_round_trip(self, app):
        token = generate_access_token(7, "a@b.c", tenant_id=3)
        payload = decode_token(token)
        assert payload["sub"] == "7"
        assert payload["tenant_id"] == 3
        assert payload["type"] == "access"


# ═══════════════════════════════════════════════════════════════
# Login / verify
# ═══════════════════════════════════════════════════════════════

class TestLogin:
    def test_login_returns_token_and_default_tenant(self, client, register_and_login, default_tenant):
        register_and_login("login@example.com")
        res = client.post("/api/v1/auth/login", json={"email": "LOGIN@example.com", "password": DEFAULT_PASSWORD})
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["token_type"] == "Bearer"
        assert data["access_token"]
        assert data["tenant"]["id"] == default_tenant.id

    def test_wrong_password(self, client, register_and_login):
        register_and_login("wrong@example.com")
        res = client.post("/api/v1/auth/login", json={"email": "wrong@example.com", "password": "nope-nope"})
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email(self, client):
        res = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "whatever1"})
        assert res.status_code == 401

    def test_missing_fields(self, client):
        res = client.post("/api/v1/auth/login", json={})
        assert res.status_code == 400
        fields = {d["field"] for d in res.get_json()["error"]["details"]}
        assert fields == {"email", "password"}

    def test_disabled_account(self, client, register_and_login):
        user, _ = register_and_login("off@example.com")
        db.session.get(User, user["id"]).is_active = False
        db.session.commit()
        res = client.post("/api/v1/auth/login", json={"email": "off@example.com", "password": DEFAULT_PASSWORD})
        assert res.status_code == 403
        assert res.get_json()["error"]["code"] == "ACCOUNT_DISABLED"

    def test_verify(self, client, auth_headers, user):
        res = client.get("/api/v1/auth/verify", headers=auth_headers)
        assert res.status_code == 200
        data = res.get_json()["data"]
        assert data["valid"] is True
        assert data["user"]["id"] == user["id"]
        assert data["auth_method"] == "jwt"

    def test_protected_route_requires_token(self, client):
        res = client.get("/api/v1/projects")
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_garbage_jwt(self, client):
        res = client.get("/api/v1/projects", headers={"Authorization": "Bearer a.b.c"})
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "INVALID_TOKEN"


# ═══════════════════════════════════════════════════════════════
# Password reset & change
# ═══════════════════════════════════════════════════════════════

class TestPasswordLifecycle:
    def test_forgot_password_same_answer_for_unknown_email(self, client, register_and_login):
        register_and_login("known@example.com")
        known = client.post("/api/v1/auth/forgot-password", json={"email": "known@example.com"})
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "unknown@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.get_json() == unknown.get_json()
        assert PasswordReset.query.count() == 1

    def test_reset_flow(self, client, register_and_login):
        register_and_login("reset@example.com")
        client.post("/api/v1/auth/forgot-password", json={"email": "reset@example.com"})
        token = PasswordReset.query.first().token

        res = client.get(f"/api/v1/auth/verify-reset-token?token={token}")
        assert res.status_code == 200
        assert res.get_json()["data"]["email"] == "reset@example.com"

        res = client.post("/api/v1/auth/reset-password", json={"token": token, "password": "BrandNew123!"})
        assert res.status_code == 200

        res = client.post("/api/v1/auth/reset-password", json={"token": token, "password": "Another123!"})
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "TOKEN_USED"

        res = client.post("/api/v1/auth/login", json={"email": "reset@example.com", "password": "BrandNew123!"})
        assert res.status_code == 200

    def test_invalid_reset_token(self, client):
        res = client.get("/api/v1/auth/verify-reset-token?token=nope")
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "INVALID_TOKEN"

    def test_change_password_rejects_recent_password(self, client, auth_headers):
        res = client.post("/api/v1/users/change-password", headers=auth_headers, json={
            "current_password": DEFAULT_PASSWORD, "new_password": DEFAULT_PASSWORD,
        })
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "PASSWORD_REUSED"

    def test_change_password_wrong_current(self, client, auth_headers):
        res = client.post("/api/v1/users/change-password", headers=auth_headers, json={
            "current_password": "not-it-at-all", "new_password": "Different123!",
        })
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "INVALID_PASSWORD"

    def test_change_password(self, client, auth_headers, user):
        res = client.post("/api/v1/users/change-password", headers=auth_headers, json={
            "current_password": DEFAULT_PASSWORD, "new_password": "Different123!",
        })
        assert res.status_code == 200
        res = client.post("/api/v1/auth/login", json={"email": user["email"], "password": "Different123!"})
        assert res.status_code == 200


# ═══════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════

class TestUsers:
    def test_register_normalises_email_and_assigns_role(self, client):
        res = client.post("/api/v1/users/register", json={
            "name": "Ada", "email": "Ada@Example.COM", "password": "Secret123!", "role": "qa_engineer",
        })
        assert res.status_code == 201
        data = res.get_json()["data"]
        assert data["email"] == "ada@example.com"
        assert data["roles"] == ["qa_engineer"]
        assert "password_hash" not in data

    def test_register_duplicate_email(self, client, register_and_login):
        register_and_login("dupe@example.com")
        res = client.post("/api/v1/users/register", json={
            "name": "Again", "email": "DUPE@example.com", "password": "Secret123!",
        })
        assert res.status_code == 409
        assert res.get_json()["error"]["code"] == "USER_EXISTS"

    def test_register_invalid_email(self, client):
        res = client.post("/api/v1/users/register", json={
            "name": "Bad", "email": "not-an-email", "password": "Secret123!",
        })
        assert res.status_code == 400

    def test_register_short_password(self, client):
        res = client.post("/api/v1/users/register", json={
            "name": "Short", "email": "short@example.com", "password": "abc",
        })
        assert res.status_code == 400

    def test_me_lists_tenants(self, client, auth_headers, default_tenant):
        res = client.get("/api/v1/users/me", headers=auth_headers)
        assert res.status_code == 200
        tenants = res.get_json()["data"]["tenants"]
        assert [t["tenant_id"] for t in tenants] == [default_tenant.id]

    def test_update_profile(self, client, auth_headers):
        res = client.patch("/api/v1/users/me", json={"job_role": "QA Lead"}, headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["job_role"] == "QA Lead"

    def test_preferences_merge(self, client, auth_headers):
        client.patch("/api/v1/users/me/preferences", json={"theme": "dark", "lang": "en"}, headers=auth_headers)
        res = client.patch("/api/v1/users/me/preferences", json={"lang": None, "page_size": 50}, headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["data"] == {"theme": "dark", "page_size": 50}

    def test_preferences_must_be_object(self, client, auth_headers):
        res = client.patch("/api/v1/users/me/preferences", json=["x"], headers=auth_headers)
        assert res.status_code == 400

    def test_deactivate_and_activate(self, client, register_and_login):
        admin, headers = register_and_login("admin@example.com")
        other, _ = register_and_login("other@example.com")

        res = client.post(f"/api/v1/users/{admin['id']}/deactivate", headers=headers)
        assert res.get_json()["error"]["code"] == "CANNOT_DEACTIVATE_SELF"

        res = client.post(f"/api/v1/users/{other['id']}/deactivate", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["is_active"] is False

        res = client.post(f"/api/v1/users/{other['id']}/deactivate", headers=headers)
        assert res.get_json()["error"]["code"] == "ALREADY_DEACTIVATED"

        res = client.post(f"/api/v1/users/{other['id']}/activate", headers=headers)
        assert res.get_json()["data"]["is_active"] is True

    def test_deactivated_user_token_rejected(self, client, register_and_login):
        _, admin_headers = register_and_login("boss@example.com")
        other, other_headers = register_and_login("victim@example.com")
        client.post(f"/api/v1/users/{other['id']}/deactivate", headers=admin_headers)
        res = client.get("/api/v1/users/me", headers=other_headers)
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "ACCOUNT_DISABLED"

    def test_list_users_search(self, client, register_and_login):
        _, headers = register_and_login("alice@example.com", name="Alice")
        register_and_login("bob@example.com", name="Bob")
        res = client.get("/api/v1/users?search=bob", headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert [u["email"] for u in body["data"]] == ["bob@example.com"]
        assert body["pagination"]["total"] == 1

    def test_get_unknown_user(self, client, auth_headers):
        res = client.get("/api/v1/users/9999", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"]["code"] == "USER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════
# Personal access tokens
# ═══════════════════════════════════════════════════════════════

class TestPersonalAccessTokens:
    def test_create_and_authenticate(self, client, auth_headers):
        res = client.post("/api/v1/tokens", json={"name": "ci"}, headers=auth_headers)
        assert res.status_code == 201
        data = res.get_json()["data"]
        plain = data["token"]
        assert len(plain) == 64
        assert data["abilities"] == ["*"]

        res = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {plain}"})
        assert res.status_code == 200
        assert res.get_json()["data"]["auth_method"] == "pat"

        listed = client.get("/api/v1/tokens", headers=auth_headers).get_json()["data"]
        assert listed[0]["last_used_at"] is not None
        assert "token" not in listed[0]

    def test_revoked_token_rejected(self, client, auth_headers):
        data = client.post("/api/v1/tokens", json={"name": "tmp"}, headers=auth_headers).get_json()["data"]
        res = client.delete(f"/api/v1/tokens/{data['id']}", headers=auth_headers)
        assert res.status_code == 200

        res = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {data['token']}"})
        assert res.status_code == 401

        res = client.delete(f"/api/v1/tokens/{data['id']}", headers=auth_headers)
        assert res.get_json()["error"]["code"] == "TOKEN_ALREADY_REVOKED"

    def test_expired_token_rejected(self, client, auth_headers):
        data = client.post(
            "/api/v1/tokens", json={"name": "old", "expires_at": "2000-01-01T00:00:00"}, headers=auth_headers,
        ).get_json()["data"]
        res = client.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {data['token']}"})
        assert res.status_code == 401
        assert res.get_json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_revoke_all(self, client, auth_headers):
        for name in ("a", "b"):
            client.post("/api/v1/tokens", json={"name": name}, headers=auth_headers)
        res = client.delete("/api/v1/tokens", headers=auth_headers)
        assert res.get_json()["data"]["count"] == 2
        assert client.get("/api/v1/tokens", headers=auth_headers).get_json()["data"] == []

    def test_other_users_token_is_not_found(self, client, register_and_login):
        _, owner = register_and_login("owner@example.com")
        _, intruder = register_and_login("intruder@example.com")
        data = client.post("/api/v1/tokens", json={"name": "mine"}, headers=owner).get_json()["data"]
        res = client.get(f"/api/v1/tokens/{data['id']}", headers=intruder)
        assert res.status_code == 404

    def test_abilities_must_be_strings(self, client, auth_headers):
        res = client.post("/api/v1/tokens", json={"name": "x", "abilities": [1, 2]}, headers=auth_headers)
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════
# Roles & permissions
# ═══════════════════════════════════════════════════════════════

class TestRbac:
    def test_role_with_permissions(self, client, auth_headers):
        perm = client.post("/api/v1/permissions", json={"name": "test_cases.edit"}, headers=auth_headers)
        assert perm.status_code == 201
        perm_id = perm.get_json()["data"]["id"]

        res = client.post("/api/v1/roles", json={"name": "qa", "permission_ids": [perm_id]}, headers=auth_headers)
        assert res.status_code == 201
        role = res.get_json()["data"]
        assert [p["name"] for p in role["permissions"]] == ["test_cases.edit"]

        res = client.post("/api/v1/roles", json={"name": "qa"}, headers=auth_headers)
        assert res.status_code == 409
        assert res.get_json()["error"]["code"] == "ROLE_EXISTS"

    def test_remove_unassigned_permission(self, client, auth_headers):
        role = client.post("/api/v1/roles", json={"name": "viewer"}, headers=auth_headers).get_json()["data"]
        res = client.delete(f"/api/v1/roles/{role['id']}/permissions/42", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"]["code"] == "PERMISSION_NOT_ASSIGNED"

    def test_assign_and_remove_user_role(self, client, auth_headers, user):
        role = client.post("/api/v1/roles", json={"name": "lead"}, headers=auth_headers).get_json()["data"]
        res = client.post(f"/api/v1/users/{user['id']}/roles", json={"role_ids": [role["id"]]}, headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["added"] == 1

        res = client.post(f"/api/v1/users/{user['id']}/roles", json={"role_ids": [999]}, headers=auth_headers)
        assert res.get_json()["error"]["code"] == "INVALID_ROLES"

        res = client.delete(f"/api/v1/users/{user['id']}/roles/{role['id']}", headers=auth_headers)
        assert res.status_code == 200
        res = client.delete(f"/api/v1/users/{user['id']}/roles/{role['id']}", headers=auth_headers)
        assert res.get_json()["error"]["code"] == "ROLE_NOT_ASSIGNED"

    @pytest.mark.parametrize("body", [{}, {"permission_ids": []}, {"permission_ids": "1"}])
    def test_add_role_permissions_requires_ids(self, client, auth_headers, body):
        role = client.post("/api/v1/roles", json={"name": "empty"}, headers=auth_headers).get_json()["data"]
        res = client.post(f"/api/v1/roles/{role['id']}/permissions", json=body, headers=auth_headers)
        assert res.status_code == 400
