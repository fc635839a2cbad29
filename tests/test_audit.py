"""
Audit trail tests: change logger helpers, audit events written by the
domain-event listeners, audit logs and the change-log read API.
"""

from datetime import date, datetime

import pytest

from qahub.models import db
from qahub.models.audit import ChangeLog, write_audit
from qahub.utils.change_logger import (
    REDACTED,
    extract_changed_fields,
    log_change,
    log_insert,
    log_update,
    sanitize_for_change_log,
)


# ═══════════════════════════════════════════════════════════════
# Change logger
# ═══════════════════════════════════════════════════════════════

class TestChangeLogger:
    def test_sanitize_redacts_sensitive_keys(self):
        clean = sanitize_for_change_log({
            "email": "a@b.c",
            "password_hash": "$2b$...",
            "api_token": "abc",
            "client_secret": "s",
            "when": datetime(2024, 1, 2, 3, 4, 5),
            "day": date(2024, 1, 2),
        })
        assert clean == {
            "email": "a@b.c",
            "password_hash": REDACTED,
            "api_token": REDACTED,
            "client_secret": REDACTED,
            "when": "2024-01-02T03:04:05",
            "day": "2024-01-02",
        }

    def test_sanitize_none(self):
        assert sanitize_for_change_log(None) is None

    def test_changed_fields(self):
        changed = extract_changed_fields(
            {"title": "A", "priority": 1, "labels": None},
            {"title": "B", "priority": 1, "labels": "smoke"},
        )
        assert changed == {
            "labels": {"old": None, "new": "smoke"},
            "title": {"old": "A", "new": "B"},
        }

    def test_log_update_row(self):
        row = log_update("suites", 7, {"title": "Old"}, {"title": "New"}, user_id=3, source="job")
        db.session.commit()
        stored = db.session.get(ChangeLog, row.id)
        assert stored.record_id == "7"
        assert stored.change_type == "update"
        assert stored.changed_fields == {"title": {"old": "Old", "new": "New"}}
        assert stored.source == "job"
        assert len(stored.transaction_id) == 32

    def test_insert_has_no_changed_fields(self):
        row = log_insert("suites", 1, {"title": "Smoke"}, transaction_id="tx-1")
        assert row.changed_fields is None
        assert row.transaction_id == "tx-1"

    def test_unknown_change_type_is_ignored(self):
        assert log_change("suites", 1, "upsert") is None
        assert ChangeLog.query.count() == 0


# ═══════════════════════════════════════════════════════════════
# Audit logs
# ═══════════════════════════════════════════════════════════════

class TestAuditLogs:
    def test_write_audit_sanitizes(self, user):
        entry = write_audit(action="updated", model_type="User", model_id=user["id"],
                            old_values={"password": "x"}, new_values={"password": "y", "name": "N"})
        db.session.commit()
        assert entry.old_values == {"password": REDACTED}
        assert entry.new_values == {"password": REDACTED, "name": "N"}

    def test_list_and_get(self, client, auth_headers, test_case):
        res = client.get(f"/api/v1/audit-logs?model_type=TestCase&model_id={test_case['id']}",
                         headers=auth_headers)
        logs = res.get_json()["data"]
        assert [log["action"] for log in logs] == ["created"]

        res = client.get(f"/api/v1/audit-logs/{logs[0]['id']}", headers=auth_headers)
        assert res.get_json()["data"]["model_type"] == "TestCase"
        assert client.get("/api/v1/audit-logs/9999", headers=auth_headers).status_code == 404


# ═══════════════════════════════════════════════════════════════
# Audit events
# ═══════════════════════════════════════════════════════════════

class TestAuditEvents:
    def test_events_recorded_for_domain_changes(self, client, auth_headers, project, user):
        client.patch(f"/api/v1/projects/{project['id']}", json={"title": "Renamed"}, headers=auth_headers)

        res = client.get(f"/api/v1/audit-events/aggregate/project/{project['id']}", headers=auth_headers)
        events = res.get_json()["data"]
        assert [e["event_type"] for e in events] == ["project.created", "project.updated"]
        assert events[1]["user_id"] == user["id"]
        assert events[1]["metadata"]["user_id"] == user["id"]
        assert events[1]["event_data"]["title"] == "Renamed"

    def test_filter_by_type(self, client, auth_headers, repository):
        res = client.get("/api/v1/audit-events?event_type=repository.created", headers=auth_headers)
        assert [e["aggregate_id"] for e in res.get_json()["data"]] == [str(repository["id"])]

    def test_manual_event(self, client, auth_headers, user):
        res = client.post("/api/v1/audit-events", json={
            "event_type": "export.downloaded", "aggregate_type": "report", "aggregate_id": 12,
            "event_data": {"format": "csv"},
        }, headers=auth_headers)
        assert res.status_code == 201
        event = res.get_json()["data"]
        assert event["aggregate_id"] == "12"
        assert event["user_id"] == user["id"]
        assert event["metadata"]["source"] == "manual"

        fetched = client.get(f"/api/v1/audit-events/{event['id']}", headers=auth_headers).get_json()["data"]
        assert fetched["event_data"] == {"format": "csv"}

    def test_manual_event_validation(self, client, auth_headers):
        res = client.post("/api/v1/audit-events", json={"event_type": "x", "metadata": "nope"},
                          headers=auth_headers)
        assert res.status_code == 400
        fields = {d["field"] for d in res.get_json()["error"]["details"]}
        assert fields == {"aggregate_type", "aggregate_id", "metadata"}


# ═══════════════════════════════════════════════════════════════
# Change log API
# ═══════════════════════════════════════════════════════════════

class TestChangeLogApi:
    def test_record_history(self, client, auth_headers, project):
        client.patch(f"/api/v1/projects/{project['id']}", json={"title": "Renamed"}, headers=auth_headers)
        res = client.get(f"/api/v1/change-logs/table/projects/record/{project['id']}", headers=auth_headers)
        history = res.get_json()["data"]
        assert [h["change_type"] for h in history] == ["update", "insert"]

        single = client.get(f"/api/v1/change-logs/{history[0]['id']}", headers=auth_headers).get_json()["data"]
        assert single["changed_fields"]["title"] == {"old": "Checkout", "new": "Renamed"}

    def test_list_filters(self, client, auth_headers, repository):
        res = client.get("/api/v1/change-logs?table_name=repositories&change_type=insert", headers=auth_headers)
        assert [r["record_id"] for r in res.get_json()["data"]] == [str(repository["id"])]

    def test_summary(self, client, auth_headers, project, repository):
        client.patch(f"/api/v1/projects/{project['id']}", json={"title": "Renamed"}, headers=auth_headers)
        summary = client.get("/api/v1/change-logs/statistics/summary", headers=auth_headers).get_json()["data"]
        assert summary["total"] == 3
        assert summary["recent_24_hours"] == 3
        assert summary["by_type"] == {"insert": 2, "update": 1}
        assert summary["by_table"] == [
            {"table_name": "projects", "count": 2},
            {"table_name": "repositories", "count": 1},
        ]


class TestAuditTenantGuard:
    @pytest.mark.parametrize("path", ["/api/v1/audit-events", "/api/v1/audit-logs", "/api/v1/change-logs"])
    def test_user_without_tenant_is_forbidden(self, client, register_and_login, default_tenant, path):
        db.session.delete(default_tenant)
        db.session.commit()
        _, headers = register_and_login("lonely@example.com")
        res = client.get(path, headers=headers)
        assert res.status_code == 403
        assert res.get_json()["error"]["code"] == "NO_TENANT"
