"""
PRD review tests: Apps Script gateway (stub session) and the review API.
"""

import re

import pytest
import requests

from qahub.integrations.apps_script_gateway import (
    AppsScriptConfig,
    AppsScriptGateway,
    generate_request_id,
    normalize_review,
)
from qahub.services import prd_review_service

URL = "/api/v1/prd-reviews"
SCRIPT_URL = "https://script.google.com/macros/s/abc/exec"
CONTENT = "The checkout flow must support saved cards, 3DS challenges and refunds. " * 3


class _Response:
    def __init__(self, body=None, status_code=200):
        self._body = body
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.content = b"{}" if body is not None else b""

    def json(self):
        return self._body


class StubSession:
    """Answers Apps Script actions from a dict of canned responses."""

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []

    def _answer(self, method, url, params, json=None):
        self.calls.append((method, params["action"], params, json))
        answer = self.responses.get(params["action"])
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, _Response):
            return answer
        return _Response(answer if answer is not None else {"success": True})

    def get(self, url, params=None, timeout=None):
        return self._answer("GET", url, params)

    def post(self, url, params=None, json=None, timeout=None):
        return self._answer("POST", url, params, json)


@pytest.fixture()
def config():
    return AppsScriptConfig(script_url=SCRIPT_URL, sheets_id="sheet-1")


@pytest.fixture()
def configured(app, monkeypatch):
    monkeypatch.setitem(app.config, "GOOGLE_SCRIPT_URL", SCRIPT_URL)
    monkeypatch.setitem(app.config, "GOOGLE_SHEETS_ID", "sheet-1")


@pytest.fixture()
def stub(monkeypatch, configured):
    session = StubSession(request_review={"success": True, "requestId": "REV-1-ABCDEFG"})
    monkeypatch.setattr(prd_review_service, "apps_script_gateway", AppsScriptGateway(session=session))
    return session


def _create(client, headers, **body):
    body.setdefault("requester_name", "Ana Q.")
    body.setdefault("title", "Checkout PRD")
    body.setdefault("content", CONTENT)
    return client.post(URL, json=body, headers=headers)


# ═══════════════════════════════════════════════════════════════
# Gateway
# ═══════════════════════════════════════════════════════════════

class TestGateway:
    def test_request_id_format(self):
        assert re.fullmatch(r"REV-\d{13}-[0-9A-Z]{7}", generate_request_id())

    def test_normalize_review_aliases(self):
        review = normalize_review({"requestId": "REV-1", "Title": "PRD", "aiReview": "Looks good", "pageId": 7})
        assert review["request_id"] == "REV-1"
        assert review["title"] == "PRD"
        assert review["ai_review"] == "Looks good"
        assert review["page_id"] == 7
        assert review["status"] == "DRAFT"
        assert review["requester"] is None

    def test_health_check_ok(self, config):
        session = StubSession(health_check={"success": True, "message": "alive"})
        result = AppsScriptGateway(session=session).health_check(config)
        assert result["success"] is True
        assert result["message"] == "alive"
        assert session.calls[0][:2] == ("GET", "health_check")

    def test_http_error_is_failure(self, config):
        session = StubSession(health_check=_Response({"message": "quota"}, status_code=500))
        result = AppsScriptGateway(session=session).health_check(config)
        assert result == {"success": False, "message": "quota", "timestamp": result["timestamp"]}

    def test_timeout_is_failure(self, config):
        session = StubSession(health_check=requests.Timeout())
        result = AppsScriptGateway(session=session).health_check(config)
        assert result["success"] is False
        assert "timed out" in result["message"]

    def test_submit_sends_payload(self, config):
        session = StubSession(request_review={"success": True, "requestId": "REV-9"})
        result = AppsScriptGateway(session=session).submit_review_request(
            config, requester_name="Ana", title="T", content="C", confluence_url="https://x.atlassian.net/p",
        )
        assert result["request_id"] == "REV-9"
        method, action, _, payload = session.calls[0]
        assert (method, action) == ("POST", "request_review")
        assert payload == {"requester": "Ana", "title": "T", "content": "C",
                           "confluence_url": "https://x.atlassian.net/p"}

    def test_submit_rejected_by_script(self, config):
        session = StubSession(request_review={"success": False, "message": "Sheet locked"})
        result = AppsScriptGateway(session=session).submit_review_request(
            config, requester_name="Ana", title="T", content="C",
        )
        assert result == {"success": False, "message": "Sheet locked"}

    def test_fetch_requires_sheets_id(self):
        result = AppsScriptGateway(session=StubSession()).fetch_reviews_from_sheets(
            AppsScriptConfig(script_url=SCRIPT_URL),
        )
        assert result["success"] is False

    def test_fetch_normalizes_rows(self, config):
        session = StubSession(get_reviews={"success": True, "reviews": [{"requestId": "REV-1"}, "junk"]})
        result = AppsScriptGateway(session=session).fetch_reviews_from_sheets(config)
        assert result["success"] is True
        assert [r["request_id"] for r in result["reviews"]] == ["REV-1"]
        assert session.calls[0][2] == {"action": "get_reviews", "sheets_id": "sheet-1", "tab_name": "Review AI"}

    def test_fetch_without_reviews_list(self, config):
        session = StubSession(get_reviews={"success": True})
        assert AppsScriptGateway(session=session).fetch_reviews_from_sheets(config)["success"] is False


# ═══════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════

class TestIntegrationEndpoints:
    def test_missing_configuration(self, client, auth_headers, monkeypatch, app):
        monkeypatch.setitem(app.config, "GOOGLE_SCRIPT_URL", None)
        res = client.get(f"{URL}/health-check", headers=auth_headers)
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "CONFIGURATION_MISSING"

    def test_health_check(self, client, auth_headers, stub):
        res = client.get(f"{URL}/health-check", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["success"] is True

    def test_health_check_down(self, client, auth_headers, stub):
        stub.responses["health_check"] = {"success": False, "message": "down"}
        res = client.get(f"{URL}/health-check", headers=auth_headers)
        assert res.status_code == 503
        assert res.get_json()["data"]["message"] == "down"

    def test_test_review(self, client, auth_headers, stub):
        stub.responses["test_review"] = {"success": True, "requestId": "REV-T"}
        res = client.post(f"{URL}/test-review", headers=auth_headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["request_id"] == "REV-T"

    def test_test_review_needs_healthy_script(self, client, auth_headers, stub):
        stub.responses["health_check"] = {"success": False}
        res = client.post(f"{URL}/test-review", headers=auth_headers)
        assert res.status_code == 503
        assert res.get_json()["error"]["code"] == "HEALTH_CHECK_FAILED"

    def test_test_review_rejected(self, client, auth_headers, stub):
        stub.responses["test_review"] = {"success": False, "message": "nope"}
        res = client.post(f"{URL}/test-review", headers=auth_headers)
        assert res.status_code == 502
        assert res.get_json()["error"]["code"] == "SUBMISSION_FAILED"


class TestReviews:
    def test_create(self, client, auth_headers, stub, user):
        res = _create(client, auth_headers, confluence_url="https://acme.atlassian.net/wiki/1")
        assert res.status_code == 201, res.get_json()
        review = res.get_json()["data"]
        assert review["request_id"] == "REV-1-ABCDEFG"
        assert review["status"] == "DRAFT"
        assert review["created_by"]["id"] == user["id"]
        assert [h["status"] for h in review["metadata"]["status_history"]] == ["DRAFT"]

    def test_submission_failure_stores_nothing(self, client, auth_headers, stub):
        stub.responses["request_review"] = {"success": False, "message": "Sheet locked"}
        res = _create(client, auth_headers)
        assert res.status_code == 502
        assert res.get_json()["error"]["code"] == "SUBMISSION_FAILED"
        assert client.get(URL, headers=auth_headers).get_json()["data"] == []

    @pytest.mark.parametrize("body", [
        {"requester_name": "Ana <script>"},
        {"content": "too short"},
        {"confluence_url": "https://example.com/wiki"},
        {"title": ""},
    ])
    def test_create_validation(self, client, auth_headers, stub, body):
        assert _create(client, auth_headers, **body).status_code == 400
        assert stub.calls == []

    def test_update_status_history(self, client, auth_headers, stub, user):
        review = _create(client, auth_headers).get_json()["data"]
        url = f"{URL}/{review['id']}"

        res = client.patch(url, json={"status": "PROCESSING", "comments": "picked up"}, headers=auth_headers)
        data = res.get_json()["data"]
        assert data["status"] == "PROCESSING"
        assert data["comments"] == "picked up"
        assert data["reviewed_by"] is None

        data = client.patch(url, json={"status": "FINALIZED"}, headers=auth_headers).get_json()["data"]
        assert [h["status"] for h in data["metadata"]["status_history"]] == ["DRAFT", "PROCESSING", "FINALIZED"]
        assert data["metadata"]["status_history"][-1]["from"] == "PROCESSING"
        assert data["reviewed_by"]["id"] == user["id"]
        assert data["reviewed_at"] is not None

    def test_update_invalid_status(self, client, auth_headers, stub):
        review = _create(client, auth_headers).get_json()["data"]
        res = client.patch(f"{URL}/{review['id']}", json={"status": "ARCHIVED"}, headers=auth_headers)
        assert res.status_code == 400

    def test_statistics_and_filters(self, client, auth_headers, stub):
        first = _create(client, auth_headers, title="Wallet PRD").get_json()["data"]
        stub.responses["request_review"] = {"success": True, "requestId": "REV-2-ABCDEFG"}
        _create(client, auth_headers, requester_name="Bo")
        client.patch(f"{URL}/{first['id']}", json={"status": "COMPLETED"}, headers=auth_headers)

        stats = client.get(f"{URL}/statistics", headers=auth_headers).get_json()["data"]
        assert stats == {"total": 2, "drafts": 1, "processing": 0, "completed": 1, "finalized": 0}

        res = client.get(f"{URL}?status=completed", headers=auth_headers).get_json()
        assert [r["title"] for r in res["data"]] == ["Wallet PRD"]
        res = client.get(f"{URL}?requester_name=bo", headers=auth_headers).get_json()
        assert [r["request_id"] for r in res["data"]] == ["REV-2-ABCDEFG"]

    def test_get_unknown(self, client, auth_headers):
        res = client.get(f"{URL}/999", headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"]["code"] == "PRD_REVIEW_NOT_FOUND"


class TestSync:
    def test_sync_upserts_by_request_id(self, client, auth_headers, stub):
        _create(client, auth_headers)
        stub.responses["get_reviews"] = {"success": True, "reviews": [
            {"requestId": "REV-1-ABCDEFG", "status": "completed", "aiReview": "Ship it"},
            {"requestId": "REV-NEW", "title": "Imported", "requester": "Sheet", "when": "2024-04-01T09:00:00Z"},
            {"title": "no id"},
        ]}
        res = client.post(f"{URL}/sync", headers=auth_headers)
        assert res.get_json()["data"] == {"synced": 2, "failed": 1}

        rows = {r["request_id"]: r for r in client.get(URL, headers=auth_headers).get_json()["data"]}
        assert rows["REV-1-ABCDEFG"]["status"] == "COMPLETED"
        assert rows["REV-1-ABCDEFG"]["ai_review"] == "Ship it"
        assert rows["REV-1-ABCDEFG"]["synced_at"] is not None
        assert rows["REV-NEW"]["title"] == "Imported"
        assert rows["REV-NEW"]["status"] == "DRAFT"

    def test_sync_fetch_failure(self, client, auth_headers, stub):
        stub.responses["get_reviews"] = {"success": False, "message": "no tab"}
        res = client.post(f"{URL}/sync", headers=auth_headers)
        assert res.status_code == 502
        assert res.get_json()["error"]["code"] == "SYNC_FAILED"

    def test_sync_needs_sheets_id(self, client, auth_headers, stub, app, monkeypatch):
        monkeypatch.setitem(app.config, "GOOGLE_SHEETS_ID", None)
        res = client.post(f"{URL}/sync", headers=auth_headers)
        assert res.get_json()["error"]["code"] == "CONFIGURATION_MISSING"


class TestBackgroundSync:
    def test_sync_runs_in_worker_thread(self, client, auth_headers, stub, monkeypatch):
        stub.responses["get_reviews"] = {"success": True, "reviews": [
            {"requestId": "REV-BG-1", "title": "Imported", "requester": "Sheet", "status": "completed"},
        ]}
        started = []
        start = prd_review_service.start_background_sync

        def _recording(**kwargs):
            thread = start(**kwargs)
            started.append(thread)
            return thread

        monkeypatch.setattr(prd_review_service, "start_background_sync", _recording)
        res = client.post(f"{URL}/background-sync", headers=auth_headers)
        assert res.status_code == 202
        assert res.get_json()["data"] == {"message": "Background sync started"}

        started[0].join(timeout=5)
        assert not started[0].is_alive()
        rows = client.get(URL, headers=auth_headers).get_json()["data"]
        assert [(r["request_id"], r["title"], r["status"]) for r in rows] == [
            ("REV-BG-1", "Imported", "COMPLETED"),
        ]
        assert [call[1] for call in stub.calls] == ["get_reviews"]

    def test_needs_sheets_id(self, client, auth_headers, stub, app, monkeypatch):
        monkeypatch.setitem(app.config, "GOOGLE_SHEETS_ID", None)
        res = client.post(f"{URL}/background-sync", headers=auth_headers)
        assert res.status_code == 400
        assert res.get_json()["error"]["code"] == "CONFIGURATION_MISSING"
        assert stub.calls == []
