"""
Google Apps Script Gateway: PRD review integration.

All outbound HTTP calls to the review Apps Script go through this class.
Direct `requests` calls in services or blueprints are FORBIDDEN.

Operations (query parameter ``action``):
  - health_check    GET,  timeout 10 s
  - request_review  POST, timeout 30 s
  - test_review     POST, timeout 30 s
  - get_reviews     GET,  timeout 15 s  (reads the review sheet)

Every call returns a plain result dict ``{"success": bool, "message": str, ...}``
and never raises: network errors, non-2xx responses and ``success: false``
bodies all become failures.

Testability: pass a stub `session` (anything with ``get``/``post``) to
AppsScriptGateway() in tests instead of letting it create a real
requests.Session internally.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any

import requests

from qahub.models.base import utcnow

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 10
SUBMIT_TIMEOUT = 30
FETCH_TIMEOUT = 15

DEFAULT_SHEET_TAB = "Review AI"

_BASE36 = string.digits + string.ascii_uppercase

# Sheet rows come from hand-edited spreadsheets; columns go by several names.
_REVIEW_FIELD_ALIASES = {
    "request_id": ("requestId", "request_id", "Request ID"),
    "when": ("when", "When", "created_at"),
    "requester": ("requester", "Requester", "requester_name"),
    "page_id": ("pageId", "page_id", "Page ID"),
    "title": ("title", "Title"),
    "ai_review": ("aiReview", "ai_review", "AI Review"),
    "status": ("status", "Status"),
    "confluence_url": ("confluenceUrl", "confluence_url", "Confluence URL"),
}


@dataclass
class AppsScriptConfig:
    script_url: str
    sheets_id: str | None = None
    confluence_url: str | None = None
    sheet_tab_name: str = DEFAULT_SHEET_TAB


def generate_request_id() -> str:
    """``REV-<epoch ms>-<7 uppercase base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"REV-{int(time.time() * 1000)}-{suffix}"


def _first(row: dict, keys: tuple) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def normalize_review(row: dict) -> dict:
    """Map one sheet row onto canonical snake_case keys."""
    review = {field: _first(row, keys) for field, keys in _REVIEW_FIELD_ALIASES.items()}
    review["status"] = review["status"] or "DRAFT"
    return review


def _failure(message: str, **extra) -> dict:
    return {"success": False, "message": message, **extra}


class AppsScriptGateway:
    """Google Apps Script HTTP gateway.

    Usage:
        from qahub.integrations.apps_script_gateway import apps_script_gateway
        result = apps_script_gateway.health_check(config)
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Core dispatcher ──────────────────────────────────────────────────────

    def _call(self, method: str, config: AppsScriptConfig, action: str, *,
              params: dict | None = None, payload: dict | None = None,
              timeout: int) -> tuple[dict | None, str | None]:
        """Perform one call. Returns ``(body, None)`` or ``(None, error_message)``."""
        query = {"action": action, **(params or {})}
        t0 = time.perf_counter()
        try:
            if method == "GET":
                resp = self.session.get(config.script_url, params=query, timeout=timeout)
            else:
                resp = self.session.post(config.script_url, params=query, json=payload or {}, timeout=timeout)
        except requests.Timeout:
            logger.warning("Apps Script %s timed out after %ss", action, timeout)
            return None, f"Request timed out after {timeout}s"
        except requests.RequestException as exc:
            logger.warning("Apps Script %s network error: %s", action, exc)
            return None, str(exc)[:500] or "Network error"

        duration_ms = int((time.perf_counter() - t0) * 1000)
        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if not resp.ok:
            logger.warning("Apps Script %s failed status=%s (%dms)", action, resp.status_code, duration_ms)
            return None, body.get("message") or f"HTTP {resp.status_code}"

        logger.info("Apps Script %s ok status=%s (%dms)", action, resp.status_code, duration_ms)
        return body, None

    # ── Operations ───────────────────────────────────────────────────────────

    def health_check(self, config: AppsScriptConfig) -> dict:
        body, error = self._call("GET", config, "health_check", timeout=HEALTH_TIMEOUT)
        timestamp = utcnow().isoformat()
        if error:
            return _failure(error or "Health check failed", timestamp=timestamp)
        if body.get("success") is False:
            return _failure(body.get("message") or "Health check failed", timestamp=timestamp)
        return {
            "success": True,
            "message": body.get("message") or "Health check successful",
            "timestamp": timestamp,
        }

    def submit_review_request(self, config: AppsScriptConfig, *, requester_name: str,
                              title: str, content: str, confluence_url: str | None = None,
                              action: str = "request_review") -> dict:
        payload = {"requester": requester_name, "title": title, "content": content}
        if confluence_url:
            payload["confluence_url"] = confluence_url

        body, error = self._call("POST", config, action, payload=payload, timeout=SUBMIT_TIMEOUT)
        if error:
            return _failure(error or "Review submission failed")
        if not body.get("success"):
            return _failure(body.get("message") or "Review request failed")
        return {
            "success": True,
            "request_id": body.get("requestId") or body.get("request_id"),
            "message": body.get("message") or "Review request submitted successfully",
            "data": body,
        }

    def test_review(self, config: AppsScriptConfig) -> dict:
        return self.submit_review_request(
            config,
            requester_name="Test User",
            title="Test PRD Review",
            content="This is a test PRD content to verify the review workflow is functioning correctly.",
            action="test_review",
        )

    def fetch_reviews_from_sheets(self, config: AppsScriptConfig) -> dict:
        if not config.sheets_id:
            return _failure("Google Sheets ID not configured")

        params = {"sheets_id": config.sheets_id}
        if config.sheet_tab_name:
            params["tab_name"] = config.sheet_tab_name
        body, error = self._call("GET", config, "get_reviews", params=params, timeout=FETCH_TIMEOUT)
        if error:
            return _failure(error or "Failed to fetch reviews")
        if not body.get("success") or not isinstance(body.get("reviews"), list):
            return _failure(body.get("message") or "Failed to parse reviews from response")
        return {
            "success": True,
            "message": f"Fetched {len(body['reviews'])} review(s)",
            "reviews": [normalize_review(r) for r in body["reviews"] if isinstance(r, dict)],
        }


# Module-level singleton; tests construct their own with a stub session
apps_script_gateway = AppsScriptGateway()
