"""
PRD review service: submissions to the Apps Script reviewer and sheet sync.

Integration settings come from the ``settings`` table first and fall back to
app config:
    GOOGLE_SCRIPT_URL, GOOGLE_SHEETS_ID, CONFLUENCE_URL, GOOGLE_SHEETS_TAB_NAME

All outbound calls go through ``apps_script_gateway``; tests swap the module
attribute for a gateway built on a stub session.
"""

import logging
import threading

from flask import current_app
from sqlalchemy import func, or_

from qahub.core.exceptions import ConflictError, DomainError
from qahub.integrations.apps_script_gateway import (
    DEFAULT_SHEET_TAB,
    AppsScriptConfig,
    apps_script_gateway,
    generate_request_id,
)
from qahub.models import db
from qahub.models.base import utcnow
from qahub.models.prd_review import PRD_REVIEW_STATUSES, PrdReview
from qahub.services.admin_service import get_setting_value
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.helpers import commit_or_raise, parse_datetime

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "content", "ai_review", "comments")


def _gateway():
    return apps_script_gateway


# ═══════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════
def _setting(key):
    return get_setting_value(key) or current_app.config.get(key)


def load_config() -> AppsScriptConfig | None:
    """Current integration config, or None when no script URL is configured."""
    script_url = _setting("GOOGLE_SCRIPT_URL")
    if not script_url:
        return None
    return AppsScriptConfig(
        script_url=script_url,
        sheets_id=_setting("GOOGLE_SHEETS_ID"),
        confluence_url=_setting("CONFLUENCE_URL"),
        sheet_tab_name=_setting("GOOGLE_SHEETS_TAB_NAME") or DEFAULT_SHEET_TAB,
    )


def require_config(*, need_sheets=False) -> AppsScriptConfig:
    config = load_config()
    if config is None:
        raise DomainError("Google Apps Script URL is not configured", code="CONFIGURATION_MISSING")
    if need_sheets and not config.sheets_id:
        raise DomainError("Google Sheets ID is not configured", code="CONFIGURATION_MISSING")
    return config


# ═══════════════════════════════════════════════════════════════
# Gateway operations
# ═══════════════════════════════════════════════════════════════
def health_check() -> dict:
    return _gateway().health_check(require_config())


def test_review() -> dict:
    config = require_config()
    health = _gateway().health_check(config)
    if not health.get("success"):
        raise DomainError(
            health.get("message") or "Health check failed",
            code="HEALTH_CHECK_FAILED",
            status=503,
        )
    return _gateway().test_review(config)


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════
def statistics(*, tenant_id: int) -> dict:
    rows = (
        db.session.query(PrdReview.status, func.count(PrdReview.id))
        .filter(PrdReview.tenant_id == tenant_id)
        .group_by(PrdReview.status)
        .all()
    )
    by_status = dict(rows)
    return {
        "total": sum(by_status.values()),
        "drafts": by_status.get("DRAFT", 0),
        "processing": by_status.get("PROCESSING", 0),
        "completed": by_status.get("COMPLETED", 0),
        "finalized": by_status.get("FINALIZED", 0),
    }


def list_query(*, tenant_id: int, args):
    q = PrdReview.query_for_tenant(tenant_id)
    project_id = args.get("project_id", type=int)
    if project_id is not None:
        q = q.filter(PrdReview.project_id == project_id)
    status = args.get("status")
    if status:
        q = q.filter(PrdReview.status == status.upper())
    requester = args.get("requester_name")
    if requester:
        q = q.filter(PrdReview.requester_name.ilike(f"%{requester}%"))
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            PrdReview.title.ilike(like),
            PrdReview.request_id.ilike(like),
            PrdReview.requester_name.ilike(like),
        ))
    return q.order_by(PrdReview.created_at.desc(), PrdReview.id.desc())


def get_review(*, tenant_id: int, review_id: int) -> PrdReview:
    return get_scoped(PrdReview, review_id, resource="PrdReview", tenant_id=tenant_id)


# ═══════════════════════════════════════════════════════════════
# Create / update
# ═══════════════════════════════════════════════════════════════
def create_review(*, tenant_id: int, user_id: int, data: dict) -> PrdReview:
    """Submit to the reviewer, then store a DRAFT row. Failed submission → 502."""
    config = require_config()
    confluence_url = data.get("confluence_url") or config.confluence_url
    result = _gateway().submit_review_request(
        config,
        requester_name=data["requester_name"],
        title=data["title"],
        content=data["content"],
        confluence_url=confluence_url,
    )
    if not result.get("success"):
        logger.warning("PRD review submission failed: %s", result.get("message"))
        raise DomainError(
            result.get("message") or "Review submission failed",
            code="SUBMISSION_FAILED",
            status=502,
        )

    review = PrdReview(
        tenant_id=tenant_id,
        project_id=data.get("project_id"),
        request_id=result.get("request_id") or generate_request_id(),
        requester_name=data["requester_name"],
        title=data["title"],
        content=data["content"],
        confluence_url=confluence_url,
        status="DRAFT",
        review_metadata={"status_history": [{"status": "DRAFT", "at": utcnow().isoformat(), "by": user_id}]},
        created_by=user_id,
    )
    db.session.add(review)
    commit_or_raise("A review with this request id already exists", "REQUEST_ID_EXISTS")
    logger.info("PRD review submitted id=%s request_id=%s", review.id, review.request_id)
    return review


def update_review(*, tenant_id: int, review_id: int, user_id: int, data: dict) -> PrdReview:
    review = get_review(tenant_id=tenant_id, review_id=review_id)
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(review, field, data[field])

    metadata = dict(review.review_metadata or {})
    if "metadata" in data and isinstance(data["metadata"], dict):
        metadata.update(data["metadata"])

    new_status = data.get("status")
    if new_status and new_status != review.status:
        history = list(metadata.get("status_history") or [])
        history.append({
            "from": review.status,
            "status": new_status,
            "at": utcnow().isoformat(),
            "by": user_id,
        })
        metadata["status_history"] = history
        review.status = new_status
        if new_status == "FINALIZED":
            review.reviewed_by = user_id
            review.reviewed_at = utcnow()
    review.review_metadata = metadata

    commit_or_raise()
    logger.info("PRD review updated id=%s status=%s", review.id, review.status)
    return review


# ═══════════════════════════════════════════════════════════════
# Sheet sync
# ═══════════════════════════════════════════════════════════════
def _apply_sheet_row(review: PrdReview, row: dict, now):
    if row.get("title"):
        review.title = str(row["title"])[:500]
    if row.get("requester"):
        review.requester_name = str(row["requester"])[:255]
    if row.get("page_id") is not None:
        review.page_id = str(row["page_id"])[:100]
    if row.get("ai_review"):
        review.ai_review = str(row["ai_review"])
    if row.get("confluence_url"):
        review.confluence_url = str(row["confluence_url"])[:1000]
    status = str(row.get("status") or "DRAFT").upper()
    review.status = status if status in PRD_REVIEW_STATUSES else "DRAFT"
    review.synced_at = now


def sync_reviews(*, tenant_id: int, user_id=None) -> dict:
    """Pull the review sheet and upsert rows by ``request_id``. Returns ``{synced, failed}``."""
    config = require_config(need_sheets=True)
    result = _gateway().fetch_reviews_from_sheets(config)
    if not result.get("success"):
        raise DomainError(result.get("message") or "Failed to fetch reviews",
                          code="SYNC_FAILED", status=502)

    synced = failed = 0
    now = utcnow()
    for row in result.get("reviews", []):
        request_id = row.get("request_id")
        if not request_id:
            failed += 1
            continue
        request_id = str(request_id)
        try:
            with db.session.begin_nested():
                review = PrdReview.query.filter_by(request_id=request_id).first()
                if review is not None and review.tenant_id != tenant_id:
                    raise ConflictError("Request id belongs to another tenant", code="REQUEST_ID_EXISTS")
                if review is None:
                    review = PrdReview(
                        tenant_id=tenant_id,
                        request_id=request_id,
                        requester_name="Unknown",
                        title="Untitled review",
                        created_by=user_id,
                        review_metadata={},
                    )
                    created = parse_datetime(row.get("when"))
                    if created:
                        review.created_at = created
                    db.session.add(review)
                _apply_sheet_row(review, row, now)
            synced += 1
        except Exception:
            failed += 1
            logger.warning("PRD review sync failed for request_id=%s", request_id, exc_info=True)

    commit_or_raise()
    logger.info("PRD review sync finished synced=%d failed=%d", synced, failed)
    return {"synced": synced, "failed": failed}


def start_background_sync(*, tenant_id: int, user_id=None) -> threading.Thread:
    """Run ``sync_reviews`` in a daemon thread with its own app context."""
    require_config(need_sheets=True)
    app = current_app._get_current_object()

    def _run():
        with app.app_context():
            try:
                sync_reviews(tenant_id=tenant_id, user_id=user_id)
            except Exception:
                logger.exception("Background PRD review sync failed")
            finally:
                db.session.remove()

    thread = threading.Thread(target=_run, name="prd-review-sync", daemon=True)
    thread.start()
    logger.info("Background PRD review sync started tenant=%s", tenant_id)
    return thread
