"""
PRD Review Blueprint: product requirement reviews through Google Apps Script.

  GET    /api/v1/prd-reviews/health-check
  POST   /api/v1/prd-reviews/test-review
  GET    /api/v1/prd-reviews/statistics
  GET    /api/v1/prd-reviews                 POST /api/v1/prd-reviews
  GET    /api/v1/prd-reviews/<id>            PATCH /api/v1/prd-reviews/<id>
  POST   /api/v1/prd-reviews/sync
  POST   /api/v1/prd-reviews/background-sync
"""

import logging

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.core.exceptions import DomainError
from qahub.models.prd_review import PRD_REVIEW_STATUSES
from qahub.services import prd_review_service
from qahub.tenant import require_tenant
from qahub.utils.validation import Validator

logger = logging.getLogger(__name__)

prd_review_bp = Blueprint("prd_review_bp", __name__, url_prefix="/api/v1/prd-reviews")

REQUESTER_PATTERN = r"^[A-Za-z0-9 _.\-]+$"
CONTENT_MIN = 100
CONTENT_MAX = 50000


# ═══════════════════════════════════════════════════════════════
# Integration
# ═══════════════════════════════════════════════════════════════
@prd_review_bp.route("/health-check", methods=["GET"])
def health_check():
    result = prd_review_service.health_check()
    return data_response(result, 200 if result.get("success") else 503)


@prd_review_bp.route("/test-review", methods=["POST"])
def test_review():
    result = prd_review_service.test_review()
    if not result.get("success"):
        raise DomainError(result.get("message") or "Test review failed", code="SUBMISSION_FAILED", status=502)
    return data_response(result)


@prd_review_bp.route("/sync", methods=["POST"])
def sync_reviews():
    result = prd_review_service.sync_reviews(tenant_id=require_tenant(), user_id=current_user_id())
    return data_response(result)


@prd_review_bp.route("/background-sync", methods=["POST"])
def background_sync():
    prd_review_service.start_background_sync(tenant_id=require_tenant(), user_id=current_user_id())
    return data_response({"message": "Background sync started"}, 202)


# ═══════════════════════════════════════════════════════════════
# Reviews
# ═══════════════════════════════════════════════════════════════
@prd_review_bp.route("/statistics", methods=["GET"])
def statistics():
    return data_response(prd_review_service.statistics(tenant_id=require_tenant()))


@prd_review_bp.route("", methods=["GET"])
def list_reviews():
    return list_response(prd_review_service.list_query(tenant_id=require_tenant(), args=request.args))


@prd_review_bp.route("/<int:review_id>", methods=["GET"])
def get_review(review_id):
    return data_response(prd_review_service.get_review(tenant_id=require_tenant(), review_id=review_id).to_dict())


@prd_review_bp.route("", methods=["POST"])
def create_review():
    v = Validator(request.get_json(silent=True) or {})
    v.string("requester_name", required=True, max_length=255, pattern=REQUESTER_PATTERN,
             pattern_message="requester_name may only contain letters, digits, spaces, '-', '_' and '.'")
    v.string("title", required=True, max_length=500)
    v.string("content", required=True, min_length=CONTENT_MIN, max_length=CONTENT_MAX)
    v.url("confluence_url", max_length=1000, must_contain="atlassian.net")
    v.integer("project_id", min_value=1)
    review = prd_review_service.create_review(
        tenant_id=require_tenant(), user_id=current_user_id(), data=v.check(),
    )
    return data_response(review.to_dict(), 201)


@prd_review_bp.route("/<int:review_id>", methods=["PATCH"])
def update_review(review_id):
    v = Validator(request.get_json(silent=True) or {}, partial=True)
    v.string("title", required=True, max_length=500)
    v.string("content", max_length=CONTENT_MAX)
    v.choice("status", PRD_REVIEW_STATUSES)
    v.string("ai_review")
    v.string("comments")
    metadata = v.json("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        v.error("metadata", "metadata must be an object")
    review = prd_review_service.update_review(
        tenant_id=require_tenant(), review_id=review_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(review.to_dict())
