"""
Comment Blueprint: test case discussions, test run comments and attachments.

  GET|POST            /api/v1/test-cases/<tc>/comments
  GET|PATCH|DELETE    /api/v1/test-cases/<tc>/comments/<id>
  POST                /api/v1/test-cases/<tc>/comments/<id>/restore
  GET|POST            /api/v1/test-runs/<run>/comments
  GET|PATCH|DELETE    /api/v1/test-runs/<run>/comments/<id>
  GET|POST            /api/v1/test-runs/<run>/attachments
  DELETE              /api/v1/test-runs/<run>/attachments/<id>
"""

from flask import Blueprint, request

from qahub.blueprints import current_user_id, data_response, list_response
from qahub.services import comment_service
from qahub.tenant import require_tenant
from qahub.utils.validation import Validator

comment_bp = Blueprint("comment_bp", __name__, url_prefix="/api/v1")


def _case(test_case_id):
    return comment_service.get_case(tenant_id=require_tenant(), test_case_id=test_case_id)


def _run(test_run_id):
    return comment_service.get_run(tenant_id=require_tenant(), test_run_id=test_run_id)


# ═══════════════════════════════════════════════════════════════
# Test case comments
# ═══════════════════════════════════════════════════════════════
@comment_bp.route("/test-cases/<int:test_case_id>/comments", methods=["GET"])
def list_case_comments(test_case_id):
    tc = _case(test_case_id)
    q = comment_service.list_case_comments_query(test_case_id=tc.id, args=request.args)
    return list_response(q)


@comment_bp.route("/test-cases/<int:test_case_id>/comments/<int:comment_id>", methods=["GET"])
def get_case_comment(test_case_id, comment_id):
    tc = _case(test_case_id)
    return data_response(comment_service.get_case_comment(test_case_id=tc.id, comment_id=comment_id).to_dict())


@comment_bp.route("/test-cases/<int:test_case_id>/comments", methods=["POST"])
def create_case_comment(test_case_id):
    tc = _case(test_case_id)
    v = Validator(request.get_json(silent=True) or {})
    v.string("content", required=True, max_length=20000)
    v.integer("parent_id", min_value=1)
    v.boolean("is_resolved", default=False)
    comment = comment_service.create_case_comment(test_case_id=tc.id, user_id=current_user_id(), data=v.check())
    return data_response(comment.to_dict(), 201)


@comment_bp.route("/test-cases/<int:test_case_id>/comments/<int:comment_id>", methods=["PATCH", "PUT"])
def update_case_comment(test_case_id, comment_id):
    tc = _case(test_case_id)
    v = Validator(request.get_json(silent=True) or {}, partial=True)
    v.string("content", required=True, max_length=20000)
    v.boolean("is_resolved")
    comment = comment_service.update_case_comment(
        test_case_id=tc.id, comment_id=comment_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(comment.to_dict())


@comment_bp.route("/test-cases/<int:test_case_id>/comments/<int:comment_id>", methods=["DELETE"])
def delete_case_comment(test_case_id, comment_id):
    tc = _case(test_case_id)
    comment_service.delete_case_comment(test_case_id=tc.id, comment_id=comment_id, user_id=current_user_id())
    return data_response({"message": "Comment deleted"})


@comment_bp.route("/test-cases/<int:test_case_id>/comments/<int:comment_id>/restore", methods=["POST"])
def restore_case_comment(test_case_id, comment_id):
    tc = _case(test_case_id)
    comment = comment_service.restore_case_comment(
        test_case_id=tc.id, comment_id=comment_id, user_id=current_user_id(),
    )
    return data_response(comment.to_dict())


# ═══════════════════════════════════════════════════════════════
# Test run comments
# ═══════════════════════════════════════════════════════════════
@comment_bp.route("/test-runs/<int:test_run_id>/comments", methods=["GET"])
def list_run_comments(test_run_id):
    run = _run(test_run_id)
    return list_response(comment_service.list_run_comments_query(test_run_id=run.id, args=request.args))


@comment_bp.route("/test-runs/<int:test_run_id>/comments/<int:comment_id>", methods=["GET"])
def get_run_comment(test_run_id, comment_id):
    run = _run(test_run_id)
    return data_response(comment_service.get_run_comment(test_run_id=run.id, comment_id=comment_id).to_dict())


@comment_bp.route("/test-runs/<int:test_run_id>/comments", methods=["POST"])
def create_run_comment(test_run_id):
    run = _run(test_run_id)
    v = Validator(request.get_json(silent=True) or {})
    v.string("comments", required=True, max_length=20000)
    v.integer("test_case_id", min_value=1)
    comment = comment_service.create_run_comment(test_run_id=run.id, user_id=current_user_id(), data=v.check())
    return data_response(comment.to_dict(), 201)


@comment_bp.route("/test-runs/<int:test_run_id>/comments/<int:comment_id>", methods=["PATCH", "PUT"])
def update_run_comment(test_run_id, comment_id):
    run = _run(test_run_id)
    v = Validator(request.get_json(silent=True) or {}, partial=True)
    v.string("comments", required=True, max_length=20000)
    v.integer("test_case_id", min_value=1)
    comment = comment_service.update_run_comment(
        test_run_id=run.id, comment_id=comment_id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(comment.to_dict())


@comment_bp.route("/test-runs/<int:test_run_id>/comments/<int:comment_id>", methods=["DELETE"])
def delete_run_comment(test_run_id, comment_id):
    run = _run(test_run_id)
    comment_service.delete_run_comment(test_run_id=run.id, comment_id=comment_id, user_id=current_user_id())
    return data_response({"message": "Comment deleted"})


# ═══════════════════════════════════════════════════════════════
# Test run attachments
# ═══════════════════════════════════════════════════════════════
@comment_bp.route("/test-runs/<int:test_run_id>/attachments", methods=["GET"])
def list_attachments(test_run_id):
    run = _run(test_run_id)
    return list_response(comment_service.list_attachments_query(test_run_id=run.id, args=request.args))


@comment_bp.route("/test-runs/<int:test_run_id>/attachments", methods=["POST"])
def create_attachment(test_run_id):
    run = _run(test_run_id)
    v = Validator(request.get_json(silent=True) or {})
    v.url("url", required=True, max_length=1000)
    v.integer("test_case_id", required=True, min_value=1)
    v.integer("comment_id", min_value=1)
    attachment = comment_service.create_attachment(
        tenant_id=run.tenant_id, test_run_id=run.id, user_id=current_user_id(), data=v.check(),
    )
    return data_response(attachment.to_dict(), 201)


@comment_bp.route("/test-runs/<int:test_run_id>/attachments/<int:attachment_id>", methods=["DELETE"])
def delete_attachment(test_run_id, attachment_id):
    run = _run(test_run_id)
    comment_service.delete_attachment(test_run_id=run.id, attachment_id=attachment_id, user_id=current_user_id())
    return data_response({"message": "Attachment deleted"})
