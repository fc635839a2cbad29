"""
Comment service: test case discussions, test run comments and attachments.

Only the author of a comment (or the uploader of an attachment) may change
or remove it; anyone else gets 403 FORBIDDEN. Test case comments are soft
deleted and can be restored.
"""

import logging

from qahub.core.exceptions import DomainError, ForbiddenError, GoneError
from qahub.models import db
from qahub.models.testing import (
    TestCase,
    TestCaseComment,
    TestRun,
    TestRunAttachment,
    TestRunComment,
)
from qahub.services.helpers.listing import flag
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def _ensure_author(owner_id, user_id, what="comment"):
    if owner_id != user_id:
        raise ForbiddenError(f"Only the author can modify this {what}", code="FORBIDDEN")


# ═══════════════════════════════════════════════════════════════
# Test case comments
# ═══════════════════════════════════════════════════════════════
def get_case(*, tenant_id: int, test_case_id: int) -> TestCase:
    return get_scoped(TestCase, test_case_id, tenant_id=tenant_id)


def get_case_comment(*, test_case_id: int, comment_id: int) -> TestCaseComment:
    return get_scoped(TestCaseComment, comment_id, resource="Comment", test_case_id=test_case_id)


def list_case_comments_query(*, test_case_id: int, args):
    q = TestCaseComment.query.filter(TestCaseComment.test_case_id == test_case_id)
    if not flag(args, "include_deleted"):
        q = q.filter(TestCaseComment.deleted_at.is_(None))
    if "parent_id" in args:
        raw = args.get("parent_id")
        if raw in ("", "null", "none"):
            q = q.filter(TestCaseComment.parent_id.is_(None))
        else:
            q = q.filter(TestCaseComment.parent_id == args.get("parent_id", type=int))
    resolved = flag(args, "is_resolved")
    if resolved is not None:
        q = q.filter(TestCaseComment.is_resolved.is_(resolved))
    return q.order_by(TestCaseComment.created_at.asc(), TestCaseComment.id.asc())


def create_case_comment(*, test_case_id: int, user_id: int, data: dict) -> TestCaseComment:
    parent_id = data.get("parent_id")
    if parent_id is not None:
        get_scoped(TestCaseComment, parent_id, resource="ParentComment", test_case_id=test_case_id)
    comment = TestCaseComment(
        test_case_id=test_case_id,
        user_id=user_id,
        parent_id=parent_id,
        content=data["content"],
        is_resolved=bool(data.get("is_resolved") or False),
    )
    db.session.add(comment)
    commit_or_raise()
    logger.info("Comment created id=%s test_case=%s", comment.id, test_case_id)
    return comment


def update_case_comment(*, test_case_id: int, comment_id: int, user_id: int, data: dict) -> TestCaseComment:
    comment = get_case_comment(test_case_id=test_case_id, comment_id=comment_id)
    if comment.is_deleted:
        raise GoneError("Comment has been deleted", code="COMMENT_DELETED")
    _ensure_author(comment.user_id, user_id)
    for field in ("content", "is_resolved"):
        if field in data:
            setattr(comment, field, data[field])
    commit_or_raise()
    return comment


def delete_case_comment(*, test_case_id: int, comment_id: int, user_id: int) -> None:
    comment = get_case_comment(test_case_id=test_case_id, comment_id=comment_id)
    if comment.is_deleted:
        raise GoneError("Comment has been deleted", code="COMMENT_DELETED")
    _ensure_author(comment.user_id, user_id)
    comment.soft_delete(user_id)
    commit_or_raise()
    logger.info("Comment soft-deleted id=%s", comment.id)


def restore_case_comment(*, test_case_id: int, comment_id: int, user_id: int) -> TestCaseComment:
    comment = get_case_comment(test_case_id=test_case_id, comment_id=comment_id)
    _ensure_author(comment.user_id, user_id)
    if not comment.is_deleted:
        raise DomainError("Comment is not deleted", code="COMMENT_NOT_DELETED")
    comment.restore()
    commit_or_raise()
    return comment


# ═══════════════════════════════════════════════════════════════
# Test run comments
# ═══════════════════════════════════════════════════════════════
def get_run(*, tenant_id: int, test_run_id: int) -> TestRun:
    return get_scoped(TestRun, test_run_id, tenant_id=tenant_id)


def list_run_comments_query(*, test_run_id: int, args):
    q = TestRunComment.query.filter(TestRunComment.test_run_id == test_run_id)
    test_case_id = args.get("test_case_id", type=int)
    if test_case_id is not None:
        q = q.filter(TestRunComment.test_case_id == test_case_id)
    return q.order_by(TestRunComment.created_at.desc(), TestRunComment.id.desc())


def get_run_comment(*, test_run_id: int, comment_id: int) -> TestRunComment:
    return get_scoped(TestRunComment, comment_id, resource="Comment", test_run_id=test_run_id)


def create_run_comment(*, test_run_id: int, user_id: int, data: dict) -> TestRunComment:
    comment = TestRunComment(
        test_run_id=test_run_id,
        test_case_id=data.get("test_case_id"),
        user_id=user_id,
        comments=data["comments"],
    )
    db.session.add(comment)
    commit_or_raise()
    return comment


def update_run_comment(*, test_run_id: int, comment_id: int, user_id: int, data: dict) -> TestRunComment:
    comment = get_run_comment(test_run_id=test_run_id, comment_id=comment_id)
    _ensure_author(comment.user_id, user_id)
    for field in ("comments", "test_case_id"):
        if field in data:
            setattr(comment, field, data[field])
    commit_or_raise()
    return comment


def delete_run_comment(*, test_run_id: int, comment_id: int, user_id: int) -> None:
    comment = get_run_comment(test_run_id=test_run_id, comment_id=comment_id)
    _ensure_author(comment.user_id, user_id)
    db.session.delete(comment)
    commit_or_raise()


# ═══════════════════════════════════════════════════════════════
# Test run attachments
# ═══════════════════════════════════════════════════════════════
def list_attachments_query(*, test_run_id: int, args):
    q = TestRunAttachment.query.filter(TestRunAttachment.test_run_id == test_run_id)
    test_case_id = args.get("test_case_id", type=int)
    if test_case_id is not None:
        q = q.filter(TestRunAttachment.test_case_id == test_case_id)
    return q.order_by(TestRunAttachment.created_at.desc(), TestRunAttachment.id.desc())


def create_attachment(*, tenant_id: int, test_run_id: int, user_id: int, data: dict) -> TestRunAttachment:
    get_scoped(TestCase, data["test_case_id"], tenant_id=tenant_id)
    if data.get("comment_id") is not None:
        get_run_comment(test_run_id=test_run_id, comment_id=data["comment_id"])
    attachment = TestRunAttachment(
        test_run_id=test_run_id,
        test_case_id=data["test_case_id"],
        comment_id=data.get("comment_id"),
        url=data["url"],
        uploaded_by=user_id,
    )
    db.session.add(attachment)
    commit_or_raise()
    logger.info("Attachment added id=%s run=%s", attachment.id, test_run_id)
    return attachment


def delete_attachment(*, test_run_id: int, attachment_id: int, user_id: int) -> None:
    attachment = get_scoped(TestRunAttachment, attachment_id, resource="Attachment", test_run_id=test_run_id)
    _ensure_author(attachment.uploaded_by, user_id, what="attachment")
    db.session.delete(attachment)
    commit_or_raise()
