"""
Test case service: versioned, soft-deletable test cases.

Lifecycle:
    create   version = 1
    update   410 TEST_CASE_DELETED when soft-deleted,
             409 VERSION_CONFLICT when the client's version is stale,
             otherwise version += 1
    delete   soft delete (deleted_at / deleted_by), 410 when already deleted
    restore  400 TEST_CASE_NOT_DELETED when active
    move     400 ALREADY_IN_SUITE, 410 when deleted, version += 1

Every mutation writes an audit log row and a change log row, then emits a
``test_case.*`` domain event after the commit.
"""

import logging

from sqlalchemy import or_

from qahub.core.exceptions import DomainError, GoneError, VersionConflictError
from qahub.events import EventType, emit
from qahub.models import db
from qahub.models.audit import write_audit
from qahub.models.testing import Suite, TestCase
from qahub.services.helpers.listing import apply_sort, flag
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.change_logger import log_delete, log_insert, log_update
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title", "description", "labels", "automated", "priority", "data", "order",
    "regression", "epic_link", "linked_issue", "jira_key", "platform",
    "release_version", "severity", "defect_stage",
)
SORT_FIELDS = ("title", "priority", "order", "created_at", "updated_at")


def _record(action, tc, user_id, before=None, after=None):
    write_audit(action=action, model_type="TestCase", model_id=tc.id,
                user_id=user_id, old_values=before, new_values=after)


def get_test_case(*, tenant_id: int, repository_id: int, test_case_id: int, suite_id: int | None = None) -> TestCase:
    """Fetch a case including soft-deleted rows."""
    scopes = {"tenant_id": tenant_id, "repository_id": repository_id}
    if suite_id is not None:
        scopes["suite_id"] = suite_id
    return get_scoped(TestCase, test_case_id, **scopes)


def list_query(*, tenant_id: int, repository_id: int, suite_id: int, args):
    q = TestCase.query_for_tenant(tenant_id).filter(
        TestCase.repository_id == repository_id, TestCase.suite_id == suite_id,
    )
    if not flag(args, "include_deleted"):
        q = q.filter(TestCase.deleted_at.is_(None))

    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            TestCase.title.ilike(like),
            TestCase.description.ilike(like),
            TestCase.jira_key.ilike(like),
        ))

    for name in ("automated", "regression"):
        value = flag(args, name)
        if value is not None:
            q = q.filter(getattr(TestCase, name).is_(value))

    priority = args.get("priority", type=int)
    if priority is not None:
        q = q.filter(TestCase.priority == priority)
    for name in ("severity", "defect_stage"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(TestCase, name) == value)

    return apply_sort(q, TestCase, args, allowed=SORT_FIELDS, default="order", default_order="asc")


def create_test_case(*, tenant_id: int, repository_id: int, suite_id: int, user_id: int, data: dict) -> TestCase:
    get_scoped(Suite, suite_id, tenant_id=tenant_id, repository_id=repository_id)
    tc = TestCase(
        tenant_id=tenant_id,
        repository_id=repository_id,
        suite_id=suite_id,
        version=1,
        created_by=user_id,
        updated_by=user_id,
    )
    for field in EDITABLE_FIELDS:
        if data.get(field) is not None:
            setattr(tc, field, data[field])
    db.session.add(tc)
    db.session.flush()

    snapshot = tc.snapshot()
    _record("created", tc, user_id, after=snapshot)
    log_insert("test_cases", tc.id, snapshot, user_id=user_id)
    commit_or_raise()
    logger.info("Test case created id=%s suite=%s", tc.id, suite_id)
    emit(EventType.TEST_CASE_CREATED, "test_case", tc.id, tc.to_dict(), user_id)
    return tc


def update_test_case(*, tenant_id: int, repository_id: int, suite_id: int, test_case_id: int,
                     user_id: int, data: dict) -> TestCase:
    tc = get_test_case(tenant_id=tenant_id, repository_id=repository_id,
                       test_case_id=test_case_id, suite_id=suite_id)
    if tc.is_deleted:
        raise GoneError("Test case has been deleted", code="TEST_CASE_DELETED")
    expected = data.get("version")
    if expected is not None and expected != tc.version:
        raise VersionConflictError("TestCase", tc.version)

    before = tc.snapshot()
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(tc, field, data[field])
    tc.version = (tc.version or 1) + 1
    tc.updated_by = user_id
    after = tc.snapshot()

    _record("updated", tc, user_id, before, after)
    log_update("test_cases", tc.id, before, after, user_id=user_id)
    commit_or_raise()
    logger.info("Test case updated id=%s version=%s", tc.id, tc.version)
    emit(EventType.TEST_CASE_UPDATED, "test_case", tc.id, tc.to_dict(), user_id)
    return tc


def delete_test_case(*, tenant_id: int, repository_id: int, suite_id: int, test_case_id: int, user_id: int) -> TestCase:
    tc = get_test_case(tenant_id=tenant_id, repository_id=repository_id,
                       test_case_id=test_case_id, suite_id=suite_id)
    if tc.is_deleted:
        raise GoneError("Test case is already deleted", code="TEST_CASE_ALREADY_DELETED")
    before = tc.snapshot()
    tc.soft_delete(user_id)
    _record("deleted", tc, user_id, before=before)
    log_delete("test_cases", tc.id, before, user_id=user_id)
    commit_or_raise()
    logger.info("Test case soft-deleted id=%s by=%s", tc.id, user_id)
    emit(EventType.TEST_CASE_DELETED, "test_case", tc.id,
         {"id": tc.id, "suite_id": tc.suite_id, "repository_id": tc.repository_id}, user_id)
    return tc


def restore_test_case(*, tenant_id: int, repository_id: int, suite_id: int, test_case_id: int, user_id: int) -> TestCase:
    tc = get_test_case(tenant_id=tenant_id, repository_id=repository_id,
                       test_case_id=test_case_id, suite_id=suite_id)
    if not tc.is_deleted:
        raise DomainError("Test case is not deleted", code="TEST_CASE_NOT_DELETED")
    tc.restore()
    tc.updated_by = user_id
    _record("restored", tc, user_id, after=tc.snapshot())
    log_update("test_cases", tc.id, {"deleted": True}, {"deleted": False}, user_id=user_id)
    commit_or_raise()
    logger.info("Test case restored id=%s", tc.id)
    emit(EventType.TEST_CASE_UPDATED, "test_case", tc.id, tc.to_dict(), user_id)
    return tc


def move_test_case(*, tenant_id: int, repository_id: int, test_case_id: int, user_id: int,
                   target_suite_id: int) -> TestCase:
    tc = get_test_case(tenant_id=tenant_id, repository_id=repository_id, test_case_id=test_case_id)
    if tc.is_deleted:
        raise GoneError("Test case has been deleted", code="TEST_CASE_DELETED")
    target = get_scoped(Suite, target_suite_id, resource="TargetSuite",
                        tenant_id=tenant_id, repository_id=repository_id)
    if tc.suite_id == target.id:
        raise DomainError("Test case is already in this suite", code="ALREADY_IN_SUITE")

    before = tc.snapshot()
    tc.suite_id = target.id
    tc.version = (tc.version or 1) + 1
    tc.updated_by = user_id
    after = tc.snapshot()

    _record("moved", tc, user_id, before, after)
    log_update("test_cases", tc.id, before, after, user_id=user_id)
    commit_or_raise()
    logger.info("Test case moved id=%s to suite=%s", tc.id, target.id)
    emit(EventType.TEST_CASE_UPDATED, "test_case", tc.id, tc.to_dict(), user_id)
    return tc
