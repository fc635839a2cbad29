"""
Test run result service.

One result per (run, test case). A case that was soft-deleted or lives in
another repository is still recorded, flagged ``is_valid = False`` and
reported back as a warning. ``executed_at`` stays null for skipped results.

Every mutation writes an AuditLog row (the source of ``/history``) and emits
a ``test_run_result.*`` event whose ``data["test_run_id"]`` refreshes the
run's read-model row.
"""

import logging

from qahub.core.exceptions import ConflictError, NotFoundError
from qahub.events import EventType, emit
from qahub.models import db
from qahub.models.audit import AuditLog, write_audit
from qahub.models.base import utcnow
from qahub.models.testing import TestCase, TestRunResult
from qahub.services.helpers.listing import apply_date_range
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

RESULT_FIELDS = (
    "status", "execution_time", "error_message", "stack_trace", "screenshots", "logs",
    "defect_found_at_stage", "defect_severity", "bug_ticket_url", "retry_count", "executed_at",
)


def _validity(run, test_case):
    """(is_valid, warning) for recording ``test_case`` inside ``run``."""
    if test_case.is_deleted:
        return False, {"code": "INVALID_TEST_CASE", "message": "Test case has been deleted"}
    if run.repository_id is not None and test_case.repository_id != run.repository_id:
        return False, {"code": "INVALID_TEST_CASE", "message": "Test case is not in the run's repository"}
    return True, None


def _event_data(result):
    return {**result.to_dict(), "test_run_id": result.test_run_id}


def get_result(*, test_run_id: int, result_id: int) -> TestRunResult:
    return get_scoped(TestRunResult, result_id, resource="TestRunResult", test_run_id=test_run_id)


def list_query(*, test_run_id: int, args):
    q = TestRunResult.query.filter(TestRunResult.test_run_id == test_run_id)
    test_case_id = args.get("test_case_id", type=int)
    if test_case_id is not None:
        q = q.filter(TestRunResult.test_case_id == test_case_id)
    for name in ("status", "defect_found_at_stage"):
        value = args.get(name)
        if value:
            q = q.filter(getattr(TestRunResult, name) == value)
    q = apply_date_range(q, TestRunResult.executed_at, args)
    return q.order_by(TestRunResult.created_at.desc(), TestRunResult.id.desc())


def create_result(*, run, user_id: int, data: dict) -> tuple[TestRunResult, dict | None]:
    test_case = TestCase.query.filter_by(id=data["test_case_id"], tenant_id=run.tenant_id).first()
    if test_case is None:
        raise NotFoundError(resource="TestCase", resource_id=data["test_case_id"], tenant_id=run.tenant_id)
    if TestRunResult.query.filter_by(test_run_id=run.id, test_case_id=test_case.id).first():
        raise ConflictError("A result for this test case already exists in the run",
                            code="RESULT_ALREADY_EXISTS")

    is_valid, warning = _validity(run, test_case)
    result = TestRunResult(
        test_run_id=run.id,
        test_case_id=test_case.id,
        is_valid=is_valid,
        executed_by=user_id,
    )
    for field in RESULT_FIELDS:
        if data.get(field) is not None:
            setattr(result, field, data[field])
    result.retry_count = result.retry_count or 0
    result.executed_at = None if result.status == "skipped" else (data.get("executed_at") or utcnow())

    db.session.add(result)
    db.session.flush()
    write_audit(action="created", model_type="TestRunResult", model_id=result.id,
                user_id=user_id, new_values=result.snapshot())
    commit_or_raise("A result for this test case already exists in the run", "RESULT_ALREADY_EXISTS")
    if warning:
        logger.warning("Result id=%s recorded for invalid test case %s", result.id, test_case.id)
    logger.info("Result created id=%s run=%s status=%s", result.id, run.id, result.status)
    emit(EventType.TEST_RUN_RESULT_CREATED, "test_run_result", result.id, _event_data(result), user_id)
    return result, warning


def update_result(*, test_run_id: int, result_id: int, user_id: int, data: dict) -> TestRunResult:
    result = get_result(test_run_id=test_run_id, result_id=result_id)
    before = result.snapshot()
    for field in RESULT_FIELDS:
        if field in data:
            setattr(result, field, data[field])
    if result.status == "skipped":
        result.executed_at = None
    elif "status" in data and result.executed_at is None:
        result.executed_at = utcnow()
    result.executed_by = user_id
    write_audit(action="updated", model_type="TestRunResult", model_id=result.id,
                user_id=user_id, old_values=before, new_values=result.snapshot())
    commit_or_raise()
    logger.info("Result updated id=%s status=%s", result.id, result.status)
    emit(EventType.TEST_RUN_RESULT_UPDATED, "test_run_result", result.id, _event_data(result), user_id)
    return result


def delete_result(*, test_run_id: int, result_id: int, user_id: int) -> None:
    result = get_result(test_run_id=test_run_id, result_id=result_id)
    before = result.snapshot()
    write_audit(action="deleted", model_type="TestRunResult", model_id=result.id,
                user_id=user_id, old_values=before)
    db.session.delete(result)
    commit_or_raise()
    logger.info("Result deleted id=%s run=%s", result_id, test_run_id)
    emit(EventType.TEST_RUN_RESULT_DELETED, "test_run_result", result_id,
         {"id": result_id, "test_run_id": test_run_id}, user_id)


def history_query(result_id: int):
    return (
        AuditLog.query.filter_by(model_type="TestRunResult", model_id=result_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    )


def history_entry(log: AuditLog) -> dict:
    return {
        **log.to_dict(),
        "old_status": (log.old_values or {}).get("status"),
        "new_status": (log.new_values or {}).get("status"),
    }
