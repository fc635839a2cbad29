"""
Test plan service: ordered selections of test cases inside a repository.

Adding cases:
  - every id must be an active case of the tenant → INVALID_TEST_CASES
  - every case must belong to the plan's repository → TEST_CASES_NOT_IN_REPOSITORY
  - new cases are appended after the current maximum order; duplicates skipped
A plan with runs cannot be deleted → TEST_PLAN_HAS_RUNS.
"""

import logging

from sqlalchemy import func, or_

from qahub.core.exceptions import DomainError, NotFoundError
from qahub.models import db
from qahub.models.testing import TestCase, TestPlan, TestPlanTestCase, TestRun
from qahub.services.helpers.listing import apply_sort
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.change_logger import log_delete, log_insert, log_update
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

PLAN_FIELDS = ("title", "description", "status", "start_date", "end_date")
SORT_FIELDS = ("title", "status", "start_date", "created_at", "updated_at")


def _snapshot(plan):
    return {f: getattr(plan, f) for f in PLAN_FIELDS}


def get_plan(*, tenant_id: int, repository_id: int, plan_id: int) -> TestPlan:
    return get_scoped(TestPlan, plan_id, tenant_id=tenant_id, repository_id=repository_id)


def list_query(*, tenant_id: int, repository_id: int, args):
    q = TestPlan.query_for_tenant(tenant_id).filter(TestPlan.repository_id == repository_id)
    status = args.get("status")
    if status:
        q = q.filter(TestPlan.status == status)
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(TestPlan.title.ilike(like), TestPlan.description.ilike(like)))
    return apply_sort(q, TestPlan, args, allowed=SORT_FIELDS)


def create_plan(*, tenant_id: int, project_id: int, repository_id: int, user_id: int, data: dict) -> TestPlan:
    plan = TestPlan(
        tenant_id=tenant_id,
        project_id=project_id,
        repository_id=repository_id,
        title=data["title"],
        description=data.get("description"),
        status=data.get("status") or "draft",
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
        created_by=user_id,
        updated_by=user_id,
    )
    db.session.add(plan)
    db.session.flush()
    if data.get("test_case_ids"):
        _append_cases(plan, data["test_case_ids"], tenant_id=tenant_id)
    log_insert("test_plans", plan.id, _snapshot(plan), user_id=user_id)
    commit_or_raise()
    logger.info("Test plan created id=%s repository=%s", plan.id, repository_id)
    return plan


def update_plan(*, tenant_id: int, repository_id: int, plan_id: int, user_id: int, data: dict) -> TestPlan:
    plan = get_plan(tenant_id=tenant_id, repository_id=repository_id, plan_id=plan_id)
    before = _snapshot(plan)
    for field in PLAN_FIELDS:
        if field in data:
            setattr(plan, field, data[field])
    plan.updated_by = user_id
    log_update("test_plans", plan.id, before, _snapshot(plan), user_id=user_id)
    commit_or_raise()
    return plan


def delete_plan(*, tenant_id: int, repository_id: int, plan_id: int, user_id: int) -> None:
    plan = get_plan(tenant_id=tenant_id, repository_id=repository_id, plan_id=plan_id)
    runs = TestRun.query.filter_by(test_plan_id=plan.id).count()
    if runs:
        raise DomainError(
            "Test plan has test runs and cannot be deleted",
            code="TEST_PLAN_HAS_RUNS",
            details={"test_runs": runs},
        )
    log_delete("test_plans", plan.id, _snapshot(plan), user_id=user_id)
    db.session.delete(plan)
    commit_or_raise()
    logger.info("Test plan deleted id=%s", plan_id)


# ── Plan membership ──────────────────────────────────────────────────────

def _append_cases(plan, test_case_ids, *, tenant_id) -> int:
    ids = list(dict.fromkeys(test_case_ids))
    cases = (
        TestCase.query_active()
        .filter(TestCase.id.in_(ids), TestCase.tenant_id == tenant_id)
        .all()
    ) if ids else []
    if len(cases) != len(ids):
        found = {c.id for c in cases}
        raise DomainError(
            "One or more test cases are invalid or deleted",
            code="INVALID_TEST_CASES",
            details={"invalid_ids": [i for i in ids if i not in found]},
        )
    foreign = [c.id for c in cases if c.repository_id != plan.repository_id]
    if foreign:
        raise DomainError(
            "Test cases must belong to the plan's repository",
            code="TEST_CASES_NOT_IN_REPOSITORY",
            details={"invalid_ids": foreign},
        )

    existing = {pc.test_case_id for pc in plan.plan_cases.all()}
    max_order = (
        db.session.query(func.max(TestPlanTestCase.order))
        .filter(TestPlanTestCase.test_plan_id == plan.id)
        .scalar()
    )
    order = max_order if max_order is not None else -1
    added = 0
    for tc_id in ids:
        if tc_id in existing:
            continue
        order += 1
        db.session.add(TestPlanTestCase(test_plan_id=plan.id, test_case_id=tc_id, order=order))
        added += 1
    db.session.flush()
    return added


def add_test_cases(*, tenant_id: int, repository_id: int, plan_id: int, test_case_ids) -> tuple[TestPlan, int]:
    plan = get_plan(tenant_id=tenant_id, repository_id=repository_id, plan_id=plan_id)
    added = _append_cases(plan, test_case_ids, tenant_id=tenant_id)
    commit_or_raise()
    logger.info("Added %d test cases to plan=%s", added, plan.id)
    return plan, added


def _plan_case(plan, test_case_id):
    link = TestPlanTestCase.query.filter_by(test_plan_id=plan.id, test_case_id=test_case_id).first()
    if link is None:
        raise NotFoundError("TestPlanTestCase", test_case_id, code="TEST_CASE_NOT_IN_PLAN")
    return link


def remove_test_case(*, tenant_id: int, repository_id: int, plan_id: int, test_case_id: int) -> None:
    plan = get_plan(tenant_id=tenant_id, repository_id=repository_id, plan_id=plan_id)
    db.session.delete(_plan_case(plan, test_case_id))
    commit_or_raise()


def reorder_test_case(*, tenant_id: int, repository_id: int, plan_id: int, test_case_id: int, order: int):
    plan = get_plan(tenant_id=tenant_id, repository_id=repository_id, plan_id=plan_id)
    link = _plan_case(plan, test_case_id)
    link.order = order
    commit_or_raise()
    return link
