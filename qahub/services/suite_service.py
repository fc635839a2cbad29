"""
Suite service: folder tree of test cases inside a repository.

Parent rules:
  - the parent must live in the same repository
  - a suite cannot be its own parent          → INVALID_PARENT
  - a suite cannot move under its descendants → CIRCULAR_REFERENCE
Delete refuses while children or active test cases remain → SUITE_NOT_EMPTY.
"""

import logging

from qahub.core.exceptions import DomainError
from qahub.models import db
from qahub.models.testing import Suite, TestCase
from qahub.services.helpers.scoped_queries import get_scoped
from qahub.utils.change_logger import log_delete, log_insert, log_update
from qahub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

SUITE_FIELDS = ("title", "description", "parent_id", "order")


def _snapshot(suite):
    return {f: getattr(suite, f) for f in SUITE_FIELDS}


def get_suite(*, tenant_id: int, repository_id: int, suite_id: int) -> Suite:
    return get_scoped(Suite, suite_id, tenant_id=tenant_id, repository_id=repository_id)


def list_suites_query(*, tenant_id: int, repository_id: int, args):
    q = Suite.query_for_tenant(tenant_id).filter(Suite.repository_id == repository_id)
    if "parent_id" in args:
        raw = args.get("parent_id")
        if raw in ("", "null", "none"):
            q = q.filter(Suite.parent_id.is_(None))
        else:
            try:
                q = q.filter(Suite.parent_id == int(raw))
            except ValueError:
                q = q.filter(Suite.parent_id.is_(None))
    return q.order_by(Suite.order.asc(), Suite.id.asc())


def suite_tree(*, tenant_id: int, repository_id: int) -> list[dict]:
    """All suites of the repository nested under their parents, ordered."""
    suites = (
        Suite.query_for_tenant(tenant_id)
        .filter(Suite.repository_id == repository_id)
        .order_by(Suite.order.asc(), Suite.id.asc())
        .all()
    )
    nodes = {s.id: {**s.to_dict(), "children": []} for s in suites}
    roots = []
    for s in suites:
        node = nodes[s.id]
        parent = nodes.get(s.parent_id)
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)
    return roots


def _check_parent(*, tenant_id, repository_id, suite_id, parent_id):
    if parent_id is None:
        return
    if suite_id is not None and parent_id == suite_id:
        raise DomainError("A suite cannot be its own parent", code="INVALID_PARENT")
    parent = get_scoped(Suite, parent_id, resource="ParentSuite",
                        tenant_id=tenant_id, repository_id=repository_id)
    if suite_id is None:
        return
    # Walk up from the new parent; meeting the suite itself means a cycle.
    seen = set()
    node = parent
    while node is not None and node.id not in seen:
        if node.id == suite_id:
            raise DomainError("Suite cannot be moved under its own descendant", code="CIRCULAR_REFERENCE")
        seen.add(node.id)
        node = db.session.get(Suite, node.parent_id) if node.parent_id else None


def create_suite(*, tenant_id: int, repository_id: int, user_id: int, data: dict) -> Suite:
    _check_parent(tenant_id=tenant_id, repository_id=repository_id,
                  suite_id=None, parent_id=data.get("parent_id"))
    suite = Suite(
        tenant_id=tenant_id,
        repository_id=repository_id,
        parent_id=data.get("parent_id"),
        title=data["title"],
        description=data.get("description"),
        order=data.get("order") or 0,
        created_by=user_id,
        updated_by=user_id,
    )
    db.session.add(suite)
    db.session.flush()
    log_insert("suites", suite.id, _snapshot(suite), user_id=user_id)
    commit_or_raise()
    logger.info("Suite created id=%s repository=%s", suite.id, repository_id)
    return suite


def update_suite(*, tenant_id: int, repository_id: int, suite_id: int, user_id: int, data: dict) -> Suite:
    suite = get_suite(tenant_id=tenant_id, repository_id=repository_id, suite_id=suite_id)
    if "parent_id" in data:
        _check_parent(tenant_id=tenant_id, repository_id=repository_id,
                      suite_id=suite.id, parent_id=data["parent_id"])
    before = _snapshot(suite)
    for field in SUITE_FIELDS:
        if field in data:
            setattr(suite, field, data[field])
    suite.updated_by = user_id
    log_update("suites", suite.id, before, _snapshot(suite), user_id=user_id)
    commit_or_raise()
    return suite


def delete_suite(*, tenant_id: int, repository_id: int, suite_id: int, user_id: int) -> None:
    suite = get_suite(tenant_id=tenant_id, repository_id=repository_id, suite_id=suite_id)
    children = suite.children.count()
    cases = TestCase.query_active().filter(TestCase.suite_id == suite.id).count()
    if children or cases:
        raise DomainError(
            "Suite still contains child suites or test cases",
            code="SUITE_NOT_EMPTY",
            details={"child_suites": children, "test_cases": cases},
        )
    log_delete("suites", suite.id, _snapshot(suite), user_id=user_id)
    db.session.delete(suite)
    commit_or_raise()
    logger.info("Suite deleted id=%s repository=%s", suite_id, repository_id)
