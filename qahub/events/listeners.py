"""
QaHub
Read-model listeners.

    test_run.created / updated         → rebuild test_runs_view row
    test_run.deleted                   → drop test_runs_view row
    test_run_result.*                  → rebuild the row of data["test_run_id"]
    every event type                   → append an audit_events row

Each handler commits its own work; on failure it rolls back and re-raises
so the emitter logs it.
"""

import logging

from qahub.events.emitter import DomainEvent, EventType
from qahub.models import db
from qahub.models.audit import AuditEvent
from qahub.utils.change_logger import sanitize_for_change_log

logger = logging.getLogger(__name__)

_REGISTERED_FLAG = "_read_model_listeners_registered"


def _commit_or_rollback():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def refresh_run_view(event: DomainEvent):
    from qahub.services.test_runs_view_service import update_test_runs_view

    update_test_runs_view(int(event.aggregate_id))
    _commit_or_rollback()


def drop_run_view(event: DomainEvent):
    from qahub.services.test_runs_view_service import delete_test_runs_view

    delete_test_runs_view(int(event.aggregate_id))
    _commit_or_rollback()


def refresh_run_view_for_result(event: DomainEvent):
    from qahub.services.test_runs_view_service import update_test_runs_view

    run_id = (event.data or {}).get("test_run_id")
    if run_id is None:
        logger.warning("%s id=%s carries no test_run_id", event.type.value, event.aggregate_id)
        return
    update_test_runs_view(int(run_id))
    _commit_or_rollback()


def record_audit_event(event: DomainEvent):
    db.session.add(AuditEvent(
        event_type=event.type.value,
        aggregate_type=event.aggregate_type,
        aggregate_id=str(event.aggregate_id),
        user_id=event.metadata.get("user_id"),
        event_data=sanitize_for_change_log(event.data),
        event_metadata=sanitize_for_change_log(event.metadata),
    ))
    _commit_or_rollback()


def register_read_model_listeners(emitter) -> bool:
    """Attach the read-model handlers once. Returns False if already attached."""
    if getattr(emitter, _REGISTERED_FLAG, False):
        return False

    emitter.on(EventType.TEST_RUN_CREATED, refresh_run_view)
    emitter.on(EventType.TEST_RUN_UPDATED, refresh_run_view)
    emitter.on(EventType.TEST_RUN_DELETED, drop_run_view)
    for event_type in (
        EventType.TEST_RUN_RESULT_CREATED,
        EventType.TEST_RUN_RESULT_UPDATED,
        EventType.TEST_RUN_RESULT_DELETED,
    ):
        emitter.on(event_type, refresh_run_view_for_result)

    for event_type in EventType:
        emitter.on(event_type, record_audit_event)

    setattr(emitter, _REGISTERED_FLAG, True)
    logger.info("Read-model listeners registered")
    return True
