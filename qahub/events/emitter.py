"""
QaHub
Domain event bus: process-local, synchronous fan-out.

Services emit an event after their transaction has committed; handlers run
in registration order on the calling thread. A failing handler is logged and
the remaining handlers still run, so the primary write is never affected.

Usage:
    from qahub.events import domain_events, DomainEvent, EventType

    domain_events.emit(DomainEvent(
        type=EventType.TEST_RUN_CREATED,
        aggregate_type="test_run",
        aggregate_id=run.id,
        data=run.to_dict(),
        user_id=g.user_id,
    ))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from qahub.models.base import utcnow

logger = logging.getLogger(__name__)

MAX_LISTENERS = 50


class EventType(str, Enum):
    TEST_RUN_CREATED = "test_run.created"
    TEST_RUN_UPDATED = "test_run.updated"
    TEST_RUN_DELETED = "test_run.deleted"
    TEST_RUN_RESULT_CREATED = "test_run_result.created"
    TEST_RUN_RESULT_UPDATED = "test_run_result.updated"
    TEST_RUN_RESULT_DELETED = "test_run_result.deleted"
    TEST_CASE_CREATED = "test_case.created"
    TEST_CASE_UPDATED = "test_case.updated"
    TEST_CASE_DELETED = "test_case.deleted"
    BUG_BUDGET_CREATED = "bug_budget.created"
    BUG_BUDGET_UPDATED = "bug_budget.updated"
    BUG_BUDGET_DELETED = "bug_budget.deleted"
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    REPOSITORY_CREATED = "repository.created"
    REPOSITORY_UPDATED = "repository.updated"


@dataclass
class DomainEvent:
    """One typed event; ``metadata`` always carries user_id and timestamp."""
    type: EventType
    aggregate_type: str
    aggregate_id: Any
    data: dict = field(default_factory=dict)
    user_id: int | None = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.type = EventType(self.type)
        self.metadata = {
            "user_id": self.user_id,
            "timestamp": utcnow().isoformat(),
            **(self.metadata or {}),
        }

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "data": self.data,
            "metadata": self.metadata,
        }


Handler = Callable[[DomainEvent], None]


class DomainEventEmitter:
    """Registry of handlers keyed by event type."""

    def __init__(self, max_listeners: int = MAX_LISTENERS) -> None:
        self.max_listeners = max_listeners
        self._handlers: dict[EventType, list[Handler]] = {}

    def on(self, event_type, handler: Handler) -> None:
        event_type = EventType(event_type)
        handlers = self._handlers.setdefault(event_type, [])
        if len(handlers) >= self.max_listeners:
            logger.warning(
                "Event %s has more than %d listeners; possible leak",
                event_type.value, self.max_listeners,
            )
        handlers.append(handler)

    def off(self, event_type, handler: Handler) -> bool:
        handlers = self._handlers.get(EventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def listener_count(self, event_type) -> int:
        return len(self._handlers.get(EventType(event_type), []))

    def clear(self) -> None:
        self._handlers.clear()

    def emit(self, event: DomainEvent) -> int:
        """Dispatch ``event`` to every handler. Returns how many succeeded."""
        handled = 0
        for handler in list(self._handlers.get(event.type, [])):
            try:
                handler(event)
                handled += 1
            except Exception:
                logger.error(
                    "Domain event handler %s failed for %s id=%s",
                    getattr(handler, "__name__", repr(handler)),
                    event.type.value, event.aggregate_id,
                    exc_info=True, extra={"event_type": event.type.value},
                )
        logger.debug("Emitted %s id=%s handlers=%d", event.type.value, event.aggregate_id, handled)
        return handled


# Process-wide bus used by services
domain_events = DomainEventEmitter()


def emit(event_type, aggregate_type, aggregate_id, data=None, user_id=None):
    """Shorthand used by services: build and emit on the process-wide bus."""
    return domain_events.emit(DomainEvent(
        type=event_type,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        data=data or {},
        user_id=user_id,
    ))
