"""QaHub domain events: typed events, the process-wide bus and read-model listeners."""

from qahub.events.emitter import (  # noqa: F401
    DomainEvent,
    DomainEventEmitter,
    EventType,
    domain_events,
    emit,
)
from qahub.events.listeners import register_read_model_listeners  # noqa: F401
