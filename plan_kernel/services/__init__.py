"""Kernel services: audit chain, sequences, event bus."""

from plan_kernel.services.auditor_service import AuditorService
from plan_kernel.services.event_bus import Event, EventPublisher, InMemoryEventBus
from plan_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditorService",
    "Event",
    "EventPublisher",
    "InMemoryEventBus",
    "SequenceService",
]
