"""
Event bus for automation triggers.

Producers publish ``(topic, payload)`` pairs such as
``quarantine.threshold-reached``; subscribers register a handler for a topic
pattern.  Delivery is synchronous and in-process.  A handler that raises is
logged and skipped so one bad subscriber cannot block the others or the
producer.

Patterns:
    ``*``              every topic
    ``quarantine.*``   every topic under ``quarantine.``
    ``quarantine.created``  exactly that topic
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from plan_kernel.logging_config import get_logger
from plan_kernel.utils.hashing import to_json_safe

__all__ = [
    "Event",
    "EventHandler",
    "EventPublisher",
    "InMemoryEventBus",
]

logger = get_logger("services.event_bus")


@dataclass(frozen=True)
class Event:
    """
    One published event.

    Attributes:
        topic: Dot-separated type, e.g. ``quarantine.created``.
        payload: JSON-serialisable body.
        occurred_at: When the event was published (UTC).
        event_id: Unique event identifier.
    """

    topic: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, pattern: str) -> bool:
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            return self.topic.startswith(pattern[:-2] + ".")
        return self.topic == pattern


EventHandler = Callable[[Event], None]


@runtime_checkable
class EventPublisher(Protocol):
    """What the quarantine services need from an event bus."""

    def publish(self, topic: str, payload: dict[str, Any]) -> Event:
        ...


@dataclass
class _Subscription:
    id: str
    pattern: str
    handler: EventHandler


class InMemoryEventBus:
    """
    In-process publisher with wildcard subscriptions.

    Every published event is also kept in ``published`` so callers (and
    tests) can inspect what went out.

    Example::

        bus = InMemoryEventBus()
        bus.subscribe("quarantine.*", lambda e: print(e.topic))
        bus.publish("quarantine.created", {"quarantine_id": "..."})
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, _Subscription] = {}
        self.published: list[Event] = []

    def publish(self, topic: str, payload: dict[str, Any]) -> Event:
        """Record the event and deliver it to every matching handler."""
        event = Event(topic=topic, payload=to_json_safe(payload))
        self.published.append(event)
        logger.info(
            "event_published",
            extra={"topic": topic, "event_id": event.event_id},
        )

        for sub in list(self._subscriptions.values()):
            if not event.matches(sub.pattern):
                continue
            try:
                sub.handler(event)
            except Exception:
                logger.warning(
                    "event_handler_error",
                    extra={
                        "subscription_id": sub.id,
                        "topic": topic,
                        "event_id": event.event_id,
                    },
                    exc_info=True,
                )
        return event

    def subscribe(self, pattern: str, handler: EventHandler) -> str:
        """Register a handler; returns the subscription id."""
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        self._subscriptions[sub_id] = _Subscription(
            id=sub_id, pattern=pattern, handler=handler
        )
        return sub_id

    def unsubscribe(self, subscription_id: str) -> None:
        self._subscriptions.pop(subscription_id, None)

    def events_for(self, pattern: str) -> list[Event]:
        """Published events whose topic matches the pattern, oldest first."""
        return [event for event in self.published if event.matches(pattern)]

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)
