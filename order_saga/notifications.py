"""Notification sink for order events.

Delivery (email, SMS) belongs to another service; this module only hands
events over. Provides get_sink() / set_sink() to swap implementations:
- InMemoryNotificationSink for development and testing
- LoggingNotificationSink when no delivery service is wired
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List

from order_saga.models import OrderEvent

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    pass


class NotificationSink(ABC):
    """Abstract interface for order event consumers."""

    @abstractmethod
    def publish(self, event: OrderEvent) -> None:
        """Hand the event over for asynchronous delivery. May raise."""
        ...


class InMemoryNotificationSink(NotificationSink):
    """Sink that records events in memory for test assertions."""

    def __init__(self):
        self.events: List[OrderEvent] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def publish(self, event: OrderEvent) -> None:
        if not self.should_succeed:
            raise NotificationDeliveryError(self.failure_reason)
        self.events.append(event)

    def reset(self):
        self.events.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"


class LoggingNotificationSink(NotificationSink):
    def publish(self, event: OrderEvent) -> None:
        logger.info(
            "order event %s: order=%s owner=%s status=%s at=%s",
            event.kind.value,
            event.order_id,
            event.owner_id,
            event.status.value,
            event.timestamp.isoformat(),
        )


def emit(sink: NotificationSink, event: OrderEvent) -> bool:
    """Best-effort publish. Failures are logged and never reach the caller."""
    try:
        sink.publish(event)
        return True
    except Exception:
        logger.warning(
            "Dropping %s event for order %s", event.kind.value, event.order_id, exc_info=True
        )
        return False


_current_sink: NotificationSink | None = None


def get_sink() -> NotificationSink:
    """Return the current sink. Defaults to LoggingNotificationSink."""
    global _current_sink
    if _current_sink is None:
        _current_sink = LoggingNotificationSink()
    return _current_sink


def set_sink(sink: NotificationSink) -> None:
    global _current_sink
    _current_sink = sink


def reset_sink() -> None:
    global _current_sink
    _current_sink = None
