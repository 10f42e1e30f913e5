"""
In-process publish/subscribe bus.

Workflows publish topics such as ``sites:updated`` after they change state;
presentation layers outside this package subscribe to refresh themselves.
Handler failures are logged and never reach the publisher.
"""

import threading
from typing import Any, Callable, Optional

from .audit_logger import AuditLogger
from .enums import EventType

COMPONENT = "EventBus"

Handler = Callable[[EventType, Any], None]


class EventBus:
    """Thread-safe topic → handlers registry."""

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._logger = logger
        self._lock = threading.Lock()
        self._handlers: dict[EventType, list[Handler]] = {}

    def subscribe(self, topic: EventType, handler: Handler) -> Callable[[], None]:
        """
        Register ``handler`` for ``topic``.

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: EventType, payload: Any = None) -> int:
        """
        Deliver ``payload`` to every handler of ``topic``.

        Returns:
            Number of handlers that completed without raising
        """
        with self._lock:
            handlers = list(self._handlers.get(topic, []))

        delivered = 0
        for handler in handlers:
            try:
                handler(topic, payload)
                delivered += 1
            except Exception as e:
                if self._logger:
                    self._logger.log_error(
                        COMPONENT,
                        f"Handler for {topic.value} failed",
                        error=e,
                    )
        return delivered

    def subscriber_count(self, topic: EventType) -> int:
        with self._lock:
            return len(self._handlers.get(topic, []))
