"""
Process-wide publish/subscribe for workflow lifecycle events.

Delivery is best-effort and at-most-once: events are routed by workflow id
(``global`` when absent) to the handlers subscribed at publish time. Nothing is
buffered for late subscribers.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from workflow_types import WorkflowEvent

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global"

EventHandler = Callable[[WorkflowEvent], None]


class WorkflowEventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[str, List[EventHandler]] = {}

    def publish(self, event: WorkflowEvent) -> int:
        """Deliver ``event`` to every current subscriber of its channel.

        Returns the number of handlers that received it. A handler that raises
        is logged and skipped; the remaining handlers still run.
        """
        channel = event.workflow_id or GLOBAL_CHANNEL
        with self._lock:
            handlers = list(self._handlers.get(channel, ()))

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception("Event handler failed on channel %s", channel)
        return delivered

    def subscribe(self, workflow_id: Optional[str], handler: EventHandler) -> Callable[[], None]:
        """Register ``handler``; the returned callable unsubscribes it (idempotent)."""
        channel = workflow_id or GLOBAL_CHANNEL
        with self._lock:
            self._handlers.setdefault(channel, []).append(handler)

        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            with self._lock:
                if removed:
                    return
                removed = True
                handlers = self._handlers.get(channel)
                if handlers and handler in handlers:
                    handlers.remove(handler)
                if not handlers:
                    self._handlers.pop(channel, None)

        return unsubscribe

    def subscriber_count(self, workflow_id: Optional[str] = None) -> int:
        with self._lock:
            return len(self._handlers.get(workflow_id or GLOBAL_CHANNEL, ()))


events_bus = WorkflowEventBus()
