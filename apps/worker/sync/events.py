"""
In-process event bus for real-time sync notifications.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

SYNC_PROGRESS = "emr-sync-progress"
SYNC_COMPLETED = "emr-sync-completed"
SYNC_FAILED = "emr-sync-failed"

Handler = Callable[[str, dict[str, Any]], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        """Register *handler*; the returned callable unsubscribes it."""
        self._handlers[event_name].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[event_name]:
                self._handlers[event_name].remove(handler)

        return _unsubscribe

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event_name, ())):
            try:
                handler(event_name, payload)
            except Exception as exc:
                logger.exception(f"Event handler failed for {event_name}: {exc}")
