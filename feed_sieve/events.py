"""Event notification for feed_sieve.

Components that want to report progress (state changes, new views,
rule changes) take a FeedEvents instance instead of writing to shared
globals. Listener errors are logged and never reach the emitter.
"""

import logging
from typing import Any, Callable, Dict, List


logger = logging.getLogger(__name__)

Listener = Callable[[str, Dict[str, Any]], None]

STATE_CHANGED = "state_changed"
VIEW_UPDATED = "view_updated"
RULES_CHANGED = "rules_changed"


class FeedEvents:
    """A minimal synchronous publish/subscribe hub."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, name: str, **payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(name, payload)
            except Exception as e:
                logger.error(f"Event listener failed for {name}: {e}", exc_info=True)
