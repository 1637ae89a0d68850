"""
In-process domain event bus.

The core publishes:
- "alert.raised"     payload: AlertResponse dict
- "proof.responded"  payload: {proof_id, order_id, decision, responded_at}

Notification dispatchers (email, Slack, ...) subscribe. Publishing happens
after the producing transaction has committed, and a failing handler is
logged without affecting the producer or other handlers.
"""
import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ALERT_RAISED = "alert.raised"
PROOF_RESPONDED = "proof.responded"


class EventBus:
    def __init__(self):
        self._handlers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: str, handler: Callable[[Any], None]):
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"[EVENT] Subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable[[Any], None]):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self):
        self._handlers.clear()

    def publish(self, event_type: str, data: Any) -> int:
        """Deliver to every handler; returns how many handlers succeeded."""
        handlers = list(self._handlers.get(event_type, []))
        logger.info(f"[EVENT] Publishing {event_type} handlers={len(handlers)}")
        delivered = 0
        for handler in handlers:
            try:
                handler(data)
                delivered += 1
            except Exception:
                logger.exception(f"[EVENT] Handler {getattr(handler, '__name__', handler)!r} failed for {event_type}")
        return delivered


# Process-wide bus
bus = EventBus()
