"""
EventBus for in-process pub/sub of memory engine events.

Usage:
    bus = EventBus()

    # Subscribe to specific event types
    bus.subscribe('memory.merged', lambda event: print(f"Merged into {event.primary_id}"))

    # Subscribe to all events
    bus.subscribe('*', lambda event: log_event(event))

    # MemoryService publishes on its bus
    service = MemoryService(database, oracle, event_bus=bus)
"""

from typing import Callable, Dict, List, Any, Optional
from threading import Lock
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Thread-safe in-process event bus.

    Supports:
    - subscribe(event_type, callback): Register callbacks for specific event types
    - publish(event): Emit events to all matching subscribers
    - Wildcard subscription: subscribe('*', callback) receives all events
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}
        self._lock = Lock()

    def subscribe(self, event_type: str, callback: Callable[[Any], None]) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event type to listen for (e.g., 'memory.stored'), or '*' for all
            callback: Called with the event object
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)
            logger.debug(f"Subscribed to {event_type}: {getattr(callback, '__name__', 'lambda')}")

    def unsubscribe(self, event_type: str, callback: Callable[[Any], None]) -> bool:
        """
        Unsubscribe a callback from an event type.

        Returns:
            True if callback was found and removed, False otherwise
        """
        with self._lock:
            callbacks = self._subscribers.get(event_type)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[event_type]
                logger.debug(f"Unsubscribed from {event_type}")
                return True
        return False

    def publish(self, event: Any) -> None:
        """
        Publish an event to specific then wildcard subscribers.

        Subscriber exceptions are logged and do not reach the publisher.
        """
        event_type = getattr(event, "event_type", None)
        if event_type is None:
            logger.warning(f"Event missing 'event_type' attribute: {type(event).__name__}")
            return

        # Copy so callbacks run without holding the lock
        with self._lock:
            callbacks = self._subscribers.get(event_type, []).copy()
            callbacks += self._subscribers.get('*', []).copy()

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in subscriber callback for {event_type}: {e}", exc_info=True)

        logger.debug(f"Published {event_type} to {len(callbacks)} subscribers")

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def subscriber_count(self, event_type: Optional[str] = None) -> int:
        with self._lock:
            if event_type:
                return len(self._subscribers.get(event_type, []))
            return sum(len(subs) for subs in self._subscribers.values())


_global_bus = None


def get_event_bus() -> EventBus:
    """Get or create the process-wide EventBus."""
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus


def reset_event_bus() -> None:
    """Replace the process-wide EventBus with a fresh one (mainly for tests)."""
    global _global_bus
    _global_bus = EventBus()


__all__ = ['EventBus', 'get_event_bus', 'reset_event_bus']
