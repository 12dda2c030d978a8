import threading
from typing import Type, Callable, List, Dict, Any
from photobooth.domain.events import Event

class EventBus:
    """A synchronous event bus shared by concurrently running jobs."""

    def __init__(self):
        self._subscribers: Dict[Type[Event], List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[Event], callback: Callable[[Any], None]):
        """Subscribes a callback to a specific event type."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: Event):
        """Publishes an event to all interested subscribers."""
        with self._lock:
            callbacks = list(self._subscribers.get(type(event), []))
        for callback in callbacks:
            callback(event)
