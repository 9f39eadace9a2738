from typing import Callable, Dict, List
import inspect
import logging
logger = logging.getLogger(__name__)


class EventEmitter:
    """Simple event emitter for transfer events. Listeners may be sync or async."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners. A failing listener does not stop the others."""
        if event_name not in self._listeners:
            return

        for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
            try:
                result = callback(*args, **kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
