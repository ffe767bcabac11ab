"""
Event bus carrying run status events to observers.
"""

import inspect
import logging
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Type, Union

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


class EventBus:
    """
    Routes status events to listeners subscribed by event class name.

    Listeners may be plain functions or coroutine functions. A listener that
    raises is logged and, after repeated failures, unsubscribed; it never
    breaks the run that emitted the event.

    With ``keep_history`` the most recent ``max_history`` events are kept in
    ``events``; older ones are evicted. ``max_history=None`` keeps everything.
    """

    def __init__(
        self,
        keep_history: bool = True,
        max_listener_errors: int = 5,
        max_history: Optional[int] = 1000,
    ):
        self.events: Deque[Any] = deque(maxlen=max_history)
        self.listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._keep_history = keep_history
        self._listener_errors: Dict[str, int] = defaultdict(int)
        self._max_listener_errors = max_listener_errors

    @staticmethod
    def _type_name(event_type: Union[str, Type]) -> str:
        return event_type if isinstance(event_type, str) else event_type.__name__

    async def emit(self, event: Any) -> None:
        """
        Emit an event to its listeners and to wildcard listeners.

        Args:
            event: The event object to emit
        """
        if self._keep_history:
            self.events.append(event)

        event_type = type(event).__name__
        targets = [(event_type, l) for l in self.listeners.get(event_type, [])]
        targets += [(ALL_EVENTS, l) for l in self.listeners.get(ALL_EVENTS, [])]

        for key, listener in targets:
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                listener_id = f"{key}:{id(listener)}"
                self._listener_errors[listener_id] += 1
                logger.error(f"Error in event listener for {event_type}: {e}")

                if self._listener_errors[listener_id] >= self._max_listener_errors:
                    logger.warning(
                        f"Removing failing listener for {key} after {self._max_listener_errors} errors"
                    )
                    if listener in self.listeners[key]:
                        self.listeners[key].remove(listener)

    def subscribe(self, event_type: Union[str, Type], listener: Callable) -> None:
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event class or its name; ``"*"`` receives every event
            listener: Callable (sync or async) taking the event
        """
        key = self._type_name(event_type)
        if listener not in self.listeners[key]:
            self.listeners[key].append(listener)
            logger.debug(f"Subscribed listener to {key}")

    def unsubscribe(self, event_type: Union[str, Type], listener: Callable) -> None:
        key = self._type_name(event_type)
        if listener in self.listeners.get(key, []):
            self.listeners[key].remove(listener)
            logger.debug(f"Unsubscribed listener from {key}")

    def clear_listeners(self, event_type: Optional[Union[str, Type]] = None) -> None:
        """
        Clear listeners for a specific event type or all listeners.

        Args:
            event_type: Optional event type to clear. If None, clears all.
        """
        if event_type:
            self.listeners.pop(self._type_name(event_type), None)
        else:
            self.listeners.clear()
            self._listener_errors.clear()

    def clear_events(self) -> None:
        """Clear the event history."""
        self.events.clear()

    def get_event_count(self, event_type: Optional[Union[str, Type]] = None) -> int:
        if event_type:
            key = self._type_name(event_type)
            return sum(1 for e in self.events if type(e).__name__ == key)
        return len(self.events)

    def get_listener_count(self, event_type: Optional[Union[str, Type]] = None) -> int:
        if event_type:
            return len(self.listeners.get(self._type_name(event_type), []))
        return sum(len(listeners) for listeners in self.listeners.values())
