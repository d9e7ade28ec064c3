"""
In-memory availability notifier - publish/subscribe for freed rooms
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional
import inspect
import logging

from domain.enums import RoomType
from domain.ports import AvailabilityHandler, AvailabilityNotifier

logger = logging.getLogger(__name__)


@dataclass
class RoomAvailabilityEvent:
    """A room of the given type can be booked again from available_from"""
    room_type: RoomType
    room_number: str
    available_from: date
    published_at: datetime = field(default_factory=datetime.utcnow)


class InMemoryAvailabilityNotifier(AvailabilityNotifier):
    """
    Delivers availability events to every subscribed handler in order.

    A failing handler is logged and does not stop the others; publish never
    raises because of a subscriber.
    """

    def __init__(self, history_size: int = 100):
        self._handlers: List[AvailabilityHandler] = []
        self._event_history: deque = deque(maxlen=history_size)

    def subscribe(self, handler: AvailabilityHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)
            logger.info(f"Handler {getattr(handler, '__name__', handler)} subscribed to room availability")

    def unsubscribe(self, handler: AvailabilityHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, room_type: RoomType, room_number: str, available_from: date) -> None:
        event = RoomAvailabilityEvent(
            room_type=room_type,
            room_number=room_number,
            available_from=available_from
        )
        self._event_history.append(event)

        handlers = list(self._handlers)
        if handlers:
            logger.info(
                f"Publishing availability of room {room_number} ({room_type.value}) "
                f"from {available_from} to {len(handlers)} handlers"
            )

        for handler in handlers:
            try:
                result = handler(room_type, room_number, available_from)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Availability handler {getattr(handler, '__name__', handler)} error "
                    f"for room {room_number}: {e}",
                    exc_info=True
                )

    def get_history(self, room_type: Optional[RoomType] = None, limit: int = 50) -> List[RoomAvailabilityEvent]:
        """Most recent events first"""
        history = list(self._event_history)
        if room_type:
            history = [e for e in history if e.room_type == room_type]
        return list(reversed(history))[:limit]

    def clear_history(self) -> None:
        self._event_history.clear()
