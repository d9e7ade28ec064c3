"""Outbound ports: activity log and availability notifications"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Awaitable, Callable, Optional
import logging

from domain.enums import RoomType

logger = logging.getLogger(__name__)

AvailabilityHandler = Callable[[RoomType, str, date], Awaitable[None]]


class ActivitySink(ABC):
    """Write-only activity log; callers must not depend on its success"""

    @abstractmethod
    async def record(
        self,
        actor: str,
        action: str,
        entity_type: str,
        entity_id: str,
        message: str
    ) -> None:
        pass


class AvailabilityNotifier(ABC):
    """Best-effort publish of room availability changes"""

    @abstractmethod
    async def publish(self, room_type: RoomType, room_number: str, available_from: date) -> None:
        pass

    @abstractmethod
    def subscribe(self, handler: AvailabilityHandler) -> None:
        pass


async def record_activity(
    sink: Optional[ActivitySink],
    actor: str,
    action: str,
    entity_type: str,
    entity_id: object,
    message: str
) -> None:
    """Send one activity to the sink, logging instead of raising on failure"""
    if sink is None:
        return
    try:
        await sink.record(actor, action, entity_type, str(entity_id), message)
    except Exception as e:
        logger.warning(f"Activity sink failed for {action} on {entity_type} {entity_id}: {e}")


async def publish_availability(
    notifier: Optional[AvailabilityNotifier],
    room_type: RoomType,
    room_number: str,
    available_from: date
) -> None:
    """Publish an availability change, logging instead of raising on failure"""
    if notifier is None:
        return
    try:
        await notifier.publish(room_type, room_number, available_from)
    except Exception as e:
        logger.warning(f"Availability notification failed for room {room_number}: {e}")
