"""Inventory Allocator - proves rooms are free and claims them

Claims are serialized per room type: callers take ``lock_room_types`` for
every type they touch, in sorted order, and keep it until the reservation
holding the claimed units has been persisted. Overlap is checked against the
reservation store, not against the unit status, so a unit RESERVED for other
dates remains bookable.
"""
import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Dict, Iterable, List, Optional
from uuid import UUID
import logging

from pydantic import BaseModel

from domain.entities import Reservation, RoomAssignment, RoomUnit
from domain.enums import RoomStatus, RoomType
from domain.exceptions import ConcurrencyConflict, InsufficientInventory, OccupancyExceeded
from domain.ports import ActivitySink, AvailabilityNotifier, publish_availability, record_activity
from domain.pricing import PricingEngine
from domain.repositories import ReservationRepository, RoomRepository

logger = logging.getLogger(__name__)


class RoomClaim(BaseModel):
    """A unit taken for a reservation plus the status it had before"""
    room: RoomUnit
    previous_status: RoomStatus
    assignment: RoomAssignment


class InventoryAllocator:
    """Service for room availability and assignment"""

    def __init__(self,
                 room_repo: RoomRepository,
                 reservation_repo: ReservationRepository,
                 pricing: PricingEngine,
                 notifier: Optional[AvailabilityNotifier] = None,
                 activity: Optional[ActivitySink] = None):
        self.room_repo = room_repo
        self.reservation_repo = reservation_repo
        self.pricing = pricing
        self.notifier = notifier
        self.activity = activity
        self._locks: Dict[RoomType, asyncio.Lock] = {}

    # ==================== LOCKING ====================
    def room_type_lock(self, room_type: RoomType) -> asyncio.Lock:
        if room_type not in self._locks:
            self._locks[room_type] = asyncio.Lock()
        return self._locks[room_type]

    @asynccontextmanager
    async def lock_room_types(self, room_types: Iterable[RoomType]) -> AsyncIterator[None]:
        """Hold the locks of all given types, acquired in a fixed order"""
        ordered = sorted(set(room_types), key=lambda t: t.value)
        async with AsyncExitStack() as stack:
            for room_type in ordered:
                await stack.enter_async_context(self.room_type_lock(room_type))
            yield

    # ==================== QUERIES ====================
    async def is_unit_available(
        self,
        room: RoomUnit,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> bool:
        if room.is_under_maintenance():
            return False
        overlapping = await self.reservation_repo.find_overlapping(
            room.room_id, check_in, check_out, exclude_reservation_id
        )
        return not overlapping

    async def find_available(
        self,
        room_type: RoomType,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[RoomUnit]:
        """Units of the type free on every night of [check_in, check_out), by room number"""
        rooms = await self.room_repo.find_by_type(room_type)
        available = []
        for room in rooms:
            if await self.is_unit_available(room, check_in, check_out, exclude_reservation_id):
                available.append(room)
        return available

    async def availability_by_type(self, check_in: date, check_out: date) -> Dict[RoomType, int]:
        return {
            room_type: len(await self.find_available(room_type, check_in, check_out))
            for room_type in RoomType
        }

    # ==================== GUEST DISTRIBUTION ====================
    @staticmethod
    def distribute_guests(total_guests: int, room_types: List[RoomType]) -> List[int]:
        """Spread guests evenly over rooms, each room within its occupancy and holding at least one"""
        capacity = sum(t.max_occupancy for t in room_types)
        if total_guests > capacity:
            raise OccupancyExceeded(capacity, total_guests)

        counts = [1] * len(room_types)
        remaining = total_guests - len(room_types)
        while remaining > 0:
            for index, room_type in enumerate(room_types):
                if remaining == 0:
                    break
                if counts[index] < room_type.max_occupancy:
                    counts[index] += 1
                    remaining -= 1
        return counts

    # ==================== CLAIM & RELEASE ====================
    async def assign(
        self,
        reservation: Reservation,
        room_type: RoomType,
        quantity: int,
        check_in: date,
        check_out: date,
        guests_per_room: List[int],
        actor: str = "SYSTEM"
    ) -> List[RoomClaim]:
        """
        Claim quantity units of a type for the reservation.

        Must run under lock_room_types for room_type. Either every unit is
        claimed or InsufficientInventory is raised with nothing changed.
        """
        available = await self.find_available(room_type, check_in, check_out, reservation.reservation_id)
        if len(available) < quantity:
            raise InsufficientInventory(room_type, len(available), quantity)

        rate = self.pricing.average_nightly_rate(room_type, check_in, check_out)
        claims: List[RoomClaim] = []
        try:
            for room, guests in zip(available[:quantity], guests_per_room):
                claims.append(await self._claim(reservation, room, rate, guests, check_in, check_out))
        except Exception:
            await self.restore(claims)
            raise

        for claim in claims:
            reservation.add_room_assignment(claim.assignment)
            await record_activity(
                self.activity, actor, "ROOM_ASSIGNED", "Room", claim.room.room_number,
                f"Room {claim.room.room_number} assigned to reservation {reservation.confirmation_code}"
            )
        return claims

    async def _claim(
        self,
        reservation: Reservation,
        room: RoomUnit,
        rate: Decimal,
        guests: int,
        check_in: date,
        check_out: date
    ) -> RoomClaim:
        current = await self.room_repo.find_by_id(room.room_id) or room
        if not await self.is_unit_available(current, check_in, check_out, reservation.reservation_id):
            raise ConcurrencyConflict(
                f"Room {current.room_number} was taken by another booking",
                room_number=current.room_number
            )
        previous_status = current.status
        current.mark_reserved()
        await self.room_repo.save(current)
        return RoomClaim(
            room=current,
            previous_status=previous_status,
            assignment=RoomAssignment(
                room_id=current.room_id,
                room_number=current.room_number,
                room_type=current.room_type,
                nightly_rate=rate,
                guest_count=guests
            )
        )

    async def restore(self, claims: List[RoomClaim]) -> None:
        """Put claimed units back to their previous status"""
        for claim in reversed(claims):
            claim.room.status = claim.previous_status
            await self.room_repo.save(claim.room)

    async def occupy(self, assignment: RoomAssignment) -> Optional[RoomUnit]:
        room = await self.room_repo.find_by_id(assignment.room_id)
        if room is None:
            return None
        if room.is_under_maintenance():
            logger.warning(f"Room {room.room_number} is under maintenance; status left unchanged")
            return room
        room.mark_occupied()
        return await self.room_repo.save(room)

    async def release(
        self,
        assignment: RoomAssignment,
        via_checkout: bool = False,
        available_from: Optional[date] = None,
        actor: str = "SYSTEM"
    ) -> Optional[RoomUnit]:
        """Free a unit (CLEANING after check-out) and announce it; units under maintenance keep their status"""
        room = await self.room_repo.find_by_id(assignment.room_id)
        if room is None:
            logger.warning(f"Cannot release unknown room {assignment.room_number}")
            return None

        if room.is_under_maintenance():
            logger.info(f"Room {room.room_number} released while under maintenance; not announced")
            await record_activity(
                self.activity, actor, "ROOM_RELEASED", "Room", room.room_number,
                f"Room {room.room_number} released, still {room.status.value}"
            )
            return room

        if via_checkout:
            room.mark_cleaning()
        else:
            room.mark_available()
        await self.room_repo.save(room)

        await record_activity(
            self.activity, actor, "ROOM_RELEASED", "Room", room.room_number,
            f"Room {room.room_number} is now {room.status.value}"
        )
        await publish_availability(
            self.notifier, room.room_type, room.room_number, available_from or date.today()
        )
        return room
