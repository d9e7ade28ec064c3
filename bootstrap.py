"""Composition root: wires adapters and services into an Engine"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from application.inventory import InventoryAllocator
from application.loyalty import LoyaltyService
from application.services import ReservationService, WaitlistService
from domain.entities import RoomUnit
from domain.enums import RoomType
from domain.ports import ActivitySink
from domain.pricing import PricingEngine
from domain.repositories import ReservationRepository
from domain.value_objects import SeasonalWindow
from infrastructure.activity import LoggingActivitySink
from infrastructure.config import (
    Settings, build_booking_policy, build_loyalty_config, build_pricing_config,
)
from infrastructure.events import InMemoryAvailabilityNotifier
from infrastructure.repositories.in_memory_repositories import (
    InMemoryGuestRepository, InMemoryLoyaltyAccountRepository, InMemoryReservationRepository,
    InMemoryRoomRepository, InMemoryWaitlistRepository,
)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@dataclass
class Engine:
    """Every wired component of the reservation engine"""
    settings: Settings
    pricing: PricingEngine
    notifier: InMemoryAvailabilityNotifier
    activity: ActivitySink
    room_repo: InMemoryRoomRepository
    guest_repo: InMemoryGuestRepository
    reservation_repo: ReservationRepository
    loyalty_repo: InMemoryLoyaltyAccountRepository
    waitlist_repo: InMemoryWaitlistRepository
    allocator: InventoryAllocator
    loyalty: LoyaltyService
    reservations: ReservationService
    waitlist: WaitlistService

    async def add_room(self, room_number: str, room_type: RoomType, floor: int = 1) -> RoomUnit:
        return await self.room_repo.save(RoomUnit(room_number=room_number, room_type=room_type, floor=floor))


def build_engine(settings: Optional[Settings] = None,
                 seasonal_windows: Optional[Iterable[SeasonalWindow]] = None,
                 activity: Optional[ActivitySink] = None,
                 reservation_repo: Optional[ReservationRepository] = None) -> Engine:
    """Create the in-memory adapters and services and subscribe the waitlist matcher"""
    settings = settings or Settings()
    activity = activity or LoggingActivitySink()

    pricing = PricingEngine(build_pricing_config(settings, seasonal_windows))
    notifier = InMemoryAvailabilityNotifier()

    room_repo = InMemoryRoomRepository()
    guest_repo = InMemoryGuestRepository()
    reservation_repo = reservation_repo or InMemoryReservationRepository()
    loyalty_repo = InMemoryLoyaltyAccountRepository()
    waitlist_repo = InMemoryWaitlistRepository()

    allocator = InventoryAllocator(room_repo, reservation_repo, pricing, notifier, activity)
    loyalty = LoyaltyService(loyalty_repo, activity, build_loyalty_config(settings))
    reservations = ReservationService(
        reservation_repo, guest_repo, allocator, pricing, loyalty, activity,
        build_booking_policy(settings)
    )
    waitlist = WaitlistService(waitlist_repo, activity)
    notifier.subscribe(waitlist.on_room_available)

    return Engine(
        settings=settings,
        pricing=pricing,
        notifier=notifier,
        activity=activity,
        room_repo=room_repo,
        guest_repo=guest_repo,
        reservation_repo=reservation_repo,
        loyalty_repo=loyalty_repo,
        waitlist_repo=waitlist_repo,
        allocator=allocator,
        loyalty=loyalty,
        reservations=reservations,
        waitlist=waitlist
    )
