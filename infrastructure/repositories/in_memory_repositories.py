"""In-Memory Repository Implementations"""
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date

from domain.repositories import (
    GuestRepository, LoyaltyAccountRepository, ReservationRepository,
    RoomRepository, WaitlistRepository,
)
from domain.entities import Guest, LoyaltyAccount, Reservation, RoomUnit, WaitlistEntry
from domain.enums import ReservationStatus, RoomType, WaitlistStatus
from domain.value_objects import ranges_overlap


class InMemoryGuestRepository(GuestRepository):
    """In-memory implementation of GuestRepository"""

    def __init__(self):
        self._storage: Dict[str, Guest] = {}

    async def find_by_email(self, email: str) -> Optional[Guest]:
        """Find guest by email"""
        if not email:
            return None
        return self._storage.get(email.strip().lower())

    async def save(self, guest: Guest) -> Guest:
        """Upsert guest; an existing entry keeps its ID"""
        key = guest.email.strip().lower()
        existing = self._storage.get(key)
        if existing and existing.guest_id != guest.guest_id:
            guest = guest.model_copy(update={"guest_id": existing.guest_id})
        self._storage[key] = guest
        return guest


class InMemoryRoomRepository(RoomRepository):
    """In-memory implementation of RoomRepository"""

    def __init__(self):
        self._storage: Dict[UUID, RoomUnit] = {}

    async def save(self, room: RoomUnit) -> RoomUnit:
        """Save room unit to memory"""
        self._storage[room.room_id] = room
        return room

    async def find_by_id(self, room_id: UUID) -> Optional[RoomUnit]:
        """Find room unit by ID"""
        return self._storage.get(room_id)

    async def find_by_type(self, room_type: RoomType) -> List[RoomUnit]:
        """Find room units of a type ordered by room number"""
        rooms = [r for r in self._storage.values() if r.room_type == room_type]
        return sorted(rooms, key=lambda r: r.room_number)

    async def find_all(self) -> List[RoomUnit]:
        """Find all room units"""
        return sorted(self._storage.values(), key=lambda r: r.room_number)


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Reservation] = {}

    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        if reservation.reservation_id not in self._storage:
            while self._code_in_use(reservation.confirmation_code, reservation.reservation_id):
                reservation.confirmation_code = Reservation.generate_confirmation_code()
        self._storage[reservation.reservation_id] = reservation
        return reservation

    def _code_in_use(self, code: str, reservation_id: UUID) -> bool:
        return any(
            r.confirmation_code == code and r.reservation_id != reservation_id
            for r in self._storage.values()
        )

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        return self._storage.get(reservation_id)

    async def find_by_confirmation_code(self, code: str) -> Optional[Reservation]:
        """Find reservation by confirmation code"""
        for reservation in self._storage.values():
            if reservation.confirmation_code == code:
                return reservation
        return None

    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        return [r for r in self._storage.values() if r.guest_id == guest_id]

    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        return list(self._storage.values())

    async def find_overlapping(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Find non-cancelled reservations holding the room on an overlapping night"""
        results = []
        for reservation in self._storage.values():
            if reservation.status == ReservationStatus.CANCELLED:
                continue
            if reservation.reservation_id == exclude_reservation_id:
                continue
            if not any(a.room_id == room_id for a in reservation.room_assignments):
                continue
            if ranges_overlap(reservation.check_in_date, reservation.check_out_date, check_in, check_out):
                results.append(reservation)
        return results

    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        if reservation.reservation_id in self._storage:
            self._storage[reservation.reservation_id] = reservation
            return reservation
        raise ValueError("Reservation not found")

    async def delete(self, reservation_id: UUID) -> bool:
        """Delete reservation"""
        if reservation_id in self._storage:
            del self._storage[reservation_id]
            return True
        return False


class InMemoryLoyaltyAccountRepository(LoyaltyAccountRepository):
    """In-memory implementation of LoyaltyAccountRepository"""

    def __init__(self):
        self._storage: Dict[UUID, LoyaltyAccount] = {}

    async def save(self, account: LoyaltyAccount) -> LoyaltyAccount:
        """Save loyalty account to memory"""
        self._storage[account.account_id] = account
        return account

    async def find_by_email_or_phone(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Optional[LoyaltyAccount]:
        """Find account by email first, then by phone"""
        if email:
            wanted = email.strip().lower()
            for account in self._storage.values():
                if account.email.lower() == wanted:
                    return account
        if phone:
            for account in self._storage.values():
                if account.phone and account.phone == phone:
                    return account
        return None

    async def find_by_loyalty_number(self, loyalty_number: str) -> Optional[LoyaltyAccount]:
        """Find account by loyalty number"""
        for account in self._storage.values():
            if account.loyalty_number == loyalty_number:
                return account
        return None

    async def find_by_guest_id(self, guest_id: UUID) -> Optional[LoyaltyAccount]:
        """Find account by guest ID"""
        for account in self._storage.values():
            if account.guest_id == guest_id:
                return account
        return None

    async def find_all(self) -> List[LoyaltyAccount]:
        """Find all accounts"""
        return list(self._storage.values())


class InMemoryWaitlistRepository(WaitlistRepository):
    """In-memory implementation of WaitlistRepository"""

    def __init__(self):
        self._storage: Dict[UUID, WaitlistEntry] = {}

    async def save(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Save waitlist entry to memory"""
        self._storage[waitlist_entry.waitlist_id] = waitlist_entry
        return waitlist_entry

    async def find_by_id(self, waitlist_id: UUID) -> Optional[WaitlistEntry]:
        """Find waitlist entry by ID"""
        return self._storage.get(waitlist_id)

    async def find_active_by_room_type(self, room_type: RoomType) -> List[WaitlistEntry]:
        """Find active waitlist entries for a room type"""
        return [
            e for e in self._storage.values()
            if e.room_type == room_type and e.status == WaitlistStatus.ACTIVE
        ]

    async def find_all(self) -> List[WaitlistEntry]:
        """Find all waitlist entries"""
        return list(self._storage.values())

    async def update(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Update waitlist entry"""
        if waitlist_entry.waitlist_id in self._storage:
            self._storage[waitlist_entry.waitlist_id] = waitlist_entry
            return waitlist_entry
        raise ValueError("Waitlist entry not found")
