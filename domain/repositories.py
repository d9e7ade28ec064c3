"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID
from datetime import date

from domain.entities import Guest, LoyaltyAccount, Reservation, RoomUnit, WaitlistEntry
from domain.enums import RoomType


class GuestRepository(ABC):
    """Repository interface for the guest directory"""

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[Guest]:
        """Find guest by email (case-insensitive)"""
        pass

    @abstractmethod
    async def save(self, guest: Guest) -> Guest:
        """Insert or update guest keyed by lower-cased email"""
        pass


class RoomRepository(ABC):
    """Repository interface for the room catalog"""

    @abstractmethod
    async def save(self, room: RoomUnit) -> RoomUnit:
        """Save room unit"""
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[RoomUnit]:
        """Find room unit by ID"""
        pass

    @abstractmethod
    async def find_by_type(self, room_type: RoomType) -> List[RoomUnit]:
        """Find units of a room type, ordered by room number"""
        pass

    @abstractmethod
    async def find_all(self) -> List[RoomUnit]:
        """Find all room units"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation; a colliding confirmation code is replaced on first save"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_confirmation_code(self, code: str) -> Optional[Reservation]:
        """Find reservation by confirmation code"""
        pass

    @abstractmethod
    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass

    @abstractmethod
    async def find_overlapping(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Non-cancelled reservations holding the room on any night of [check_in, check_out)"""
        pass

    @abstractmethod
    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        pass

    @abstractmethod
    async def delete(self, reservation_id: UUID) -> bool:
        """Delete reservation (rollback only)"""
        pass


class LoyaltyAccountRepository(ABC):
    """Repository interface for Loyalty Aggregate"""

    @abstractmethod
    async def save(self, account: LoyaltyAccount) -> LoyaltyAccount:
        """Save loyalty account"""
        pass

    @abstractmethod
    async def find_by_email_or_phone(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Optional[LoyaltyAccount]:
        """Find account by email (case-insensitive) or phone"""
        pass

    @abstractmethod
    async def find_by_loyalty_number(self, loyalty_number: str) -> Optional[LoyaltyAccount]:
        """Find account by loyalty number"""
        pass

    @abstractmethod
    async def find_by_guest_id(self, guest_id: UUID) -> Optional[LoyaltyAccount]:
        """Find account by guest ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[LoyaltyAccount]:
        """Find all accounts"""
        pass


class WaitlistRepository(ABC):
    """Repository interface for Waitlist Aggregate"""

    @abstractmethod
    async def save(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Save waitlist entry"""
        pass

    @abstractmethod
    async def find_by_id(self, waitlist_id: UUID) -> Optional[WaitlistEntry]:
        """Find waitlist entry by ID"""
        pass

    @abstractmethod
    async def find_active_by_room_type(self, room_type: RoomType) -> List[WaitlistEntry]:
        """Find active waitlist entries for a room type"""
        pass

    @abstractmethod
    async def find_all(self) -> List[WaitlistEntry]:
        """Find all waitlist entries"""
        pass

    @abstractmethod
    async def update(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Update waitlist entry"""
        pass
