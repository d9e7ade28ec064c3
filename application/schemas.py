"""Application Schemas - Request DTOs"""
from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from domain.enums import ReservationSource, RoomType, StaffRole
from domain.value_objects import AddOnSelection, GuestDetails, RoomSelection


class BookingRequest(BaseModel):
    """Create booking request DTO"""
    guest: GuestDetails
    check_in: date
    check_out: date
    adults: int = Field(ge=1)
    children: int = Field(ge=0, default=0)
    rooms: List[RoomSelection] = []
    add_ons: List[AddOnSelection] = []
    source: ReservationSource = Field(default=ReservationSource.ADMIN, description="Kiosk bookings are confirmed immediately")
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    discount_role: Optional[StaffRole] = None
    points_to_redeem: int = Field(default=0, ge=0)
    enroll_in_loyalty: bool = False
    special_requests: Optional[str] = None
    actor: str = "SYSTEM"

    def requested_room_types(self) -> List[RoomType]:
        """One entry per requested unit, in request order"""
        types: List[RoomType] = []
        for selection in self.rooms:
            types.extend([selection.room_type] * selection.quantity)
        return types

