"""Domain Exceptions"""
from typing import Optional


class ReservationEngineError(Exception):
    """Base class for every failure raised by the reservation engine"""


class ValidationError(ReservationEngineError, ValueError):
    """Bad input detected before any mutation is attempted"""


class OccupancyExceeded(ValidationError):
    """Requested guests do not fit in the requested rooms"""

    def __init__(self, capacity: int, guests: int):
        self.capacity = capacity
        self.guests = guests
        super().__init__(
            f"Selected rooms can only accommodate {capacity} guests, but {guests} required"
        )


class InsufficientInventory(ReservationEngineError):
    """Fewer free units than requested for a room type and date range"""

    def __init__(self, room_type, available: int, requested: int):
        self.room_type = room_type
        self.available = available
        self.requested = requested
        super().__init__(
            f"Only {available} {room_type.display_name} room(s) available, but {requested} requested"
        )


class InvalidStatusTransition(ReservationEngineError):
    """Requested status change is not in the transition table"""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {current.value} to {requested.value}")


class InsufficientPoints(ReservationEngineError):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient points balance. Available: {available}, Requested: {requested}"
        )


class RedemptionCapExceeded(ReservationEngineError):
    def __init__(self, requested: int, cap: int):
        self.requested = requested
        self.cap = cap
        super().__init__(
            f"Exceeds maximum redemption limit of {cap} points per reservation (requested {requested})"
        )


class ConcurrencyConflict(ReservationEngineError):
    """A unit was taken by another operation between check and claim"""

    def __init__(self, message: str, room_number: Optional[str] = None):
        self.room_number = room_number
        super().__init__(message)
