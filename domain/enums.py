"""Domain Enums"""
from decimal import Decimal
from enum import Enum


class RoomType(str, Enum):
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"
    DELUXE = "DELUXE"
    PENTHOUSE = "PENTHOUSE"

    @property
    def display_name(self) -> str:
        return _ROOM_TYPE_SPECS[self][0]

    @property
    def max_occupancy(self) -> int:
        """Maximum guests a single unit of this type can hold"""
        return _ROOM_TYPE_SPECS[self][1]

    @property
    def base_rate(self) -> Decimal:
        """Base nightly rate before multipliers"""
        return _ROOM_TYPE_SPECS[self][2]


_ROOM_TYPE_SPECS = {
    RoomType.SINGLE: ("Single Room", 2, Decimal("100.00")),
    RoomType.DOUBLE: ("Double Room", 4, Decimal("150.00")),
    RoomType.DELUXE: ("Deluxe Room", 2, Decimal("250.00")),
    RoomType.PENTHOUSE: ("Penthouse Suite", 2, Decimal("500.00")),
}


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"
    CLEANING = "CLEANING"
    MAINTENANCE = "MAINTENANCE"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"


class ReservationSource(str, Enum):
    KIOSK = "KIOSK"
    ADMIN = "ADMIN"


class AddOnPricingModel(str, Enum):
    PER_NIGHT = "PER_NIGHT"
    PER_PERSON = "PER_PERSON"
    PER_PERSON_PER_NIGHT = "PER_PERSON_PER_NIGHT"


class AddOnType(str, Enum):
    WIFI = "WIFI"
    BREAKFAST = "BREAKFAST"
    PARKING = "PARKING"
    SPA = "SPA"

    @property
    def display_name(self) -> str:
        return _ADD_ON_SPECS[self][0]

    @property
    def base_price(self) -> Decimal:
        return _ADD_ON_SPECS[self][1]

    @property
    def pricing_model(self) -> AddOnPricingModel:
        return _ADD_ON_SPECS[self][2]


_ADD_ON_SPECS = {
    AddOnType.WIFI: ("Wi-Fi", Decimal("15.00"), AddOnPricingModel.PER_NIGHT),
    AddOnType.BREAKFAST: ("Breakfast", Decimal("25.00"), AddOnPricingModel.PER_PERSON_PER_NIGHT),
    AddOnType.PARKING: ("Parking", Decimal("20.00"), AddOnPricingModel.PER_NIGHT),
    AddOnType.SPA: ("Spa Package", Decimal("75.00"), AddOnPricingModel.PER_PERSON),
}


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class LoyaltyTransactionType(str, Enum):
    EARN = "EARN"
    REDEEM = "REDEEM"
    BONUS = "BONUS"

    @property
    def is_credit(self) -> bool:
        return self in (LoyaltyTransactionType.EARN, LoyaltyTransactionType.BONUS)


class LoyaltyTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"

    @property
    def threshold(self) -> int:
        """Lifetime points needed to reach this tier"""
        return _TIER_SPECS[self][0]

    @property
    def earn_multiplier(self) -> Decimal:
        return _TIER_SPECS[self][1]

    @classmethod
    def for_lifetime_points(cls, lifetime_points: int) -> "LoyaltyTier":
        """Highest tier whose threshold has been reached"""
        for tier in (cls.PLATINUM, cls.GOLD, cls.SILVER):
            if lifetime_points >= tier.threshold:
                return tier
        return cls.BRONZE


_TIER_SPECS = {
    LoyaltyTier.BRONZE: (0, Decimal("1.0")),
    LoyaltyTier.SILVER: (10000, Decimal("1.25")),
    LoyaltyTier.GOLD: (25000, Decimal("1.5")),
    LoyaltyTier.PLATINUM: (50000, Decimal("2.0")),
}


class StaffRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"


class WaitlistStatus(str, Enum):
    ACTIVE = "ACTIVE"
    NOTIFIED = "NOTIFIED"
    CONVERTED = "CONVERTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Priority(int, Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4
