"""
Engine configuration
Read from HOTEL_* environment variables or a .env file
"""
from decimal import Decimal
from typing import Iterable, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from application.loyalty import LoyaltyConfig
from application.services import BookingPolicy
from domain.pricing import PricingConfig
from domain.value_objects import SeasonalWindow


class Settings(BaseSettings):
    """Engine settings"""

    # Pricing
    TAX_RATE: Decimal = Decimal("0.13")
    WEEKDAY_MULTIPLIER: Decimal = Decimal("1.00")
    WEEKEND_MULTIPLIER: Decimal = Decimal("1.20")

    # Loyalty
    LOYALTY_EARN_RATE: Decimal = Decimal("1")
    LOYALTY_POINTS_PER_DOLLAR: int = 100
    LOYALTY_MAX_REDEMPTION_POINTS: int = 10000
    LOYALTY_WELCOME_BONUS: int = 100

    # Booking rules
    MAX_STAY_NIGHTS: int = 30
    MAX_ADVANCE_BOOKING_DAYS: int = 365
    ADMIN_DISCOUNT_CAP: Decimal = Decimal("15")
    MANAGER_DISCOUNT_CAP: Decimal = Decimal("30")

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="HOTEL_",
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


def build_pricing_config(settings: Settings,
                         seasonal_windows: Optional[Iterable[SeasonalWindow]] = None) -> PricingConfig:
    return PricingConfig(
        weekday_multiplier=settings.WEEKDAY_MULTIPLIER,
        weekend_multiplier=settings.WEEKEND_MULTIPLIER,
        seasonal_windows=list(seasonal_windows or []),
        tax_rate=settings.TAX_RATE
    )


def build_loyalty_config(settings: Settings) -> LoyaltyConfig:
    return LoyaltyConfig(
        earn_rate=settings.LOYALTY_EARN_RATE,
        points_per_dollar=settings.LOYALTY_POINTS_PER_DOLLAR,
        max_redemption_points=settings.LOYALTY_MAX_REDEMPTION_POINTS,
        welcome_bonus_points=settings.LOYALTY_WELCOME_BONUS
    )


def build_booking_policy(settings: Settings) -> BookingPolicy:
    return BookingPolicy(
        max_stay_nights=settings.MAX_STAY_NIGHTS,
        max_advance_days=settings.MAX_ADVANCE_BOOKING_DAYS,
        admin_discount_cap=settings.ADMIN_DISCOUNT_CAP,
        manager_discount_cap=settings.MANAGER_DISCOUNT_CAP
    )
