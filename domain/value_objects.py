"""Domain Value Objects"""
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from domain.enums import AddOnType, RoomType

CENT = Decimal("0.01")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Convert to Decimal without going through binary float artifacts"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_money(value: Numeric) -> Decimal:
    """The single rounding policy: half-up to two decimal places"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class DateRange(BaseModel):
    """Value Object for a half-open stay range [check_in, check_out)"""
    model_config = ConfigDict(frozen=True)

    check_in: date
    check_out: date

    @model_validator(mode="after")
    def check_out_after_check_in(self) -> "DateRange":
        if self.check_out <= self.check_in:
            raise ValueError("Check-out must be after check-in")
        return self

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def each_night(self) -> Iterator[date]:
        """Yield every charged night; the check-out day is never included"""
        current = self.check_in
        while current < self.check_out:
            yield current
            current += timedelta(days=1)

    def overlaps(self, other: "DateRange") -> bool:
        return self.check_in < other.check_out and other.check_in < self.check_out


def ranges_overlap(a: date, b: date, c: date, d: date) -> bool:
    """[a, b) and [c, d) share at least one night"""
    return a < d and c < b


class GuestCount(BaseModel):
    """Value Object for guest count"""
    model_config = ConfigDict(frozen=True)

    adults: int = Field(ge=1)
    children: int = Field(ge=0, default=0)

    @property
    def total(self) -> int:
        return self.adults + self.children


class SeasonalWindow(BaseModel):
    """Closed date interval with its own price multiplier"""
    model_config = ConfigDict(frozen=True)

    name: str
    start_date: date
    end_date: date
    multiplier: Decimal = Field(gt=0)

    @model_validator(mode="after")
    def end_not_before_start(self) -> "SeasonalWindow":
        if self.end_date < self.start_date:
            raise ValueError("Seasonal window end date cannot precede its start date")
        return self

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class RoomSelection(BaseModel):
    """Requested quantity of one room type"""
    model_config = ConfigDict(frozen=True)

    room_type: RoomType
    quantity: int = Field(ge=0)


class AddOnSelection(BaseModel):
    """Requested add-on; quantity defaults to the add-on's pricing model"""
    model_config = ConfigDict(frozen=True)

    add_on_type: AddOnType
    quantity: Optional[int] = Field(default=None, ge=1)


class GuestDetails(BaseModel):
    """Guest identity captured at booking time"""
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    @field_validator("first_name", "last_name", "email")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()
