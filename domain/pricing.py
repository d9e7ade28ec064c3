"""Pricing Engine - nightly rates, stay totals, discounts and tax

Every monetary value leaving this module has been passed through
``round_money`` exactly once at its own boundary, so recomputing a total from
the same inputs always yields the same cents.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from domain.entities import Reservation, ReservationTotals
from domain.enums import AddOnPricingModel, AddOnType, RoomType
from domain.value_objects import DateRange, Numeric, SeasonalWindow, round_money, to_decimal

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

# Friday, Saturday, Sunday
WEEKEND_DAYS = frozenset({4, 5, 6})


class PricingConfig(BaseModel):
    """Multipliers, seasonal windows and tax rate"""

    weekday_multiplier: Decimal = Decimal("1.00")
    weekend_multiplier: Decimal = Decimal("1.20")
    seasonal_windows: List[SeasonalWindow] = Field(default_factory=list)
    tax_rate: Decimal = Decimal("0.13")

    def add_seasonal_window(self, name: str, start_date: date, end_date: date,
                            multiplier: Numeric) -> SeasonalWindow:
        window = SeasonalWindow(
            name=name,
            start_date=start_date,
            end_date=end_date,
            multiplier=to_decimal(multiplier)
        )
        self.seasonal_windows.append(window)
        return window


class PriceBreakdown(BaseModel):
    """Night-by-night summary of one room type over a stay"""
    model_config = ConfigDict(frozen=True)

    room_type: RoomType
    check_in: date
    check_out: date
    nights: int
    weekday_nights: int
    weekend_nights: int
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    average_nightly_rate: Decimal


class InvoiceSummary(BaseModel):
    """Printable figures for a reservation"""
    model_config = ConfigDict(frozen=True)

    confirmation_code: str
    check_in: date
    check_out: date
    nights: int
    room_subtotal: Decimal
    add_ons_total: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    loyalty_discount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal

    @property
    def total_discounts(self) -> Decimal:
        return self.discount_amount + self.loyalty_discount

    def is_fully_paid(self) -> bool:
        return self.balance_due <= 0


class PricingEngine:
    """Stateless price calculator driven by a PricingConfig"""

    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config or PricingConfig()

    # ==================== NIGHTLY RATES ====================
    @staticmethod
    def is_weekend(day: date) -> bool:
        return day.weekday() in WEEKEND_DAYS

    def seasonal_multiplier(self, day: date) -> Decimal:
        """Highest multiplier among windows containing the date, else 1"""
        matching = [w.multiplier for w in self.config.seasonal_windows if w.contains(day)]
        if not matching:
            return Decimal("1")
        return max(matching)

    def price_multiplier(self, day: date) -> Decimal:
        if self.is_weekend(day):
            multiplier = self.config.weekend_multiplier
        else:
            multiplier = self.config.weekday_multiplier
        return multiplier * self.seasonal_multiplier(day)

    def nightly_rate(self, room_type: RoomType, day: date) -> Decimal:
        return round_money(room_type.base_rate * self.price_multiplier(day))

    # ==================== STAY TOTALS ====================
    def stay_total(self, room_type: RoomType, check_in: date, check_out: date) -> Decimal:
        """Sum of nightly rates over [check_in, check_out)"""
        if check_out <= check_in:
            return ZERO
        stay = DateRange(check_in=check_in, check_out=check_out)
        return round_money(sum(
            (self.nightly_rate(room_type, night) for night in stay.each_night()),
            ZERO
        ))

    def average_nightly_rate(self, room_type: RoomType, check_in: date, check_out: date) -> Decimal:
        nights = (check_out - check_in).days
        if nights <= 0:
            return round_money(room_type.base_rate)
        return round_money(self.stay_total(room_type, check_in, check_out) / nights)

    def price_breakdown(self, room_type: RoomType, check_in: date, check_out: date) -> PriceBreakdown:
        stay = DateRange(check_in=check_in, check_out=check_out)
        weekend_nights = sum(1 for night in stay.each_night() if self.is_weekend(night))
        subtotal = self.stay_total(room_type, check_in, check_out)
        tax_amount = self.tax(subtotal)
        return PriceBreakdown(
            room_type=room_type,
            check_in=check_in,
            check_out=check_out,
            nights=stay.nights(),
            weekday_nights=stay.nights() - weekend_nights,
            weekend_nights=weekend_nights,
            subtotal=subtotal,
            tax_rate=self.config.tax_rate,
            tax_amount=tax_amount,
            total=subtotal + tax_amount,
            average_nightly_rate=self.average_nightly_rate(room_type, check_in, check_out)
        )

    # ==================== DISCOUNTS & TAX ====================
    def apply_percentage_discount(self, amount: Numeric, percentage: Numeric) -> Decimal:
        amount = round_money(amount)
        percentage = to_decimal(percentage)
        if percentage <= 0:
            return amount
        return round_money(amount * (1 - percentage / HUNDRED))

    def percentage_discount_amount(self, amount: Numeric, percentage: Numeric) -> Decimal:
        amount = round_money(amount)
        return amount - self.apply_percentage_discount(amount, percentage)

    def loyalty_discount_amount(self, amount: Numeric, points: int, conversion_rate: Numeric) -> Decimal:
        """points / conversion_rate, never more than amount"""
        amount = round_money(amount)
        conversion_rate = to_decimal(conversion_rate)
        if points <= 0 or conversion_rate <= 0 or amount <= 0:
            return ZERO
        return min(round_money(Decimal(points) / conversion_rate), amount)

    def apply_loyalty_discount(self, amount: Numeric, points: int, conversion_rate: Numeric) -> Decimal:
        amount = round_money(amount)
        return amount - self.loyalty_discount_amount(amount, points, conversion_rate)

    def tax(self, amount: Numeric) -> Decimal:
        return round_money(to_decimal(amount) * self.config.tax_rate)

    def total_with_tax(self, amount: Numeric) -> Decimal:
        amount = round_money(amount)
        return amount + self.tax(amount)

    # ==================== ADD-ONS ====================
    @staticmethod
    def add_on_quantity(add_on_type: AddOnType, nights: int, guests: int) -> int:
        """Default billable quantity for an add-on's pricing model"""
        model = add_on_type.pricing_model
        if model == AddOnPricingModel.PER_NIGHT:
            return max(nights, 1)
        if model == AddOnPricingModel.PER_PERSON:
            return max(guests, 1)
        return max(nights, 1) * max(guests, 1)

    @staticmethod
    def add_on_line_total(add_on_type: AddOnType, quantity: int) -> Decimal:
        return round_money(add_on_type.base_price * quantity)

    # ==================== RESERVATION TOTALS ====================
    def compute_totals(self, reservation: Reservation) -> ReservationTotals:
        """Recompute every figure of a reservation from its line items"""
        nights = reservation.get_nights()
        room_subtotal = round_money(sum(
            (a.line_total(nights) for a in reservation.room_assignments), ZERO
        ))
        add_ons_total = round_money(sum(
            (line.line_total for line in reservation.add_ons), ZERO
        ))
        gross = room_subtotal + add_ons_total

        after_discount = self.apply_percentage_discount(gross, reservation.discount_percentage)
        discount_amount = gross - after_discount

        loyalty_discount = min(round_money(reservation.loyalty_redemption_value), after_discount)
        if loyalty_discount < 0:
            loyalty_discount = ZERO
        taxable = after_discount - loyalty_discount
        tax_amount = self.tax(taxable)

        return ReservationTotals(
            room_subtotal=room_subtotal,
            add_ons_total=add_ons_total,
            discount_amount=discount_amount,
            loyalty_discount=loyalty_discount,
            taxable_amount=taxable,
            tax_amount=tax_amount,
            total_amount=taxable + tax_amount
        )

    def invoice_summary(self, reservation: Reservation) -> InvoiceSummary:
        return InvoiceSummary(
            confirmation_code=reservation.confirmation_code,
            check_in=reservation.check_in_date,
            check_out=reservation.check_out_date,
            nights=reservation.get_nights(),
            room_subtotal=reservation.room_subtotal,
            add_ons_total=reservation.add_ons_total,
            discount_percentage=reservation.discount_percentage,
            discount_amount=reservation.discount_amount,
            loyalty_discount=reservation.loyalty_discount,
            tax_amount=reservation.tax_amount,
            total_amount=reservation.total_amount,
            amount_paid=reservation.amount_paid,
            balance_due=reservation.outstanding_balance
        )
