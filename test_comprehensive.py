#!/usr/bin/env python3
"""
Comprehensive Unit Testing for the Hotel Reservation Engine
Tests all layers: Domain, Application, Infrastructure and wiring
"""

import asyncio
import logging
import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4
from unittest.mock import AsyncMock

from application.inventory import InventoryAllocator
from application.schemas import BookingRequest
from bootstrap import build_engine, configure_logging
from domain.entities import (
    RESERVATION_TRANSITIONS, Guest, Reservation, RoomAssignment, RoomUnit, can_transition,
)
from domain.enums import (
    AddOnType, LoyaltyTier, LoyaltyTransactionType, ReservationSource, ReservationStatus,
    RoomStatus, RoomType, StaffRole, WaitlistStatus,
)
from domain.exceptions import (
    InsufficientInventory, InsufficientPoints, InvalidStatusTransition, OccupancyExceeded,
    RedemptionCapExceeded, ValidationError,
)
from domain.pricing import PricingConfig, PricingEngine
from domain.value_objects import (
    AddOnSelection, DateRange, GuestCount, GuestDetails, RoomSelection, round_money,
)
from infrastructure.activity import InMemoryActivitySink
from infrastructure.config import Settings, build_loyalty_config, build_pricing_config
from infrastructure.events import InMemoryAvailabilityNotifier
from infrastructure.repositories.in_memory_repositories import (
    InMemoryGuestRepository, InMemoryReservationRepository,
)


# ============================================================================
# HELPERS
# ============================================================================

def next_weekday(weekday: int, min_days_ahead: int = 7) -> date:
    """First date at least min_days_ahead away falling on weekday (0=Monday)"""
    day = date.today() + timedelta(days=min_days_ahead)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


MONDAY = 0
THURSDAY = 3
FRIDAY = 4


class YieldingReservationRepository(InMemoryReservationRepository):
    """Suspends on every store call so concurrent bookings interleave"""

    async def find_overlapping(self, *args, **kwargs):
        await asyncio.sleep(0)
        return await super().find_overlapping(*args, **kwargs)

    async def save(self, reservation):
        await asyncio.sleep(0)
        return await super().save(reservation)

    async def find_by_id(self, reservation_id):
        await asyncio.sleep(0)
        return await super().find_by_id(reservation_id)

    async def update(self, reservation):
        await asyncio.sleep(0)
        return await super().update(reservation)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def activity_sink():
    return InMemoryActivitySink()


@pytest.fixture
async def engine(settings, activity_sink):
    engine = build_engine(settings, activity=activity_sink)
    await engine.add_room("101", RoomType.SINGLE, floor=1)
    await engine.add_room("102", RoomType.SINGLE, floor=1)
    await engine.add_room("201", RoomType.DOUBLE, floor=2)
    await engine.add_room("301", RoomType.DELUXE, floor=3)
    await engine.add_room("401", RoomType.PENTHOUSE, floor=4)
    return engine


@pytest.fixture
def pricing():
    return PricingEngine()


@pytest.fixture
def guest_details():
    return GuestDetails(
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
        phone="555-0100"
    )


@pytest.fixture
def monday():
    return next_weekday(MONDAY)


@pytest.fixture
def friday():
    return next_weekday(FRIDAY)


def booking(guest_details, check_in, nights=3, rooms=None, adults=1, **kwargs):
    return BookingRequest(
        guest=guest_details,
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        adults=adults,
        rooms=rooms or [RoomSelection(room_type=RoomType.SINGLE, quantity=1)],
        **kwargs
    )


async def enrolled_account(engine, guest_details, balance=500):
    guest = await engine.reservations.find_or_create_guest(guest_details)
    account = await engine.loyalty.enroll(guest)
    top_up = balance - account.points_balance
    if top_up > 0:
        await engine.loyalty.bonus(account, top_up, "Goodwill credit")
    return account


async def room_statuses(engine):
    return {room.room_number: room.status for room in await engine.room_repo.find_all()}


def make_assignment(room):
    return RoomAssignment(
        room_id=room.room_id,
        room_number=room.room_number,
        room_type=room.room_type,
        nightly_rate=Decimal("100.00"),
        guest_count=1
    )


# ============================================================================
# DOMAIN LAYER TESTS - VALUE OBJECTS
# ============================================================================

class TestValueObjects:
    """Test domain value objects"""

    @pytest.mark.unit
    @pytest.mark.domain
    def test_date_range_valid(self):
        date_range = DateRange(check_in=date(2030, 1, 6), check_out=date(2030, 1, 9))
        assert date_range.nights() == 3
        assert list(date_range.each_night()) == [date(2030, 1, 6), date(2030, 1, 7), date(2030, 1, 8)]

    @pytest.mark.unit
    @pytest.mark.domain
    def test_date_range_invalid(self):
        with pytest.raises(ValueError):
            DateRange(check_in=date(2030, 1, 9), check_out=date(2030, 1, 6))

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_date_range_same_day(self):
        with pytest.raises(ValueError):
            DateRange(check_in=date(2030, 1, 6), check_out=date(2030, 1, 6))

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_back_to_back_stays_do_not_overlap(self):
        first = DateRange(check_in=date(2030, 1, 6), check_out=date(2030, 1, 9))
        second = DateRange(check_in=date(2030, 1, 9), check_out=date(2030, 1, 11))
        assert not first.overlaps(second)
        assert first.overlaps(DateRange(check_in=date(2030, 1, 8), check_out=date(2030, 1, 10)))

    @pytest.mark.unit
    @pytest.mark.domain
    def test_guest_count_invalid_zero_adults(self):
        with pytest.raises(ValueError):
            GuestCount(adults=0, children=1)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_round_money_half_up(self):
        assert round_money("0.125") == Decimal("0.13")
        assert round_money(2.675) == Decimal("2.68")
        assert round_money(Decimal("10")) == Decimal("10.00")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_guest_details_rejects_blank_name(self):
        with pytest.raises(ValueError):
            GuestDetails(first_name="  ", last_name="Lovelace", email="ada@example.com")


# ============================================================================
# DOMAIN LAYER TESTS - ENUMS
# ============================================================================

class TestEnums:
    """Test domain enums"""

    @pytest.mark.unit
    @pytest.mark.domain
    def test_room_type_specs(self):
        assert RoomType.SINGLE.max_occupancy == 2
        assert RoomType.DOUBLE.max_occupancy == 4
        assert RoomType.DOUBLE.base_rate == Decimal("150.00")
        assert RoomType.PENTHOUSE.base_rate == Decimal("500.00")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_loyalty_tier_thresholds(self):
        assert LoyaltyTier.for_lifetime_points(0) == LoyaltyTier.BRONZE
        assert LoyaltyTier.for_lifetime_points(9999) == LoyaltyTier.BRONZE
        assert LoyaltyTier.for_lifetime_points(10000) == LoyaltyTier.SILVER
        assert LoyaltyTier.for_lifetime_points(25000) == LoyaltyTier.GOLD
        assert LoyaltyTier.for_lifetime_points(60000) == LoyaltyTier.PLATINUM

    @pytest.mark.unit
    @pytest.mark.domain
    def test_add_on_pricing(self):
        assert AddOnType.WIFI.base_price == Decimal("15.00")
        assert AddOnType.BREAKFAST.base_price == Decimal("25.00")


# ============================================================================
# DOMAIN LAYER TESTS - PRICING ENGINE
# ============================================================================

class TestPricingEngine:
    """Test nightly rates, discounts and tax"""

    @pytest.mark.unit
    @pytest.mark.domain
    def test_three_weekday_nights_single_room(self, pricing, monday):
        subtotal = pricing.stay_total(RoomType.SINGLE, monday, monday + timedelta(days=3))
        assert subtotal == Decimal("300.00")
        assert pricing.tax(subtotal) == Decimal("39.00")
        assert pricing.total_with_tax(subtotal) == Decimal("339.00")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_ten_percent_discount_before_tax(self, pricing):
        taxable = pricing.apply_percentage_discount(Decimal("300.00"), 10)
        assert taxable == Decimal("270.00")
        assert pricing.tax(taxable) == Decimal("35.10")
        assert pricing.total_with_tax(taxable) == Decimal("305.10")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_weekend_nights_use_weekend_rate(self, pricing, friday):
        assert pricing.nightly_rate(RoomType.SINGLE, friday) == Decimal("120.00")
        assert pricing.stay_total(RoomType.SINGLE, friday, friday + timedelta(days=2)) == Decimal("240.00")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_price_breakdown_counts_weekend_nights(self, pricing):
        thursday = next_weekday(THURSDAY)
        breakdown = pricing.price_breakdown(RoomType.SINGLE, thursday, thursday + timedelta(days=4))
        assert breakdown.nights == 4
        assert breakdown.weekday_nights == 1
        assert breakdown.weekend_nights == 3
        assert breakdown.subtotal == Decimal("460.00")
        assert breakdown.average_nightly_rate == Decimal("115.00")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_highest_seasonal_multiplier_wins(self, monday):
        config = PricingConfig()
        config.add_seasonal_window("Holiday", monday, monday, "1.5")
        config.add_seasonal_window("Festival", monday - timedelta(days=3), monday + timedelta(days=3), "2.0")
        engine = PricingEngine(config)
        assert engine.nightly_rate(RoomType.SINGLE, monday) == Decimal("200.00")
        assert engine.nightly_rate(RoomType.SINGLE, monday + timedelta(days=7)) == Decimal("100.00")

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_seasonal_window_includes_end_date(self, monday):
        config = PricingConfig()
        config.add_seasonal_window("Peak", monday - timedelta(days=7), monday, Decimal("1.25"))
        engine = PricingEngine(config)
        assert engine.nightly_rate(RoomType.SINGLE, monday) == Decimal("125.00")

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_average_rate_falls_back_to_base_rate(self, pricing, monday):
        assert pricing.average_nightly_rate(RoomType.DELUXE, monday, monday) == Decimal("250.00")

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_loyalty_discount_capped_at_amount(self, pricing):
        assert pricing.loyalty_discount_amount(Decimal("1.50"), 500, 100) == Decimal("1.50")
        assert pricing.apply_loyalty_discount(Decimal("1.50"), 500, 100) == Decimal("0.00")
        assert pricing.apply_loyalty_discount(Decimal("10.00"), 200, 100) == Decimal("8.00")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_add_on_default_quantities(self, pricing):
        assert pricing.add_on_quantity(AddOnType.WIFI, nights=3, guests=2) == 3
        assert pricing.add_on_quantity(AddOnType.SPA, nights=3, guests=2) == 2
        assert pricing.add_on_quantity(AddOnType.BREAKFAST, nights=3, guests=2) == 6


# ============================================================================
# DOMAIN LAYER TESTS - STATE MACHINE
# ============================================================================

class TestReservationStateMachine:
    """Test the reservation transition table"""

    def _reservation(self, check_in=None):
        check_in = check_in or date.today() + timedelta(days=3)
        return Reservation.create(
            guest_id=uuid4(),
            date_range=DateRange(check_in=check_in, check_out=check_in + timedelta(days=2)),
            guest_count=GuestCount(adults=1)
        )

    @pytest.mark.unit
    @pytest.mark.domain
    def test_new_reservation_is_pending(self):
        reservation = self._reservation()
        assert reservation.status == ReservationStatus.PENDING
        assert len(reservation.confirmation_code) == 8

    @pytest.mark.unit
    @pytest.mark.domain
    def test_allowed_transitions(self):
        assert can_transition(ReservationStatus.PENDING, ReservationStatus.CHECKED_IN)
        assert can_transition(ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED)
        assert not can_transition(ReservationStatus.CONFIRMED, ReservationStatus.PENDING)
        assert not can_transition(ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED)

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    @pytest.mark.parametrize("terminal", [ReservationStatus.CHECKED_OUT, ReservationStatus.CANCELLED])
    def test_terminal_states_are_closed(self, terminal):
        assert RESERVATION_TRANSITIONS[terminal] == frozenset()
        for requested in ReservationStatus:
            reservation = self._reservation()
            reservation.status = terminal
            with pytest.raises(InvalidStatusTransition) as exc_info:
                reservation.transition_to(requested)
            assert exc_info.value.current == terminal
            assert exc_info.value.requested == requested

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_check_in_before_arrival_date_fails(self):
        reservation = self._reservation(date.today() + timedelta(days=5))
        with pytest.raises(ValidationError):
            reservation.check_in(today=date.today())
        assert reservation.status == ReservationStatus.PENDING

    @pytest.mark.unit
    @pytest.mark.domain
    def test_check_out_requires_settled_balance(self):
        reservation = self._reservation(date.today())
        reservation.total_amount = Decimal("100.00")
        reservation.check_in(today=date.today())
        with pytest.raises(ValidationError):
            reservation.check_out()
        assert reservation.status == ReservationStatus.CHECKED_IN


# ============================================================================
# APPLICATION LAYER TESTS - LOYALTY LEDGER
# ============================================================================

class TestLoyaltyService:
    """Test loyalty enrollment, earning and redemption"""

    @pytest.mark.application
    async def test_enroll_posts_welcome_bonus(self, engine, guest_details):
        guest = await engine.reservations.find_or_create_guest(guest_details)
        account = await engine.loyalty.enroll(guest)

        assert account.points_balance == 100
        assert account.lifetime_points == 100
        assert account.tier == LoyaltyTier.BRONZE
        assert account.loyalty_number.startswith("LOY")
        assert account.transactions[0].transaction_type == LoyaltyTransactionType.BONUS
        assert guest.loyalty_member

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_enroll_twice_fails(self, engine, guest_details):
        guest = await engine.reservations.find_or_create_guest(guest_details)
        await engine.loyalty.enroll(guest)
        with pytest.raises(ValidationError):
            await engine.loyalty.enroll(guest)

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_enroll_requires_identity_fields(self, engine):
        guest = Guest(first_name="Ada", last_name="", email="ada@example.com")
        with pytest.raises(ValidationError):
            await engine.loyalty.enroll(guest)
        assert await engine.loyalty.find_account(email="ada@example.com") is None

    @pytest.mark.application
    async def test_redeem_two_hundred_points(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=500)

        discount = await engine.loyalty.redeem(account, 200)

        assert discount == Decimal("2.00")
        assert account.points_balance == 300
        redemptions = engine.loyalty.redemption_history(account)
        assert len(redemptions) == 1
        assert redemptions[0].points == -200
        assert redemptions[0].balance_after == 300

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_redeem_more_than_balance(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=500)
        ledger_size = len(account.transactions)

        with pytest.raises(InsufficientPoints):
            await engine.loyalty.redeem(account, 600)

        assert account.points_balance == 500
        assert len(account.transactions) == ledger_size

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_redeem_above_cap(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=20000)
        with pytest.raises(RedemptionCapExceeded):
            await engine.loyalty.redeem(account, 10001)
        assert account.points_balance == 20000

    @pytest.mark.application
    async def test_earn_uses_current_tier(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=10000)
        assert account.tier == LoyaltyTier.SILVER

        points = await engine.loyalty.earn(account, Decimal("100.80"))

        assert points == 126
        assert account.points_balance == 10126
        assert engine.loyalty.earning_history(account)[0].points == 126

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_inactive_account_earns_nothing(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=100)
        account.active = False
        assert await engine.loyalty.earn(account, Decimal("250.00")) == 0
        assert account.points_balance == 100

    @pytest.mark.application
    async def test_ledger_reconstructs_balance(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=900)
        await engine.loyalty.earn(account, Decimal("339.00"))
        await engine.loyalty.redeem(account, 250)
        await engine.loyalty.bonus(account, 40, "Survey reward")
        await engine.loyalty.redeem(account, 1000)

        redeemed = sum(-t.points for t in account.transactions
                       if t.transaction_type == LoyaltyTransactionType.REDEEM)
        assert engine.loyalty.reconstruct_balance(account) == account.points_balance
        assert account.ledger_lifetime_points() == account.lifetime_points
        assert account.points_balance == account.lifetime_points - redeemed
        assert all(t.balance_after >= 0 for t in account.transactions)

    @pytest.mark.application
    async def test_max_redeemable_points(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=500)
        assert engine.loyalty.max_redeemable_points(account, Decimal("3.00")) == 300
        assert engine.loyalty.max_redeemable_points(account, Decimal("30.00")) == 500
        assert engine.loyalty.max_redeemable_points(account, Decimal("0")) == 0

    @pytest.mark.application
    async def test_find_account_by_phone_and_number(self, engine, guest_details):
        account = await enrolled_account(engine, guest_details, balance=100)
        assert await engine.loyalty.find_account(phone="555-0100") is account
        assert await engine.loyalty.find_account(email="ADA@example.com") is account
        assert await engine.loyalty.find_by_loyalty_number(account.loyalty_number) is account


# ============================================================================
# APPLICATION LAYER TESTS - INVENTORY ALLOCATOR
# ============================================================================

class TestInventoryAllocator:
    """Test availability queries and guest distribution"""

    @pytest.mark.unit
    def test_distribute_guests_evenly(self):
        assert InventoryAllocator.distribute_guests(5, [RoomType.DOUBLE, RoomType.DOUBLE]) == [3, 2]
        assert InventoryAllocator.distribute_guests(4, [RoomType.SINGLE, RoomType.DOUBLE]) == [2, 2]

    @pytest.mark.unit
    @pytest.mark.edge_case
    def test_distribute_guests_every_room_holds_one(self):
        assert InventoryAllocator.distribute_guests(1, [RoomType.SINGLE, RoomType.SINGLE]) == [1, 1]

    @pytest.mark.unit
    @pytest.mark.edge_case
    def test_assignment_rejects_guests_over_occupancy(self):
        room = RoomUnit(room_number="101", room_type=RoomType.SINGLE)
        with pytest.raises(ValueError):
            RoomAssignment(
                room_id=room.room_id,
                room_number=room.room_number,
                room_type=room.room_type,
                nightly_rate=Decimal("100.00"),
                guest_count=3
            )

    @pytest.mark.unit
    @pytest.mark.edge_case
    def test_distribute_guests_over_capacity(self):
        with pytest.raises(OccupancyExceeded):
            InventoryAllocator.distribute_guests(5, [RoomType.SINGLE, RoomType.SINGLE])

    @pytest.mark.application
    async def test_find_available_skips_maintenance(self, engine, monday):
        room = (await engine.room_repo.find_by_type(RoomType.SINGLE))[0]
        room.mark_maintenance()
        available = await engine.allocator.find_available(RoomType.SINGLE, monday, monday + timedelta(days=2))
        assert [r.room_number for r in available] == ["102"]

    @pytest.mark.application
    async def test_availability_by_type(self, engine, guest_details, monday):
        await engine.reservations.create_booking(booking(guest_details, monday))
        counts = await engine.allocator.availability_by_type(monday, monday + timedelta(days=3))
        assert counts[RoomType.SINGLE] == 1
        assert counts[RoomType.DOUBLE] == 1

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_back_to_back_booking_reuses_room(self, engine, guest_details, monday):
        first = await engine.reservations.create_booking(booking(guest_details, monday, nights=2))
        available = await engine.allocator.find_available(
            RoomType.SINGLE, first.check_out_date, first.check_out_date + timedelta(days=2)
        )
        assert [r.room_number for r in available] == ["101", "102"]


# ============================================================================
# APPLICATION LAYER TESTS - RESERVATION SERVICE
# ============================================================================

class TestReservationService:
    """Test reservation lifecycle use cases"""

    @pytest.mark.application
    async def test_create_booking_single_room(self, engine, guest_details, monday, activity_sink):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))

        assert reservation.status == ReservationStatus.PENDING
        assert reservation.room_subtotal == Decimal("300.00")
        assert reservation.tax_amount == Decimal("39.00")
        assert reservation.total_amount == Decimal("339.00")
        assert reservation.room_assignments[0].room_number == "101"
        assert (await room_statuses(engine))["101"] == RoomStatus.RESERVED
        assert len(activity_sink.find(action="RESERVATION_CREATED")) == 1

    @pytest.mark.application
    async def test_create_booking_with_admin_discount(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(
            booking(guest_details, monday, discount_percentage=Decimal("10"))
        )
        assert reservation.discount_amount == Decimal("30.00")
        assert reservation.tax_amount == Decimal("35.10")
        assert reservation.total_amount == Decimal("305.10")

    @pytest.mark.application
    async def test_kiosk_booking_is_confirmed(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(
            booking(guest_details, monday, source=ReservationSource.KIOSK)
        )
        assert reservation.status == ReservationStatus.CONFIRMED

    @pytest.mark.application
    async def test_weekend_booking_total(self, engine, guest_details, friday):
        reservation = await engine.reservations.create_booking(
            booking(guest_details, friday, nights=2, source=ReservationSource.KIOSK)
        )
        assert reservation.room_assignments[0].nightly_rate == Decimal("120.00")
        assert reservation.room_subtotal == Decimal("240.00")

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_insufficient_doubles_claims_nothing(self, engine, guest_details, monday):
        before = await room_statuses(engine)
        request = booking(
            guest_details, monday, nights=2, adults=5,
            rooms=[RoomSelection(room_type=RoomType.DOUBLE, quantity=2)]
        )

        with pytest.raises(InsufficientInventory) as exc_info:
            await engine.reservations.create_booking(request)

        assert exc_info.value.available == 1
        assert exc_info.value.requested == 2
        assert await room_statuses(engine) == before
        assert await engine.reservations.get_all_reservations() == []

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_partial_room_types_are_rolled_back(self, engine, guest_details, monday):
        before = await room_statuses(engine)
        request = booking(
            guest_details, monday, adults=3,
            rooms=[
                RoomSelection(room_type=RoomType.SINGLE, quantity=1),
                RoomSelection(room_type=RoomType.DOUBLE, quantity=2),
            ]
        )

        with pytest.raises(InsufficientInventory):
            await engine.reservations.create_booking(request)

        assert await room_statuses(engine) == before
        assert await engine.reservations.get_all_reservations() == []

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_booking_validation_errors(self, engine, guest_details, monday):
        with pytest.raises(ValidationError):
            await engine.reservations.create_booking(booking(guest_details, monday, rooms=[
                RoomSelection(room_type=RoomType.SINGLE, quantity=0)
            ]))
        with pytest.raises(OccupancyExceeded):
            await engine.reservations.create_booking(booking(guest_details, monday, adults=3))
        with pytest.raises(ValidationError):
            await engine.reservations.create_booking(
                booking(guest_details, date.today() - timedelta(days=1))
            )
        with pytest.raises(ValidationError):
            await engine.reservations.create_booking(booking(guest_details, monday, nights=31))
        with pytest.raises(ValidationError):
            await engine.reservations.create_booking(
                booking(guest_details, monday, discount_percentage=Decimal("20"))
            )

        assert await engine.reservations.get_all_reservations() == []
        assert await engine.guest_repo.find_by_email(guest_details.email) is None

    @pytest.mark.application
    async def test_add_and_remove_add_ons_keep_totals_consistent(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday, adults=2))

        reservation = await engine.reservations.add_add_on(reservation.reservation_id, AddOnType.BREAKFAST)
        assert reservation.add_ons[0].quantity == 6
        assert reservation.total_amount == Decimal("508.50")

        reservation = await engine.reservations.add_add_on(reservation.reservation_id, AddOnType.WIFI)
        assert reservation.total_amount == Decimal("559.35")
        assert engine.pricing.compute_totals(reservation).total_amount == reservation.total_amount

        wifi = reservation.add_ons[1]
        reservation = await engine.reservations.remove_add_on(reservation.reservation_id, wifi.line_id)
        assert reservation.total_amount == Decimal("508.50")
        assert engine.pricing.compute_totals(reservation).total_amount == reservation.total_amount

    @pytest.mark.application
    async def test_booking_with_add_ons(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(
            guest_details, monday, adults=2,
            add_ons=[AddOnSelection(add_on_type=AddOnType.PARKING),
                     AddOnSelection(add_on_type=AddOnType.SPA, quantity=1)]
        ))
        assert reservation.add_ons_total == Decimal("135.00")
        assert reservation.total_amount == Decimal("491.55")

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_recalculate_is_idempotent(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(
            booking(guest_details, monday, discount_percentage=Decimal("7.5"))
        )
        first = (await engine.reservations.recalculate_totals(reservation.reservation_id)).total_amount
        second = (await engine.reservations.recalculate_totals(reservation.reservation_id)).total_amount
        assert first == second == reservation.total_amount

    @pytest.mark.application
    async def test_full_stay_lifecycle(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        reservation_id = reservation.reservation_id

        await engine.reservations.confirm_reservation(reservation_id)
        await engine.reservations.check_in_guest(reservation_id, today=monday)
        assert (await room_statuses(engine))["101"] == RoomStatus.OCCUPIED

        with pytest.raises(ValidationError):
            await engine.reservations.check_out_guest(reservation_id)

        payment = await engine.reservations.record_payment(reservation_id, Decimal("339.00"))
        assert payment.amount == Decimal("339.00")

        checkout_day = monday + timedelta(days=3)
        reservation = await engine.reservations.check_out_guest(reservation_id, today=checkout_day)

        assert reservation.status == ReservationStatus.CHECKED_OUT
        assert reservation.outstanding_balance == Decimal("0.00")
        assert (await room_statuses(engine))["101"] == RoomStatus.CLEANING
        event = engine.notifier.get_history()[0]
        assert event.room_number == "101"
        assert event.available_from == checkout_day + timedelta(days=1)

        with pytest.raises(InvalidStatusTransition):
            await engine.reservations.cancel_reservation(reservation_id)

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_payment_capped_at_outstanding_balance(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        payment = await engine.reservations.record_payment(reservation.reservation_id, 500)
        assert payment.amount == Decimal("339.00")
        with pytest.raises(ValidationError):
            await engine.reservations.record_payment(reservation.reservation_id, 10)
        with pytest.raises(ValidationError):
            await engine.reservations.record_payment(reservation.reservation_id, 0)

    @pytest.mark.application
    async def test_discount_after_payment_leaves_overpayment(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        await engine.reservations.record_payment(reservation.reservation_id, Decimal("339.00"))

        reservation = await engine.reservations.apply_discount(
            reservation.reservation_id, Decimal("10"), "manager1", StaffRole.MANAGER
        )

        assert reservation.outstanding_balance == Decimal("-33.90")
        assert reservation.display_balance == Decimal("0.00")
        summary = await engine.reservations.get_invoice_summary(reservation.reservation_id)
        assert summary.is_fully_paid()
        assert summary.total_discounts == Decimal("30.00")

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_discount_caps_by_role(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        with pytest.raises(ValidationError):
            await engine.reservations.apply_discount(reservation.reservation_id, 20, "admin1", StaffRole.ADMIN)
        reservation = await engine.reservations.apply_discount(
            reservation.reservation_id, 20, "manager1", StaffRole.MANAGER
        )
        assert reservation.discount_percentage == Decimal("20")
        assert reservation.discount_applied_by == "manager1"

    @pytest.mark.application
    async def test_payment_earns_points(self, engine, guest_details, monday):
        account = await enrolled_account(engine, guest_details, balance=100)
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))

        await engine.reservations.record_payment(reservation.reservation_id, Decimal("339.00"))

        assert account.points_balance == 439
        assert engine.loyalty.earning_history(account)[0].reservation_id == reservation.reservation_id

    @pytest.mark.application
    async def test_booking_with_points_and_cancellation_refund(self, engine, guest_details, monday):
        account = await enrolled_account(engine, guest_details, balance=500)

        reservation = await engine.reservations.create_booking(
            booking(guest_details, monday, points_to_redeem=200)
        )
        assert reservation.loyalty_discount == Decimal("2.00")
        assert reservation.tax_amount == Decimal("38.74")
        assert reservation.total_amount == Decimal("336.74")
        assert account.points_balance == 300

        reservation = await engine.reservations.cancel_reservation(reservation.reservation_id, "Plans changed")

        assert reservation.status == ReservationStatus.CANCELLED
        assert reservation.cancellation_reason == "Plans changed"
        assert account.points_balance == 500
        refund = account.transactions[-1]
        assert refund.transaction_type == LoyaltyTransactionType.BONUS
        assert refund.points == 200
        assert (await room_statuses(engine))["101"] == RoomStatus.AVAILABLE
        assert engine.notifier.get_history()[0].available_from == monday

    @pytest.mark.application
    async def test_redemption_after_booking(self, engine, guest_details, monday):
        account = await enrolled_account(engine, guest_details, balance=500)
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))

        reservation = await engine.reservations.apply_loyalty_redemption(reservation.reservation_id, 300)

        assert reservation.loyalty_points_redeemed == 300
        assert reservation.loyalty_discount == Decimal("3.00")
        assert reservation.total_amount == Decimal("335.61")
        assert account.points_balance == 200

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_redemption_without_account(self, engine, guest_details, monday):
        with pytest.raises(ValidationError):
            await engine.reservations.create_booking(booking(guest_details, monday, points_to_redeem=100))
        assert await engine.reservations.get_all_reservations() == []

    @pytest.mark.application
    async def test_cancelled_room_can_be_rebooked(self, engine, guest_details, monday):
        request = booking(guest_details, monday, rooms=[RoomSelection(room_type=RoomType.DELUXE, quantity=1)])
        first = await engine.reservations.create_booking(request)
        await engine.reservations.cancel_reservation(first.reservation_id)

        second = await engine.reservations.create_booking(request)
        assert second.room_assignments[0].room_number == "301"

    @pytest.mark.application
    async def test_modify_dates(self, engine, guest_details, monday):
        first = await engine.reservations.create_booking(booking(guest_details, monday))
        second = await engine.reservations.create_booking(
            booking(guest_details, monday + timedelta(days=3), nights=2)
        )
        assert second.room_assignments[0].room_number == "101"

        with pytest.raises(InsufficientInventory):
            await engine.reservations.modify_dates(
                second.reservation_id, monday + timedelta(days=1), monday + timedelta(days=4)
            )
        assert second.check_in_date == monday + timedelta(days=3)

        new_check_in = monday + timedelta(days=10)
        second = await engine.reservations.modify_dates(
            second.reservation_id, new_check_in, new_check_in + timedelta(days=2)
        )
        assert second.get_nights() == 2
        assert second.total_amount == Decimal("248.60")
        assert first.check_in_date == monday

    @pytest.mark.application
    async def test_lookups(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        again = await engine.reservations.create_booking(
            booking(guest_details.model_copy(update={"email": "ADA@EXAMPLE.COM"}), monday)
        )

        assert again.guest_id == reservation.guest_id
        found = await engine.reservations.get_reservation_by_confirmation_code(reservation.confirmation_code)
        assert found.reservation_id == reservation.reservation_id
        assert len(await engine.reservations.get_reservations_by_guest(reservation.guest_id)) == 2
        assert await engine.reservations.get_reservation(uuid4()) is None
        assert await engine.reservations.confirm_reservation(uuid4()) is None

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_interleaved_room_selections_respect_occupancy(self, engine, guest_details, monday):
        await engine.add_room("202", RoomType.DOUBLE, floor=2)
        request = booking(
            guest_details, monday, adults=8,
            rooms=[
                RoomSelection(room_type=RoomType.DOUBLE, quantity=1),
                RoomSelection(room_type=RoomType.SINGLE, quantity=1),
                RoomSelection(room_type=RoomType.DOUBLE, quantity=1),
            ]
        )

        reservation = await engine.reservations.create_booking(request)

        placed = [(a.room_number, a.guest_count) for a in reservation.room_assignments]
        assert placed == [("201", 3), ("202", 3), ("101", 2)]
        for assignment in reservation.room_assignments:
            assert assignment.guest_count <= assignment.room_type.max_occupancy
        assert sum(a.guest_count for a in reservation.room_assignments) == 8

    @pytest.mark.application
    async def test_account_matched_by_phone_gets_refund_and_earnings(self, engine, guest_details, monday):
        account = await enrolled_account(engine, guest_details, balance=500)
        work_details = guest_details.model_copy(update={"email": "ada.work@example.com"})

        reservation = await engine.reservations.create_booking(
            booking(work_details, monday, points_to_redeem=200)
        )
        assert reservation.guest_id != account.guest_id
        assert reservation.loyalty_number == account.loyalty_number
        assert account.points_balance == 300

        await engine.reservations.cancel_reservation(reservation.reservation_id)
        assert account.points_balance == 500

        second = await engine.reservations.create_booking(booking(work_details, monday))
        await engine.reservations.record_payment(second.reservation_id, Decimal("339.00"))
        assert account.points_balance == 839

    @pytest.mark.application
    async def test_enrollment_at_booking_links_account(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(
            booking(guest_details, monday, enroll_in_loyalty=True)
        )
        account = await engine.loyalty.find_account(email=guest_details.email)

        assert account is not None
        assert reservation.loyalty_number == account.loyalty_number

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_cancel_keeps_room_under_maintenance(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        room = await engine.room_repo.find_by_id(reservation.room_assignments[0].room_id)
        room.mark_maintenance()

        await engine.reservations.cancel_reservation(reservation.reservation_id)

        assert (await room_statuses(engine))["101"] == RoomStatus.MAINTENANCE
        assert engine.notifier.get_history(RoomType.SINGLE) == []
        available = await engine.allocator.find_available(RoomType.SINGLE, monday, monday + timedelta(days=3))
        assert [r.room_number for r in available] == ["102"]

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_check_in_keeps_room_under_maintenance(self, engine, guest_details, monday):
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        room = await engine.room_repo.find_by_id(reservation.room_assignments[0].room_id)
        room.mark_maintenance()

        await engine.reservations.check_in_guest(reservation.reservation_id, today=monday)

        assert room.status == RoomStatus.MAINTENANCE

    @pytest.mark.application
    async def test_cancel_releases_rooms_while_holding_type_lock(self, engine, guest_details, monday):
        lock_held = []

        async def observe(room_type, room_number, available_from):
            lock_held.append(engine.allocator.room_type_lock(room_type).locked())

        engine.notifier.subscribe(observe)
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))

        await engine.reservations.cancel_reservation(reservation.reservation_id)

        assert lock_held == [True]
        assert not engine.allocator.room_type_lock(RoomType.SINGLE).locked()


# ============================================================================
# INTEGRATION TESTS - ATOMICITY
# ============================================================================

class TestAtomicBooking:
    """Test rollback of every completed step when a booking fails"""

    @pytest.mark.integration
    async def test_store_failure_rolls_back_rooms_and_points(self, engine, guest_details, monday):
        account = await enrolled_account(engine, guest_details, balance=500)
        ledger_size = len(account.transactions)
        before = await room_statuses(engine)
        engine.reservation_repo.save = AsyncMock(side_effect=RuntimeError("database unavailable"))

        request = booking(
            guest_details, monday, adults=3, points_to_redeem=200,
            rooms=[
                RoomSelection(room_type=RoomType.SINGLE, quantity=1),
                RoomSelection(room_type=RoomType.DOUBLE, quantity=1),
            ]
        )
        with pytest.raises(RuntimeError):
            await engine.reservations.create_booking(request)

        assert await room_statuses(engine) == before
        assert await engine.reservations.get_all_reservations() == []
        restored = await engine.loyalty.find_account(email=guest_details.email)
        assert restored.points_balance == 500
        assert len(restored.transactions) == ledger_size

    @pytest.mark.integration
    async def test_retry_after_failure_succeeds(self, engine, guest_details, monday):
        original_save = engine.reservation_repo.save
        engine.reservation_repo.save = AsyncMock(side_effect=RuntimeError("database unavailable"))
        with pytest.raises(RuntimeError):
            await engine.reservations.create_booking(booking(guest_details, monday))

        engine.reservation_repo.save = original_save
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))
        assert reservation.room_assignments[0].room_number == "101"

    @pytest.mark.integration
    async def test_failing_activity_sink_does_not_block_booking(self, guest_details, monday, settings):
        sink = InMemoryActivitySink()
        sink.record = AsyncMock(side_effect=RuntimeError("log store offline"))
        engine = build_engine(settings, activity=sink)
        await engine.add_room("101", RoomType.SINGLE)

        reservation = await engine.reservations.create_booking(booking(guest_details, monday))

        assert reservation.total_amount == Decimal("339.00")
        assert sink.record.await_count > 0


# ============================================================================
# INTEGRATION TESTS - CONCURRENCY
# ============================================================================

class TestConcurrentBooking:
    """Test that the per-room-type claim prevents double-booking"""

    @pytest.mark.concurrency
    @pytest.mark.integration
    async def test_last_unit_goes_to_exactly_one_booking(self, settings, guest_details, monday):
        engine = build_engine(settings, reservation_repo=YieldingReservationRepository())
        await engine.add_room("301", RoomType.DELUXE)
        request = booking(guest_details, monday, rooms=[RoomSelection(room_type=RoomType.DELUXE, quantity=1)])

        results = await asyncio.gather(
            engine.reservations.create_booking(request),
            engine.reservations.create_booking(request),
            return_exceptions=True
        )

        succeeded = [r for r in results if isinstance(r, Reservation)]
        failed = [r for r in results if isinstance(r, InsufficientInventory)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        assert len(await engine.reservations.get_all_reservations()) == 1

    @pytest.mark.concurrency
    @pytest.mark.integration
    async def test_no_double_booking_under_load(self, settings, guest_details, monday):
        engine = build_engine(settings, reservation_repo=YieldingReservationRepository())
        await engine.add_room("101", RoomType.SINGLE)
        await engine.add_room("102", RoomType.SINGLE)

        requests = [
            booking(guest_details, monday + timedelta(days=offset), nights=nights)
            for offset, nights in [(0, 3), (1, 2), (2, 4), (0, 1), (3, 2), (5, 1), (1, 5), (4, 3)]
        ]
        await asyncio.gather(
            *(engine.reservations.create_booking(r) for r in requests),
            return_exceptions=True
        )

        held = [r for r in await engine.reservations.get_all_reservations() if r.is_active()]
        assert held
        for i, first in enumerate(held):
            for second in held[i + 1:]:
                shared = {a.room_id for a in first.room_assignments} & {a.room_id for a in second.room_assignments}
                if shared:
                    assert not first.date_range.overlaps(second.date_range)

    @pytest.mark.concurrency
    @pytest.mark.integration
    async def test_concurrent_payments_never_exceed_total(self, settings, guest_details, monday):
        engine = build_engine(settings, reservation_repo=YieldingReservationRepository())
        await engine.add_room("101", RoomType.SINGLE)
        reservation = await engine.reservations.create_booking(booking(guest_details, monday))

        results = await asyncio.gather(
            engine.reservations.record_payment(reservation.reservation_id, Decimal("339.00")),
            engine.reservations.record_payment(reservation.reservation_id, Decimal("339.00")),
            return_exceptions=True
        )

        assert len([r for r in results if isinstance(r, ValidationError)]) == 1
        stored = await engine.reservations.get_reservation(reservation.reservation_id)
        assert len(stored.payments) == 1
        assert stored.amount_paid == Decimal("339.00")
        assert stored.outstanding_balance == Decimal("0.00")


# ============================================================================
# APPLICATION LAYER TESTS - WAITLIST
# ============================================================================

class TestWaitlistService:
    """Test waitlist matching on availability events"""

    @pytest.mark.application
    async def test_cancellation_notifies_matching_entries(self, engine, guest_details, monday):
        request = booking(guest_details, monday, rooms=[RoomSelection(room_type=RoomType.DELUXE, quantity=1)])
        reservation = await engine.reservations.create_booking(request)
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=3))
        matching = await engine.waitlist.add_to_waitlist(uuid4(), RoomType.DELUXE, stay, GuestCount(adults=2))
        too_early = await engine.waitlist.add_to_waitlist(
            uuid4(), RoomType.DELUXE,
            DateRange(check_in=monday - timedelta(days=1), check_out=monday + timedelta(days=1)),
            GuestCount(adults=1)
        )
        other_type = await engine.waitlist.add_to_waitlist(uuid4(), RoomType.SINGLE, stay, GuestCount(adults=1))

        await engine.reservations.cancel_reservation(reservation.reservation_id)

        assert matching.status == WaitlistStatus.NOTIFIED
        assert matching.available_from == monday
        assert too_early.status == WaitlistStatus.ACTIVE
        assert other_type.status == WaitlistStatus.ACTIVE

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_repeated_event_is_idempotent(self, engine, monday):
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=2))
        entry = await engine.waitlist.add_to_waitlist(uuid4(), RoomType.DOUBLE, stay, GuestCount(adults=2))

        first = await engine.waitlist.on_room_available(RoomType.DOUBLE, "201", monday)
        notified_at = entry.notified_at
        second = await engine.waitlist.on_room_available(RoomType.DOUBLE, "201", monday)

        assert first == [entry]
        assert second == []
        assert entry.notified_at == notified_at

    @pytest.mark.application
    async def test_convert_and_cancel_entries(self, engine, monday):
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=2))
        entry = await engine.waitlist.add_to_waitlist(uuid4(), RoomType.SINGLE, stay, GuestCount(adults=1))
        other = await engine.waitlist.add_to_waitlist(uuid4(), RoomType.SINGLE, stay, GuestCount(adults=1))

        reservation_id = uuid4()
        converted = await engine.waitlist.convert_to_reservation(entry.waitlist_id, reservation_id)
        assert converted.status == WaitlistStatus.CONVERTED
        assert converted.converted_reservation_id == reservation_id
        with pytest.raises(ValidationError):
            await engine.waitlist.convert_to_reservation(entry.waitlist_id, uuid4())

        cancelled = await engine.waitlist.cancel_entry(other.waitlist_id)
        assert cancelled.status == WaitlistStatus.CANCELLED
        assert await engine.waitlist.get_room_waitlist(RoomType.SINGLE) == []

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_expire_stale_entries(self, engine, monday):
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=2))
        entry = await engine.waitlist.add_to_waitlist(uuid4(), RoomType.SINGLE, stay, GuestCount(adults=1))

        assert await engine.waitlist.expire_stale_entries(today=monday - timedelta(days=1)) == []
        expired = await engine.waitlist.expire_stale_entries(today=monday + timedelta(days=1))

        assert expired == [entry]
        assert entry.status == WaitlistStatus.EXPIRED

    @pytest.mark.application
    @pytest.mark.edge_case
    async def test_waitlist_rejects_oversized_party(self, engine, monday):
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=2))
        with pytest.raises(OccupancyExceeded):
            await engine.waitlist.add_to_waitlist(uuid4(), RoomType.SINGLE, stay, GuestCount(adults=3))


# ============================================================================
# INFRASTRUCTURE TESTS
# ============================================================================

class TestInfrastructure:
    """Test repositories, notifier, configuration and wiring"""

    @pytest.mark.unit
    async def test_guest_upsert_keeps_identity(self):
        repository = InMemoryGuestRepository()
        original = await repository.save(Guest(first_name="Ada", last_name="Lovelace", email="Ada@Example.com"))
        updated = await repository.save(Guest(first_name="Ada", last_name="King", email="ada@example.com"))

        assert updated.guest_id == original.guest_id
        assert (await repository.find_by_email("ADA@EXAMPLE.COM")).last_name == "King"

    @pytest.mark.unit
    async def test_confirmation_code_collision_regenerated(self, monday):
        repository = InMemoryReservationRepository()
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=1))
        first = Reservation.create(guest_id=uuid4(), date_range=stay, guest_count=GuestCount(adults=1))
        second = Reservation.create(guest_id=uuid4(), date_range=stay, guest_count=GuestCount(adults=1))
        second.confirmation_code = first.confirmation_code

        await repository.save(first)
        await repository.save(second)

        assert second.confirmation_code != first.confirmation_code
        assert await repository.find_by_confirmation_code(first.confirmation_code) is first

    @pytest.mark.unit
    async def test_find_overlapping_ignores_cancelled(self, monday):
        repository = InMemoryReservationRepository()
        room = RoomUnit(room_number="101", room_type=RoomType.SINGLE)
        stay = DateRange(check_in=monday, check_out=monday + timedelta(days=3))
        reservation = Reservation.create(guest_id=uuid4(), date_range=stay, guest_count=GuestCount(adults=1))
        reservation.room_assignments.append(make_assignment(room))
        await repository.save(reservation)

        assert await repository.find_overlapping(room.room_id, monday + timedelta(days=2), monday + timedelta(days=5))
        assert not await repository.find_overlapping(room.room_id, monday + timedelta(days=3), monday + timedelta(days=5))
        assert not await repository.find_overlapping(
            room.room_id, monday, monday + timedelta(days=1), exclude_reservation_id=reservation.reservation_id
        )

        reservation.cancel("No longer needed")
        assert not await repository.find_overlapping(room.room_id, monday, monday + timedelta(days=3))

    @pytest.mark.unit
    async def test_notifier_isolates_failing_handler(self, monday, caplog):
        notifier = InMemoryAvailabilityNotifier()
        received = []

        async def broken(room_type, room_number, available_from):
            raise RuntimeError("handler crashed")

        async def recorder(room_type, room_number, available_from):
            received.append((room_type, room_number, available_from))

        notifier.subscribe(broken)
        notifier.subscribe(recorder)
        notifier.subscribe(recorder)

        with caplog.at_level(logging.ERROR):
            await notifier.publish(RoomType.SINGLE, "101", monday)

        assert received == [(RoomType.SINGLE, "101", monday)]
        assert "handler crashed" in caplog.text
        assert len(notifier.get_history(RoomType.SINGLE)) == 1

    @pytest.mark.unit
    def test_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("HOTEL_TAX_RATE", "0.10")
        monkeypatch.setenv("HOTEL_LOYALTY_WELCOME_BONUS", "250")
        settings = Settings(_env_file=None)

        assert settings.TAX_RATE == Decimal("0.10")
        assert build_pricing_config(settings).tax_rate == Decimal("0.10")
        assert build_loyalty_config(settings).welcome_bonus_points == 250

    @pytest.mark.integration
    async def test_engine_wiring(self, engine):
        configure_logging("DEBUG")
        assert engine.waitlist.on_room_available in engine.notifier._handlers
        assert engine.reservations.allocator is engine.allocator
        assert len(await engine.room_repo.find_all()) == 5

