"""Domain Entities - Aggregates"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from uuid import UUID, uuid4
from datetime import datetime, date, timedelta
from typing import Dict, FrozenSet, Optional, List
from decimal import Decimal

from domain.enums import (
    AddOnType, LoyaltyTier, LoyaltyTransactionType, PaymentMethod, PaymentStatus,
    Priority, ReservationSource, ReservationStatus, RoomStatus, RoomType, WaitlistStatus,
)
from domain.exceptions import (
    InsufficientPoints, InvalidStatusTransition, ValidationError,
)
from domain.value_objects import DateRange, GuestCount, round_money


# ==================== STATUS TRANSITION TABLE ====================
RESERVATION_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({
        ReservationStatus.CONFIRMED,
        ReservationStatus.CHECKED_IN,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.CHECKED_IN,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CHECKED_IN: frozenset({ReservationStatus.CHECKED_OUT}),
    ReservationStatus.CHECKED_OUT: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}

# Statuses in which the bill may still change
_BILLABLE_STATUSES = frozenset({
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
})


def can_transition(current: ReservationStatus, requested: ReservationStatus) -> bool:
    return requested in RESERVATION_TRANSITIONS[current]


class Guest(BaseModel):
    """Guest directory entry, keyed by lower-cased email"""

    guest_id: UUID = Field(default_factory=uuid4)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    loyalty_member: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(from_attributes=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def missing_identity_fields(self) -> List[str]:
        """Names of required identity fields that are blank"""
        missing = []
        for field_name in ("email", "first_name", "last_name"):
            value = getattr(self, field_name)
            if not value or not value.strip():
                missing.append(field_name)
        return missing


class RoomUnit(BaseModel):
    """Physical, bookable room"""

    room_id: UUID = Field(default_factory=uuid4)
    room_number: str
    room_type: RoomType
    floor: int = 1
    status: RoomStatus = RoomStatus.AVAILABLE

    model_config = ConfigDict(from_attributes=True)

    @property
    def max_occupancy(self) -> int:
        return self.room_type.max_occupancy

    def can_accommodate(self, guests: int) -> bool:
        return 0 < guests <= self.max_occupancy

    def is_under_maintenance(self) -> bool:
        return self.status == RoomStatus.MAINTENANCE

    def mark_reserved(self) -> None:
        self.status = RoomStatus.RESERVED

    def mark_occupied(self) -> None:
        self.status = RoomStatus.OCCUPIED

    def mark_available(self) -> None:
        self.status = RoomStatus.AVAILABLE

    def mark_cleaning(self) -> None:
        self.status = RoomStatus.CLEANING

    def mark_maintenance(self) -> None:
        self.status = RoomStatus.MAINTENANCE


class RoomAssignment(BaseModel):
    """Child entity linking a reservation to one room unit at a locked rate"""

    assignment_id: UUID = Field(default_factory=uuid4)
    room_id: UUID
    room_number: str
    room_type: RoomType
    nightly_rate: Decimal
    guest_count: int = Field(ge=1)

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def within_occupancy(self) -> "RoomAssignment":
        if self.guest_count > self.room_type.max_occupancy:
            raise ValueError(
                f"{self.room_type.display_name} holds at most {self.room_type.max_occupancy} guests"
            )
        return self

    def line_total(self, nights: int) -> Decimal:
        return round_money(self.nightly_rate * nights)


class AddOnLine(BaseModel):
    """Child entity for an add-on service at a locked unit price"""

    line_id: UUID = Field(default_factory=uuid4)
    add_on_type: AddOnType
    unit_price: Decimal
    quantity: int = Field(ge=1)
    date_added: date = Field(default_factory=date.today)

    model_config = ConfigDict(from_attributes=True)

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)


class PaymentRecord(BaseModel):
    """Recorded (not authorized) payment; append-only once completed"""

    payment_id: UUID = Field(default_factory=uuid4)
    amount: Decimal = Field(gt=0)
    method: PaymentMethod = PaymentMethod.CARD
    status: PaymentStatus = PaymentStatus.COMPLETED
    paid_at: datetime = Field(default_factory=datetime.utcnow)
    processed_by: str = "SYSTEM"

    model_config = ConfigDict(from_attributes=True)

    def is_successful(self) -> bool:
        return self.status == PaymentStatus.COMPLETED


class ReservationTotals(BaseModel):
    """Result of a from-scratch total computation"""
    model_config = ConfigDict(frozen=True)

    room_subtotal: Decimal
    add_ons_total: Decimal
    discount_amount: Decimal
    loyalty_discount: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)
    confirmation_code: str

    # References to other contexts
    guest_id: UUID

    # Value Objects
    date_range: DateRange
    guest_count: GuestCount

    # Enums/Status
    status: ReservationStatus = ReservationStatus.PENDING
    source: ReservationSource = ReservationSource.ADMIN

    # Collections (child entities)
    room_assignments: List[RoomAssignment] = Field(default_factory=list)
    add_ons: List[AddOnLine] = Field(default_factory=list)
    payments: List[PaymentRecord] = Field(default_factory=list)

    # Discounts
    discount_percentage: Decimal = Decimal("0")
    discount_applied_by: Optional[str] = None
    loyalty_number: Optional[str] = None
    loyalty_points_redeemed: int = 0
    loyalty_redemption_value: Decimal = Decimal("0.00")
    loyalty_discount: Decimal = Decimal("0.00")

    # Computed amounts
    room_subtotal: Decimal = Decimal("0.00")
    add_ons_total: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    total_amount: Decimal = Decimal("0.00")
    amount_paid: Decimal = Decimal("0.00")

    special_requests: Optional[str] = None
    cancellation_reason: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    modified_at: datetime = Field(default_factory=datetime.utcnow)
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    created_by: str = "SYSTEM"
    version: int = 1

    model_config = ConfigDict(from_attributes=True)

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        guest_id: UUID,
        date_range: DateRange,
        guest_count: GuestCount,
        source: ReservationSource = ReservationSource.ADMIN,
        special_requests: Optional[str] = None,
        created_by: str = "SYSTEM"
    ) -> "Reservation":
        """Create a new, empty reservation in PENDING status"""
        return Reservation(
            confirmation_code=Reservation.generate_confirmation_code(),
            guest_id=guest_id,
            date_range=date_range,
            guest_count=guest_count,
            source=source,
            special_requests=special_requests,
            status=ReservationStatus.PENDING,
            created_by=created_by
        )

    @staticmethod
    def generate_confirmation_code() -> str:
        """Generate a candidate confirmation code"""
        import random
        import string
        return ''.join(random.choices(string.ascii_uppercase + string.digits, k=8))

    # ==================== QUERY METHODS ====================
    @property
    def check_in_date(self) -> date:
        return self.date_range.check_in

    @property
    def check_out_date(self) -> date:
        return self.date_range.check_out

    def get_nights(self) -> int:
        return self.date_range.nights()

    @property
    def outstanding_balance(self) -> Decimal:
        """Total minus paid; negative means overpayment"""
        return self.total_amount - self.amount_paid

    @property
    def display_balance(self) -> Decimal:
        return max(self.outstanding_balance, Decimal("0.00"))

    def is_fully_paid(self) -> bool:
        return self.outstanding_balance <= 0

    def is_active(self) -> bool:
        """Still holds inventory"""
        return self.status != ReservationStatus.CANCELLED

    def is_billable(self) -> bool:
        return self.status in _BILLABLE_STATUSES

    def room_capacity(self) -> int:
        return sum(a.room_type.max_occupancy for a in self.room_assignments)

    # ==================== STATE TRANSITION METHODS ====================
    def transition_to(self, requested: ReservationStatus) -> None:
        """Move to requested status if the transition table allows it"""
        if not can_transition(self.status, requested):
            raise InvalidStatusTransition(self.status, requested)
        self.status = requested
        self._touch()

    def ensure_can_transition(self, requested: ReservationStatus) -> None:
        if not can_transition(self.status, requested):
            raise InvalidStatusTransition(self.status, requested)

    def confirm(self) -> None:
        self.transition_to(ReservationStatus.CONFIRMED)

    def check_in(self, today: Optional[date] = None) -> None:
        """Mark guest as checked in; the stay must have started"""
        self.ensure_can_transition(ReservationStatus.CHECKED_IN)
        today = today or date.today()
        if self.date_range.check_in > today:
            raise ValidationError("Cannot check in before the reservation date")
        self.transition_to(ReservationStatus.CHECKED_IN)
        self.checked_in_at = datetime.utcnow()

    def check_out(self) -> None:
        """Mark guest as checked out; the bill must be settled"""
        self.ensure_can_transition(ReservationStatus.CHECKED_OUT)
        if self.outstanding_balance > 0:
            raise ValidationError(
                f"Outstanding balance of ${self.outstanding_balance} must be paid before check-out"
            )
        self.transition_to(ReservationStatus.CHECKED_OUT)
        self.checked_out_at = datetime.utcnow()

    def cancel(self, reason: str) -> None:
        self.transition_to(ReservationStatus.CANCELLED)
        self.cancellation_reason = reason

    # ==================== MODIFICATION METHODS ====================
    def add_room_assignment(self, assignment: RoomAssignment) -> None:
        self.room_assignments.append(assignment)
        self._touch()

    def add_add_on(self, line: AddOnLine) -> AddOnLine:
        self._ensure_billable()
        self.add_ons.append(line)
        self._touch()
        return line

    def remove_add_on(self, line_id: UUID) -> Optional[AddOnLine]:
        self._ensure_billable()
        for index, line in enumerate(self.add_ons):
            if line.line_id == line_id:
                removed = self.add_ons.pop(index)
                self._touch()
                return removed
        return None

    def record_payment(self, payment: PaymentRecord) -> None:
        self._ensure_billable()
        self.payments.append(payment)
        self.recalculate_amount_paid()
        self._touch()

    def recalculate_amount_paid(self) -> None:
        self.amount_paid = round_money(
            sum((p.amount for p in self.payments if p.is_successful()), Decimal("0"))
        )

    def apply_discount(self, percentage: Decimal, applied_by: str) -> None:
        self._ensure_billable()
        self.discount_percentage = percentage
        self.discount_applied_by = applied_by
        self._touch()

    def set_loyalty_redemption(self, points: int, discount: Decimal) -> None:
        self._ensure_billable()
        self.loyalty_points_redeemed += points
        self.loyalty_redemption_value = round_money(self.loyalty_redemption_value + discount)
        self._touch()

    def change_dates(self, new_range: DateRange) -> None:
        if self.status not in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED):
            raise ValidationError(
                f"Cannot modify dates of a reservation with status {self.status.value}"
            )
        self.date_range = new_range
        self._touch()

    def apply_totals(self, totals: ReservationTotals) -> None:
        """Store a from-scratch computation; loyalty discount is clamped by it"""
        self.room_subtotal = totals.room_subtotal
        self.add_ons_total = totals.add_ons_total
        self.discount_amount = totals.discount_amount
        self.loyalty_discount = totals.loyalty_discount
        self.tax_amount = totals.tax_amount
        self.total_amount = totals.total_amount

    def _ensure_billable(self) -> None:
        if not self.is_billable():
            raise ValidationError(
                f"Reservation {self.confirmation_code} with status {self.status.value} can no longer be changed"
            )

    def _touch(self) -> None:
        self.modified_at = datetime.utcnow()
        self.version += 1


class LoyaltyTransaction(BaseModel):
    """Immutable ledger entry"""
    model_config = ConfigDict(frozen=True)

    transaction_id: UUID = Field(default_factory=uuid4)
    transaction_type: LoyaltyTransactionType
    points: int
    balance_after: int = Field(ge=0)
    reservation_id: Optional[UUID] = None
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LoyaltyAccount(BaseModel):
    """Loyalty Aggregate Root Entity - balance plus append-only ledger"""

    account_id: UUID = Field(default_factory=uuid4)
    loyalty_number: str = Field(default_factory=lambda: LoyaltyAccount.generate_loyalty_number())
    guest_id: UUID
    email: str
    phone: Optional[str] = None
    points_balance: int = Field(ge=0, default=0)
    lifetime_points: int = Field(ge=0, default=0)
    tier: LoyaltyTier = LoyaltyTier.BRONZE
    active: bool = True
    enrolled_on: date = Field(default_factory=date.today)
    last_activity_on: Optional[date] = None
    transactions: List[LoyaltyTransaction] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @staticmethod
    def generate_loyalty_number() -> str:
        import random
        return "LOY" + ''.join(random.choices("0123456789", k=10))

    @property
    def tier_multiplier(self) -> Decimal:
        return self.tier.earn_multiplier

    def has_enough_points(self, points: int) -> bool:
        return self.points_balance >= points

    def post(
        self,
        transaction_type: LoyaltyTransactionType,
        points: int,
        description: str,
        reservation_id: Optional[UUID] = None
    ) -> LoyaltyTransaction:
        """Apply a positive point amount and append the ledger entry"""
        if points <= 0:
            raise ValidationError("Points must be positive")

        delta = points if transaction_type.is_credit else -points
        if self.points_balance + delta < 0:
            raise InsufficientPoints(self.points_balance, points)

        self.points_balance += delta
        if transaction_type.is_credit:
            self.lifetime_points += points
            self.tier = LoyaltyTier.for_lifetime_points(self.lifetime_points)
        self.last_activity_on = date.today()

        transaction = LoyaltyTransaction(
            transaction_type=transaction_type,
            points=delta,
            balance_after=self.points_balance,
            reservation_id=reservation_id,
            description=description
        )
        self.transactions.append(transaction)
        return transaction

    def ledger_balance(self) -> int:
        """Balance rebuilt from the ledger alone"""
        return sum(t.points for t in self.transactions)

    def ledger_lifetime_points(self) -> int:
        return sum(t.points for t in self.transactions if t.transaction_type.is_credit)


class WaitlistEntry(BaseModel):
    """Waitlist Aggregate Root Entity"""

    # Identity
    waitlist_id: UUID = Field(default_factory=uuid4)

    # Request Details
    guest_id: UUID
    room_type: RoomType
    requested_dates: DateRange
    guest_count: GuestCount

    # Status & Priority
    priority: Priority = Priority.MEDIUM
    status: WaitlistStatus = WaitlistStatus.ACTIVE

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: datetime
    notified_at: Optional[datetime] = None
    available_from: Optional[date] = None

    # Conversion
    converted_reservation_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def add_to_waitlist(
        guest_id: UUID,
        room_type: RoomType,
        requested_dates: DateRange,
        guest_count: GuestCount,
        priority: Priority = Priority.MEDIUM
    ) -> "WaitlistEntry":
        """Add new entry to waitlist"""
        created_at = datetime.utcnow()
        expires_at = created_at + timedelta(days=14)

        return WaitlistEntry(
            guest_id=guest_id,
            room_type=room_type,
            requested_dates=requested_dates,
            guest_count=guest_count,
            priority=priority,
            status=WaitlistStatus.ACTIVE,
            created_at=created_at,
            expires_at=expires_at
        )

    # ==================== STATE TRANSITION METHODS ====================
    def is_open(self) -> bool:
        return self.status in (WaitlistStatus.ACTIVE, WaitlistStatus.NOTIFIED)

    def matches_availability(self, room_type: RoomType, available_from: date) -> bool:
        """Room of the wanted type frees up on or before the wanted check-in"""
        return (
            self.room_type == room_type
            and available_from <= self.requested_dates.check_in
        )

    def mark_notified(self, available_from: date) -> bool:
        """Record notification; returns False when already notified"""
        if self.status != WaitlistStatus.ACTIVE:
            return False
        self.status = WaitlistStatus.NOTIFIED
        self.notified_at = datetime.utcnow()
        self.available_from = available_from
        return True

    def convert_to_reservation(self, reservation_id: UUID) -> None:
        """Convert waitlist entry to actual reservation"""
        if not self.is_open():
            raise ValidationError(
                f"Cannot convert waitlist entry with status {self.status.value}"
            )

        self.status = WaitlistStatus.CONVERTED
        self.converted_reservation_id = reservation_id

    def expire(self) -> None:
        if self.is_open():
            self.status = WaitlistStatus.EXPIRED

    def cancel(self) -> None:
        if self.is_open():
            self.status = WaitlistStatus.CANCELLED

    # ==================== QUERY METHODS ====================
    def calculate_priority_score(self) -> int:
        """Calculate priority score for ordering"""
        score = self.priority.value * 100

        # Earlier request = higher score
        days_waiting = (datetime.utcnow() - self.created_at).days
        score += days_waiting * 2

        return score

    def is_expired(self, today: Optional[date] = None) -> bool:
        """Past its expiry or past the wanted check-in date"""
        today = today or date.today()
        return self.is_open() and (
            datetime.utcnow() > self.expires_at or today > self.requested_dates.check_in
        )
