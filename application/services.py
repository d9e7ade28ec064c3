"""Application Services - Business use cases"""
from uuid import UUID
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
import asyncio
import logging

from pydantic import BaseModel

from application.inventory import InventoryAllocator, RoomClaim
from application.loyalty import LoyaltyService
from application.schemas import BookingRequest
from domain.entities import (
    AddOnLine, Guest, LoyaltyAccount, PaymentRecord, Reservation, WaitlistEntry,
)
from domain.enums import (
    AddOnType, PaymentMethod, Priority, ReservationSource, ReservationStatus, RoomType, StaffRole,
)
from domain.exceptions import InsufficientInventory, OccupancyExceeded, ValidationError
from domain.ports import ActivitySink, record_activity
from domain.pricing import InvoiceSummary, PricingEngine
from domain.repositories import GuestRepository, ReservationRepository, WaitlistRepository
from domain.value_objects import DateRange, GuestCount, GuestDetails, Numeric, round_money, to_decimal

logger = logging.getLogger(__name__)


class BookingPolicy(BaseModel):
    """Stay-length, lead-time and discount limits"""

    max_stay_nights: int = 30
    max_advance_days: int = 365
    admin_discount_cap: Decimal = Decimal("15")
    manager_discount_cap: Decimal = Decimal("30")

    def discount_cap(self, role: StaffRole) -> Decimal:
        if role == StaffRole.MANAGER:
            return self.manager_discount_cap
        return self.admin_discount_cap


class ReservationService:
    """Service for Reservation business use cases"""

    def __init__(self,
                 repository: ReservationRepository,
                 guest_repo: GuestRepository,
                 allocator: InventoryAllocator,
                 pricing: PricingEngine,
                 loyalty: LoyaltyService,
                 activity: Optional[ActivitySink] = None,
                 policy: Optional[BookingPolicy] = None):
        self.repository = repository
        self.guest_repo = guest_repo
        self.allocator = allocator
        self.pricing = pricing
        self.loyalty = loyalty
        self.activity = activity
        self.policy = policy or BookingPolicy()
        self._reservation_locks: Dict[UUID, asyncio.Lock] = {}

    def reservation_lock(self, reservation_id: UUID) -> asyncio.Lock:
        """Serializes changes to one reservation; always taken before room-type locks"""
        if reservation_id not in self._reservation_locks:
            self._reservation_locks[reservation_id] = asyncio.Lock()
        return self._reservation_locks[reservation_id]

    # ==================== VALIDATION ====================
    def validate_stay(self, check_in: date, check_out: date, today: Optional[date] = None) -> DateRange:
        today = today or date.today()
        if check_out <= check_in:
            raise ValidationError("Check-out date must be after check-in date")
        if check_in < today:
            raise ValidationError("Check-in date cannot be in the past")
        if (check_in - today).days > self.policy.max_advance_days:
            raise ValidationError(
                f"Reservations cannot be made more than {self.policy.max_advance_days} days in advance"
            )
        nights = (check_out - check_in).days
        if nights > self.policy.max_stay_nights:
            raise ValidationError(f"Maximum stay is {self.policy.max_stay_nights} nights")
        return DateRange(check_in=check_in, check_out=check_out)

    def validate_discount(self, percentage: Numeric, role: StaffRole) -> Decimal:
        percentage = to_decimal(percentage)
        if percentage < 0 or percentage > 100:
            raise ValidationError("Discount percentage must be between 0 and 100")
        cap = self.policy.discount_cap(role)
        if percentage > cap:
            raise ValidationError(f"{role.value} can apply at most {cap}% discount")
        return percentage

    # ==================== BOOKING ====================
    async def create_booking(self, request: BookingRequest, today: Optional[date] = None) -> Reservation:
        """
        Create a reservation as one atomic unit.

        Inputs are validated before anything changes. Rooms of every requested
        type are claimed under the room-type locks, which stay held until the
        reservation is persisted. Any failure after the first claim undoes
        every step already taken and re-raises the original error.
        """
        date_range = self.validate_stay(request.check_in, request.check_out, today)
        room_types = _group_by_type(request.requested_room_types())
        if not room_types:
            raise ValidationError("At least one room must be selected")
        guest_count = GuestCount(adults=request.adults, children=request.children)
        guests_per_room = self.allocator.distribute_guests(guest_count.total, room_types)

        discount_role = request.discount_role or StaffRole.ADMIN
        if request.discount_percentage > 0:
            self.validate_discount(request.discount_percentage, discount_role)

        account = await self.loyalty.find_account(request.guest.email, request.guest.phone)
        if request.points_to_redeem > 0:
            if account is None:
                raise ValidationError("Guest does not have a loyalty account")
            self.loyalty.validate_redemption(account, request.points_to_redeem)

        guest = await self.find_or_create_guest(request.guest)
        reservation = Reservation.create(
            guest_id=guest.guest_id,
            date_range=date_range,
            guest_count=guest_count,
            source=request.source,
            special_requests=request.special_requests,
            created_by=request.actor
        )
        if account is not None:
            reservation.loyalty_number = account.loyalty_number

        async with self.allocator.lock_room_types(room_types):
            claims: List[RoomClaim] = []
            account_snapshot: Optional[LoyaltyAccount] = None
            try:
                offset = 0
                for room_type in _unique_in_order(room_types):
                    quantity = room_types.count(room_type)
                    claims.extend(await self.allocator.assign(
                        reservation,
                        room_type,
                        quantity,
                        date_range.check_in,
                        date_range.check_out,
                        guests_per_room[offset:offset + quantity],
                        actor=request.actor
                    ))
                    offset += quantity

                for selection in request.add_ons:
                    reservation.add_add_on(self._build_add_on(
                        reservation, selection.add_on_type, selection.quantity
                    ))

                if request.discount_percentage > 0:
                    reservation.apply_discount(request.discount_percentage, request.actor)
                self._recalculate(reservation)

                if request.points_to_redeem > 0:
                    account_snapshot = account.model_copy(deep=True)
                    discount = await self.loyalty.redeem(
                        account, request.points_to_redeem, reservation, actor=request.actor
                    )
                    reservation.set_loyalty_redemption(request.points_to_redeem, discount)
                    self._recalculate(reservation)

                if request.source == ReservationSource.KIOSK:
                    reservation.confirm()

                reservation = await self.repository.save(reservation)
            except Exception:
                await self._rollback_booking(reservation, claims, account, account_snapshot)
                raise

        logger.info(
            f"Reservation {reservation.confirmation_code} created with "
            f"{len(reservation.room_assignments)} room(s), total ${reservation.total_amount}"
        )
        await record_activity(
            self.activity, request.actor, "RESERVATION_CREATED", "Reservation", reservation.confirmation_code,
            f"Created {reservation.status.value} reservation for {guest.full_name}, "
            f"{date_range.check_in} to {date_range.check_out}"
        )

        if request.enroll_in_loyalty and account is None:
            enrolled = await self.loyalty.enroll(guest, actor=request.actor)
            reservation.loyalty_number = enrolled.loyalty_number
            reservation = await self.repository.update(reservation)

        return reservation

    async def _rollback_booking(
        self,
        reservation: Reservation,
        claims: List[RoomClaim],
        account: Optional[LoyaltyAccount],
        account_snapshot: Optional[LoyaltyAccount]
    ) -> None:
        logger.warning(f"Rolling back booking {reservation.confirmation_code}")
        try:
            await self.allocator.restore(claims)
        except Exception as e:
            logger.error(f"Failed to restore rooms for {reservation.confirmation_code}: {e}", exc_info=True)

        try:
            await self.repository.delete(reservation.reservation_id)
        except Exception as e:
            logger.error(f"Failed to remove reservation {reservation.confirmation_code}: {e}", exc_info=True)

        if account is not None and account_snapshot is not None:
            try:
                for field_name in LoyaltyAccount.model_fields:
                    setattr(account, field_name, getattr(account_snapshot, field_name))
                await self.loyalty.repository.save(account)
            except Exception as e:
                logger.error(f"Failed to restore loyalty account {account.loyalty_number}: {e}", exc_info=True)

    async def find_or_create_guest(self, details: GuestDetails) -> Guest:
        """Upsert the guest directory entry for these details"""
        existing = await self.guest_repo.find_by_email(details.email)
        fields = details.model_dump()
        fields["email"] = details.email.lower()
        if existing is not None:
            guest = Guest(guest_id=existing.guest_id, loyalty_member=existing.loyalty_member,
                          created_at=existing.created_at, **fields)
        else:
            guest = Guest(**fields)
        return await self.guest_repo.save(guest)

    # ==================== QUERIES ====================
    async def get_reservation(self, reservation_id: UUID) -> Optional[Reservation]:
        """Get reservation by ID"""
        return await self.repository.find_by_id(reservation_id)

    async def get_reservation_by_confirmation_code(self, code: str) -> Optional[Reservation]:
        """Get reservation by confirmation code"""
        return await self.repository.find_by_confirmation_code(code)

    async def get_reservations_by_guest(self, guest_id: UUID) -> List[Reservation]:
        """Get all reservations for a guest"""
        return await self.repository.find_by_guest_id(guest_id)

    async def get_all_reservations(self) -> List[Reservation]:
        """Get all reservations"""
        return await self.repository.find_all()

    async def get_invoice_summary(self, reservation_id: UUID) -> Optional[InvoiceSummary]:
        reservation = await self.repository.find_by_id(reservation_id)
        if not reservation:
            return None
        return self.pricing.invoice_summary(reservation)

    # ==================== LIFECYCLE ====================
    async def confirm_reservation(self, reservation_id: UUID, actor: str = "SYSTEM") -> Optional[Reservation]:
        """Confirm a pending reservation"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            reservation.confirm()
            reservation = await self.repository.update(reservation)

        await self._record_status(reservation, actor)
        return reservation

    async def check_in_guest(
        self,
        reservation_id: UUID,
        actor: str = "SYSTEM",
        today: Optional[date] = None
    ) -> Optional[Reservation]:
        """Check in guest and mark the held rooms occupied"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            reservation.check_in(today)
            for assignment in reservation.room_assignments:
                await self.allocator.occupy(assignment)
            reservation = await self.repository.update(reservation)

        logger.info(f"Guest checked in: {reservation.confirmation_code}")
        await self._record_status(reservation, actor)
        return reservation

    async def check_out_guest(
        self,
        reservation_id: UUID,
        actor: str = "SYSTEM",
        today: Optional[date] = None
    ) -> Optional[Reservation]:
        """Check out a settled reservation; rooms go to cleaning and free up tomorrow"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            reservation.check_out()
            reservation = await self.repository.update(reservation)

            available_from = (today or date.today()) + timedelta(days=1)
            for assignment in reservation.room_assignments:
                await self.allocator.release(
                    assignment, via_checkout=True, available_from=available_from, actor=actor
                )

        logger.info(f"Guest checked out: {reservation.confirmation_code}")
        await self._record_status(reservation, actor)
        return reservation

    async def cancel_reservation(
        self,
        reservation_id: UUID,
        reason: str = "Guest requested cancellation",
        actor: str = "SYSTEM"
    ) -> Optional[Reservation]:
        """Cancel reservation, release its rooms and refund redeemed points"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            reservation.ensure_can_transition(ReservationStatus.CANCELLED)
            room_types = [a.room_type for a in reservation.room_assignments]
            async with self.allocator.lock_room_types(room_types):
                previous_status = reservation.status
                reservation.cancel(reason)
                try:
                    reservation = await self.repository.update(reservation)
                except Exception:
                    reservation.status = previous_status
                    reservation.cancellation_reason = None
                    raise

                for assignment in reservation.room_assignments:
                    await self.allocator.release(
                        assignment, available_from=reservation.check_in_date, actor=actor
                    )

            if reservation.loyalty_points_redeemed > 0:
                await self._refund_points(reservation, actor)

        logger.info(f"Reservation cancelled: {reservation.confirmation_code} Reason: {reason}")
        await self._record_status(reservation, actor, reason)
        return reservation

    async def _refund_points(self, reservation: Reservation, actor: str) -> None:
        account = await self._loyalty_account_for(reservation)
        if account is None:
            logger.error(
                f"No loyalty account found to refund {reservation.loyalty_points_redeemed} points "
                f"for cancelled reservation {reservation.confirmation_code}"
            )
            return

        await self.loyalty.bonus(
            account,
            reservation.loyalty_points_redeemed,
            f"Points refunded for cancelled reservation {reservation.confirmation_code}",
            reservation,
            actor=actor
        )
        logger.info(
            f"Refunded {reservation.loyalty_points_redeemed} loyalty points for "
            f"cancelled reservation {reservation.confirmation_code}"
        )

    async def modify_dates(
        self,
        reservation_id: UUID,
        new_check_in: date,
        new_check_out: date,
        actor: str = "SYSTEM",
        today: Optional[date] = None
    ) -> Optional[Reservation]:
        """Move a pending or confirmed stay; every held room must be free on the new dates"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            if reservation.status not in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED):
                raise ValidationError(
                    f"Cannot modify dates of a reservation with status {reservation.status.value}"
                )
            new_range = self.validate_stay(new_check_in, new_check_out, today)

            room_types = [a.room_type for a in reservation.room_assignments]
            async with self.allocator.lock_room_types(room_types):
                for assignment in reservation.room_assignments:
                    room = await self.allocator.room_repo.find_by_id(assignment.room_id)
                    if room is None or not await self.allocator.is_unit_available(
                        room, new_range.check_in, new_range.check_out, reservation.reservation_id
                    ):
                        raise InsufficientInventory(assignment.room_type, 0, 1)

                for assignment in reservation.room_assignments:
                    assignment.nightly_rate = self.pricing.average_nightly_rate(
                        assignment.room_type, new_range.check_in, new_range.check_out
                    )
                reservation.change_dates(new_range)
                self._recalculate(reservation)
                reservation = await self.repository.update(reservation)

        await record_activity(
            self.activity, actor, "RESERVATION_MODIFIED", "Reservation", reservation.confirmation_code,
            f"Dates changed to {new_range.check_in} - {new_range.check_out}"
        )
        return reservation

    # ==================== BILLING ====================
    async def record_payment(
        self,
        reservation_id: UUID,
        amount: Numeric,
        method: PaymentMethod = PaymentMethod.CARD,
        processed_by: str = "SYSTEM"
    ) -> Optional[PaymentRecord]:
        """Record a completed payment and award loyalty points for it"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            amount = round_money(amount)
            if amount <= 0:
                raise ValidationError("Payment amount must be positive")
            outstanding = reservation.outstanding_balance
            if outstanding <= 0:
                raise ValidationError(f"Reservation {reservation.confirmation_code} is already fully paid")
            if amount > outstanding:
                logger.warning(f"Payment amount exceeds balance. Adjusting to: {outstanding}")
                amount = outstanding

            payment = PaymentRecord(amount=amount, method=method, processed_by=processed_by)
            reservation.record_payment(payment)
            reservation = await self.repository.update(reservation)

            logger.info(f"Payment processed: ${amount} for reservation {reservation.confirmation_code}")
            await record_activity(
                self.activity, processed_by, "PAYMENT_RECORDED", "Reservation", reservation.confirmation_code,
                f"{method.value} payment of ${amount}, balance ${reservation.display_balance}"
            )

            account = await self._loyalty_account_for(reservation)
            if account is not None:
                await self.loyalty.earn(account, amount, reservation, actor=processed_by)
        return payment

    async def add_add_on(
        self,
        reservation_id: UUID,
        add_on_type: AddOnType,
        quantity: Optional[int] = None,
        actor: str = "SYSTEM"
    ) -> Optional[Reservation]:
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            line = reservation.add_add_on(self._build_add_on(reservation, add_on_type, quantity))
            self._recalculate(reservation)
            reservation = await self.repository.update(reservation)

        await record_activity(
            self.activity, actor, "ADD_ON_ADDED", "Reservation", reservation.confirmation_code,
            f"Added {add_on_type.display_name} x{line.quantity} (${line.line_total})"
        )
        return reservation

    async def remove_add_on(self, reservation_id: UUID, line_id: UUID, actor: str = "SYSTEM") -> Optional[Reservation]:
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            removed = reservation.remove_add_on(line_id)
            if removed is None:
                raise ValidationError(f"Add-on {line_id} not found on reservation {reservation.confirmation_code}")
            self._recalculate(reservation)
            reservation = await self.repository.update(reservation)

        await record_activity(
            self.activity, actor, "ADD_ON_REMOVED", "Reservation", reservation.confirmation_code,
            f"Removed {removed.add_on_type.display_name}"
        )
        return reservation

    async def apply_discount(
        self,
        reservation_id: UUID,
        percentage: Numeric,
        applied_by: str,
        role: StaffRole = StaffRole.ADMIN
    ) -> Optional[Reservation]:
        """Apply a staff percentage discount within the role's limit"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            percentage = self.validate_discount(percentage, role)
            reservation.apply_discount(percentage, applied_by)
            self._recalculate(reservation)
            reservation = await self.repository.update(reservation)

        logger.info(
            f"Applied {percentage}% discount to reservation {reservation.confirmation_code} by {applied_by}"
        )
        await record_activity(
            self.activity, applied_by, "DISCOUNT_APPLIED", "Reservation", reservation.confirmation_code,
            f"{percentage}% discount, new total ${reservation.total_amount}"
        )
        return reservation

    async def apply_loyalty_redemption(
        self,
        reservation_id: UUID,
        points: int,
        actor: str = "SYSTEM"
    ) -> Optional[Reservation]:
        """Redeem the guest's points against this reservation"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            if not reservation.is_billable():
                raise ValidationError(
                    f"Reservation {reservation.confirmation_code} with status "
                    f"{reservation.status.value} can no longer be changed"
                )
            account = await self._loyalty_account_for(reservation)
            if account is None:
                raise ValidationError("Guest does not have a loyalty account")

            snapshot = account.model_copy(deep=True)
            previous_number = reservation.loyalty_number
            discount = await self.loyalty.redeem(account, points, reservation, actor=actor)
            try:
                reservation.loyalty_number = account.loyalty_number
                reservation.set_loyalty_redemption(points, discount)
                self._recalculate(reservation)
                reservation = await self.repository.update(reservation)
            except Exception:
                reservation.loyalty_number = previous_number
                for field_name in LoyaltyAccount.model_fields:
                    setattr(account, field_name, getattr(snapshot, field_name))
                await self.loyalty.repository.save(account)
                raise

        logger.info(
            f"Applied loyalty discount of ${discount} ({points} points) to reservation "
            f"{reservation.confirmation_code}"
        )
        return reservation

    async def recalculate_totals(self, reservation_id: UUID) -> Optional[Reservation]:
        """Recompute every amount from the line items"""
        async with self.reservation_lock(reservation_id):
            reservation = await self.repository.find_by_id(reservation_id)
            if not reservation:
                return None

            self._recalculate(reservation)
            return await self.repository.update(reservation)

    # ==================== HELPERS ====================
    async def _loyalty_account_for(self, reservation: Reservation) -> Optional[LoyaltyAccount]:
        """The account linked at booking, else the account enrolled under the guest"""
        if reservation.loyalty_number:
            account = await self.loyalty.find_by_loyalty_number(reservation.loyalty_number)
            if account is not None:
                return account
        return await self.loyalty.find_by_guest_id(reservation.guest_id)

    def _recalculate(self, reservation: Reservation) -> None:
        reservation.apply_totals(self.pricing.compute_totals(reservation))

    def _build_add_on(self, reservation: Reservation, add_on_type: AddOnType, quantity: Optional[int]) -> AddOnLine:
        if quantity is None:
            quantity = self.pricing.add_on_quantity(
                add_on_type, reservation.get_nights(), reservation.guest_count.total
            )
        return AddOnLine(add_on_type=add_on_type, unit_price=add_on_type.base_price, quantity=quantity)

    async def _record_status(self, reservation: Reservation, actor: str, detail: Optional[str] = None) -> None:
        message = f"Reservation is now {reservation.status.value}"
        if detail:
            message += f": {detail}"
        await record_activity(
            self.activity, actor, f"RESERVATION_{reservation.status.value}", "Reservation",
            reservation.confirmation_code, message
        )


def _unique_in_order(room_types: List[RoomType]) -> List[RoomType]:
    seen: List[RoomType] = []
    for room_type in room_types:
        if room_type not in seen:
            seen.append(room_type)
    return seen


def _group_by_type(room_types: List[RoomType]) -> List[RoomType]:
    """Units of the same type made adjacent, types kept in first-requested order"""
    return [
        room_type
        for unique in _unique_in_order(room_types)
        for room_type in [unique] * room_types.count(unique)
    ]




class WaitlistService:
    """Service for Waitlist business use cases"""

    def __init__(self, repository: WaitlistRepository, activity: Optional[ActivitySink] = None):
        self.repository = repository
        self.activity = activity

    async def add_to_waitlist(
        self,
        guest_id: UUID,
        room_type: RoomType,
        requested_dates: DateRange,
        guest_count: GuestCount,
        priority: Priority = Priority.MEDIUM
    ) -> WaitlistEntry:
        """Add guest to waitlist"""
        if guest_count.total > room_type.max_occupancy:
            raise OccupancyExceeded(room_type.max_occupancy, guest_count.total)

        waitlist_entry = WaitlistEntry.add_to_waitlist(
            guest_id=guest_id,
            room_type=room_type,
            requested_dates=requested_dates,
            guest_count=guest_count,
            priority=priority
        )
        return await self.repository.save(waitlist_entry)

    async def get_waitlist_entry(self, waitlist_id: UUID) -> Optional[WaitlistEntry]:
        """Get waitlist entry by ID"""
        return await self.repository.find_by_id(waitlist_id)

    async def get_room_waitlist(self, room_type: RoomType) -> List[WaitlistEntry]:
        """Get waitlist entries for a room type (sorted by priority)"""
        entries = await self.repository.find_active_by_room_type(room_type)
        return sorted(entries, key=lambda e: e.calculate_priority_score(), reverse=True)

    async def on_room_available(self, room_type: RoomType, room_number: str, available_from: date) -> List[WaitlistEntry]:
        """Notify matching entries; entries already notified are left as they are"""
        notified = []
        for entry in await self.get_room_waitlist(room_type):
            if entry.is_expired():
                entry.expire()
                await self.repository.update(entry)
                continue
            if not entry.matches_availability(room_type, available_from):
                continue
            if entry.mark_notified(available_from):
                await self.repository.update(entry)
                notified.append(entry)
                await record_activity(
                    self.activity, "SYSTEM", "WAITLIST_NOTIFIED", "WaitlistEntry", entry.waitlist_id,
                    f"Room {room_number} ({room_type.value}) available from {available_from}"
                )

        if notified:
            logger.info(f"Notified {len(notified)} waitlist entries for room {room_number}")
        return notified

    async def convert_to_reservation(
        self,
        waitlist_id: UUID,
        reservation_id: UUID
    ) -> Optional[WaitlistEntry]:
        """Convert waitlist entry to reservation"""
        entry = await self.repository.find_by_id(waitlist_id)
        if not entry:
            return None

        entry.convert_to_reservation(reservation_id)
        return await self.repository.update(entry)

    async def cancel_entry(self, waitlist_id: UUID) -> Optional[WaitlistEntry]:
        entry = await self.repository.find_by_id(waitlist_id)
        if not entry:
            return None

        entry.cancel()
        return await self.repository.update(entry)

    async def expire_stale_entries(self, today: Optional[date] = None) -> List[WaitlistEntry]:
        """Expire open entries past their expiry or their wanted check-in"""
        expired = []
        for entry in await self.repository.find_all():
            if entry.is_expired(today):
                entry.expire()
                await self.repository.update(entry)
                expired.append(entry)
        return expired
