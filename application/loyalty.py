"""Loyalty ledger use cases: enrollment, earning, redemption and bonuses"""
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional
import logging

from pydantic import BaseModel, Field

from domain.entities import Guest, LoyaltyAccount, LoyaltyTransaction, Reservation
from domain.enums import LoyaltyTransactionType
from domain.exceptions import InsufficientPoints, RedemptionCapExceeded, ValidationError
from domain.ports import ActivitySink, record_activity
from domain.repositories import LoyaltyAccountRepository
from domain.value_objects import Numeric, round_money, to_decimal

logger = logging.getLogger(__name__)


class LoyaltyConfig(BaseModel):
    """Earning and redemption rates"""

    earn_rate: Decimal = Field(default=Decimal("1"), ge=0)
    points_per_dollar: int = Field(default=100, gt=0)
    max_redemption_points: int = Field(default=10000, gt=0)
    welcome_bonus_points: int = Field(default=100, ge=0)


class LoyaltyService:
    """Service for Loyalty business use cases"""

    def __init__(self,
                 repository: LoyaltyAccountRepository,
                 activity: Optional[ActivitySink] = None,
                 config: Optional[LoyaltyConfig] = None):
        self.repository = repository
        self.activity = activity
        self.config = config or LoyaltyConfig()

    # ==================== LOOKUPS ====================
    async def find_account(self, email: Optional[str] = None, phone: Optional[str] = None) -> Optional[LoyaltyAccount]:
        """Find account by email, falling back to phone"""
        if not email and not phone:
            return None
        return await self.repository.find_by_email_or_phone(email, phone)

    async def find_by_loyalty_number(self, loyalty_number: str) -> Optional[LoyaltyAccount]:
        return await self.repository.find_by_loyalty_number(loyalty_number)

    async def find_by_guest_id(self, guest_id) -> Optional[LoyaltyAccount]:
        return await self.repository.find_by_guest_id(guest_id)

    # ==================== ENROLLMENT ====================
    async def enroll(self, guest: Guest, actor: str = "SYSTEM") -> LoyaltyAccount:
        """Open an account for the guest and post the welcome bonus"""
        missing = guest.missing_identity_fields()
        if missing:
            raise ValidationError(
                f"Missing required guest information for loyalty enrollment: {', '.join(missing)}"
            )

        existing = await self.repository.find_by_guest_id(guest.guest_id)
        if existing is None:
            existing = await self.repository.find_by_email_or_phone(guest.email, guest.phone)
        if existing is not None:
            raise ValidationError("Guest is already enrolled in the loyalty program")

        account = LoyaltyAccount(
            guest_id=guest.guest_id,
            email=guest.email.strip().lower(),
            phone=guest.phone
        )
        if self.config.welcome_bonus_points > 0:
            account.post(
                LoyaltyTransactionType.BONUS,
                self.config.welcome_bonus_points,
                "Welcome bonus for joining loyalty program"
            )
        account = await self.repository.save(account)
        guest.loyalty_member = True

        logger.info(f"Enrolled {guest.full_name} as loyalty member {account.loyalty_number}")
        await record_activity(
            self.activity, actor, "LOYALTY_ENROLL", "LoyaltyAccount", account.loyalty_number,
            f"Enrolled {guest.full_name} with {account.points_balance} welcome points"
        )
        return account

    # ==================== EARNING ====================
    def calculate_points_to_earn(self, account: LoyaltyAccount, payment_amount: Numeric) -> int:
        """floor(amount x earn rate x tier multiplier), using the tier held right now"""
        amount = to_decimal(payment_amount)
        if amount <= 0:
            return 0
        raw = amount * self.config.earn_rate * account.tier_multiplier
        return int(raw.to_integral_value(rounding=ROUND_FLOOR))

    async def earn(
        self,
        account: LoyaltyAccount,
        payment_amount: Numeric,
        reservation: Optional[Reservation] = None,
        actor: str = "SYSTEM"
    ) -> int:
        """Award points for a payment; returns the points posted"""
        if not account.active:
            return 0
        points = self.calculate_points_to_earn(account, payment_amount)
        if points <= 0:
            return 0

        description = f"Points earned for payment of ${round_money(payment_amount)}"
        if reservation is not None:
            description += f" on reservation {reservation.confirmation_code}"
        account.post(
            LoyaltyTransactionType.EARN,
            points,
            description,
            reservation_id=reservation.reservation_id if reservation else None
        )
        await self.repository.save(account)

        logger.info(f"Awarded {points} points to {account.loyalty_number}")
        await record_activity(
            self.activity, actor, "LOYALTY_EARN", "LoyaltyAccount", account.loyalty_number,
            f"Earned {points} points, balance {account.points_balance}"
        )
        return points

    # ==================== REDEMPTION ====================
    def points_to_dollars(self, points: int) -> Decimal:
        if points <= 0:
            return Decimal("0.00")
        return round_money(Decimal(points) / self.config.points_per_dollar)

    def max_redeemable_points(self, account: LoyaltyAccount, payable: Numeric) -> int:
        """Largest redemption allowed by balance, the cap and the payable amount"""
        payable = to_decimal(payable)
        if payable <= 0 or not account.active:
            return 0
        by_amount = int((payable * self.config.points_per_dollar).to_integral_value(rounding=ROUND_FLOOR))
        return max(0, min(account.points_balance, self.config.max_redemption_points, by_amount))

    def validate_redemption(
        self,
        account: LoyaltyAccount,
        points: int,
        reservation: Optional[Reservation] = None
    ) -> None:
        if points <= 0:
            raise ValidationError("Points to redeem must be positive")
        if not account.active:
            raise ValidationError(f"Loyalty account {account.loyalty_number} is not active")
        if points > account.points_balance:
            raise InsufficientPoints(account.points_balance, points)
        already_redeemed = reservation.loyalty_points_redeemed if reservation else 0
        if already_redeemed + points > self.config.max_redemption_points:
            raise RedemptionCapExceeded(already_redeemed + points, self.config.max_redemption_points)

    async def redeem(
        self,
        account: LoyaltyAccount,
        points: int,
        reservation: Optional[Reservation] = None,
        actor: str = "SYSTEM"
    ) -> Decimal:
        """Deduct points and return their dollar value"""
        self.validate_redemption(account, points, reservation)

        discount = self.points_to_dollars(points)
        description = f"Redeemed {points} points for ${discount} discount"
        if reservation is not None:
            description += f" on reservation {reservation.confirmation_code}"
        account.post(
            LoyaltyTransactionType.REDEEM,
            points,
            description,
            reservation_id=reservation.reservation_id if reservation else None
        )
        await self.repository.save(account)

        logger.info(f"Redeemed {points} points from {account.loyalty_number}")
        await record_activity(
            self.activity, actor, "LOYALTY_REDEEM", "LoyaltyAccount", account.loyalty_number,
            f"Redeemed {points} points for ${discount}, balance {account.points_balance}"
        )
        return discount

    # ==================== BONUS ====================
    async def bonus(
        self,
        account: LoyaltyAccount,
        points: int,
        description: str,
        reservation: Optional[Reservation] = None,
        actor: str = "SYSTEM"
    ) -> LoyaltyTransaction:
        transaction = account.post(
            LoyaltyTransactionType.BONUS,
            points,
            description,
            reservation_id=reservation.reservation_id if reservation else None
        )
        await self.repository.save(account)

        await record_activity(
            self.activity, actor, "LOYALTY_BONUS", "LoyaltyAccount", account.loyalty_number,
            f"{description}: {points} points, balance {account.points_balance}"
        )
        return transaction

    # ==================== HISTORY ====================
    @staticmethod
    def transaction_history(account: LoyaltyAccount) -> List[LoyaltyTransaction]:
        """Newest first"""
        return list(reversed(account.transactions))

    @staticmethod
    def earning_history(account: LoyaltyAccount) -> List[LoyaltyTransaction]:
        return [
            t for t in reversed(account.transactions)
            if t.transaction_type == LoyaltyTransactionType.EARN
        ]

    @staticmethod
    def redemption_history(account: LoyaltyAccount) -> List[LoyaltyTransaction]:
        return [
            t for t in reversed(account.transactions)
            if t.transaction_type == LoyaltyTransactionType.REDEEM
        ]

    @staticmethod
    def reconstruct_balance(account: LoyaltyAccount) -> int:
        """Balance from the ledger alone; matches points_balance when consistent"""
        return account.ledger_balance()
