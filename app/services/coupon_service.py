# app/services/coupon_service.py
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import date, timedelta

from sqlmodel import Session

from app.core.errors import (
    CouponExpiredError,
    CouponInactiveError,
    CouponNotFoundError,
    CouponNotOwnerError,
    CouponNotStartedError,
    MinimumNotMetError,
    UsageLimitReachedError,
    ValidationFailedError,
)
from app.models.coupon import Coupon
from app.repositories.coupon_repo import CouponRepository
from app.schemas.coupon import CouponCreate, CouponUpdate

logger = logging.getLogger(__name__)

REDEEM_CODE_PREFIX = "REDEEM-"
_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class CouponQuote:
    coupon: Coupon
    discount_amount: float


def compute_discount(discount_type: str, value: float, subtotal: float) -> float:
    """
    percentage => subtotal * value / 100, flat => value.
    Clamped to [0, subtotal]: a coupon never makes a price negative.
    """
    if discount_type == "percentage":
        amount = subtotal * value / 100
    else:
        amount = value
    amount = min(max(amount, 0.0), max(subtotal, 0.0))
    return round(amount, 2)


class CouponService:
    """
    Coupon engine.

    Responsibilities:
      - validate a code against a cart subtotal (no side effects)
      - reserve one use atomically at order placement
      - mint owner-locked coupons for coin redemption
      - admin CRUD and the stale-coupon sweep
    """

    def __init__(self, repo: CouponRepository):
        self.repo = repo

    # -------- Engine --------

    def validate(
        self,
        session: Session,
        code: str,
        subtotal: float,
        user_id: uuid.UUID | None = None,
        today: date | None = None,
    ) -> CouponQuote:
        """
        Check a code against a subtotal and compute the discount.

        Failure order: NotFound, Inactive, NotOwner, NotStarted, Expired,
        UsageLimitReached, MinimumNotMet. Dates compare by day; a coupon is
        valid through the whole of its expiry day.
        """
        today = today or date.today()

        coupon = self.repo.get_by_code(session, code) if code and code.strip() else None
        if coupon is None:
            raise CouponNotFoundError()

        if not coupon.is_active:
            raise CouponInactiveError("This coupon is inactive")

        if coupon.owner_id is not None and coupon.owner_id != user_id:
            raise CouponNotOwnerError("This coupon belongs to another account")

        if coupon.start_date is not None and coupon.start_date > today:
            raise CouponNotStartedError("This coupon is not valid yet")

        if coupon.expiry_date is not None and coupon.expiry_date < today:
            raise CouponExpiredError("This coupon has expired")

        if coupon.usage_limit > 0 and coupon.times_used >= coupon.usage_limit:
            raise UsageLimitReachedError("Coupon usage limit reached")

        if subtotal < coupon.min_order:
            raise MinimumNotMetError(f"Minimum order of {coupon.min_order:g} required")

        discount = compute_discount(coupon.discount_type, coupon.value, subtotal)
        return CouponQuote(coupon=coupon, discount_amount=discount)

    def reserve(self, session: Session, coupon: Coupon) -> None:
        """
        Consume one use with a single conditional UPDATE. Must run inside
        the caller's transaction.
        """
        if not self.repo.reserve(session, coupon.id):
            logger.info("Coupon %s reservation lost: usage limit reached", coupon.code)
            raise UsageLimitReachedError("Coupon usage limit reached")

    def mint_redemption_coupon(
        self,
        session: Session,
        owner_id: uuid.UUID,
        coins: int,
        value: float,
        ttl_days: int,
        today: date | None = None,
    ) -> Coupon:
        """
        Single-use flat coupon locked to `owner_id`. No commit.
        """
        today = today or date.today()
        coupon = Coupon(
            code=self._unique_redeem_code(session),
            description=f"Redeemed {coins} coins",
            discount_type="flat",
            value=value,
            min_order=0.0,
            usage_limit=1,
            expiry_date=today + timedelta(days=ttl_days),
            is_active=True,
            owner_id=owner_id,
            redeemed_coins=coins,
        )
        return self.repo.create(session, coupon)

    def _unique_redeem_code(self, session: Session) -> str:
        while True:
            code = REDEEM_CODE_PREFIX + "".join(
                secrets.choice(_CODE_ALPHABET) for _ in range(8)
            )
            if self.repo.get_by_code(session, code) is None:
                return code

    # -------- Admin operations --------

    def create_coupon(self, session: Session, payload: CouponCreate) -> Coupon:
        code = payload.code.upper()
        if self.repo.get_by_code(session, code) is not None:
            raise ValidationFailedError("Coupon code already exists")

        coupon = Coupon(**payload.model_dump(exclude={"code"}), code=code)
        self.repo.create(session, coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    def list_coupons(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        owner_id: uuid.UUID | None = None,
    ) -> list[Coupon]:
        return self.repo.list(session, skip, limit, owner_id)

    def get_coupon(self, session: Session, coupon_id: uuid.UUID) -> Coupon:
        coupon = self.repo.get_by_id(session, coupon_id)
        if not coupon:
            raise CouponNotFoundError("Coupon not found")
        return coupon

    def update_coupon(
        self,
        session: Session,
        coupon_id: uuid.UUID,
        payload: CouponUpdate,
    ) -> Coupon:
        """
        Partial update. times_used is not editable; code changes keep
        uniqueness.
        """
        coupon = self.get_coupon(session, coupon_id)
        changes = payload.model_dump(exclude_unset=True)

        if "code" in changes:
            new_code = changes["code"].upper()
            existing = self.repo.get_by_code(session, new_code)
            if existing is not None and existing.id != coupon.id:
                raise ValidationFailedError("Coupon code already exists")
            changes["code"] = new_code

        for key, value in changes.items():
            setattr(coupon, key, value)

        self.repo.update(session, coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    def deactivate_coupon(self, session: Session, coupon_id: uuid.UUID) -> Coupon:
        """
        Coupons are never hard-deleted: orders reference codes by value.
        """
        coupon = self.get_coupon(session, coupon_id)
        coupon.is_active = False
        self.repo.update(session, coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    def sweep_stale(self, session: Session, today: date | None = None) -> int:
        """Deactivate expired and exhausted coupons (cron)."""
        count = self.repo.deactivate_stale(session, today or date.today())
        session.commit()
        logger.info("Coupon sweep deactivated %s coupons", count)
        return count
