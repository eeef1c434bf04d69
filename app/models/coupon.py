# app/models/coupon.py
import uuid
from datetime import datetime, date, timezone

from sqlmodel import SQLModel, Field


class Coupon(SQLModel, table=True):
    """
    Discount code.

    - code is unique and stored uppercase (lookups are case-insensitive)
    - usage_limit == 0 means unlimited
    - times_used only grows, through the atomic reservation in CouponService
    - owner_id locks the code to one account (coin redemption coupons)
    - redeemed_coins > 0 marks a coupon minted from wallet coins
    """

    __tablename__ = "coupons"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    code: str = Field(unique=True, index=True)
    description: str | None = None

    # percentage | flat
    discount_type: str = Field(default="percentage")
    value: float = Field(ge=0)

    min_order: float = Field(default=0.0, ge=0)

    usage_limit: int = Field(default=0, ge=0)
    times_used: int = Field(default=0, ge=0)

    start_date: date | None = None
    expiry_date: date | None = Field(
        default=None,
        description="Last valid day (inclusive); None = never expires",
    )

    is_active: bool = Field(default=True, index=True)

    owner_id: uuid.UUID | None = Field(default=None, index=True)
    redeemed_coins: int = Field(default=0, ge=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
