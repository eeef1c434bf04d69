# app/schemas/coupon.py
import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import ConfigDict, FiniteFloat, field_validator, model_validator
from sqlmodel import SQLModel, Field

DiscountType = Literal["percentage", "flat"]


class CouponValidateRequest(SQLModel):
    """
    Payload for checking a code against the current cart.
    """

    model_config = ConfigDict(extra="forbid")

    code: str
    cart_subtotal: FiniteFloat = Field(ge=0)

    @field_validator("code")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Coupon code is required")
        return v


class CouponValidation(SQLModel):
    """
    Result of a coupon check.

    valid=True  => discount_amount is set
    valid=False => reason (stable code) and message (user-facing) are set
    """

    valid: bool
    code: str
    discount_amount: float = 0.0
    discount_type: DiscountType | None = None
    value: float | None = None
    reason: str | None = None
    message: str | None = None


class CouponBase(SQLModel):
    model_config = ConfigDict(extra="forbid")

    description: str | None = None
    discount_type: DiscountType = "percentage"
    value: FiniteFloat = Field(ge=0)
    min_order: FiniteFloat = Field(default=0.0, ge=0)
    usage_limit: int = Field(default=0, ge=0)
    start_date: date | None = None
    expiry_date: date | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_values(self):
        if self.discount_type == "percentage" and self.value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        if (
            self.start_date is not None
            and self.expiry_date is not None
            and self.expiry_date < self.start_date
        ):
            raise ValueError("expiry_date must not be before start_date")
        return self


class CouponCreate(CouponBase):
    """
    Admin payload for a new coupon. Code is stored uppercase.
    """

    code: str = Field(min_length=2, max_length=40)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v or " " in v:
            raise ValueError("code must be a single word")
        return v


class CouponUpdate(SQLModel):
    """
    Admin partial update. times_used and owner lock are not editable.
    """

    model_config = ConfigDict(extra="forbid")

    code: str | None = Field(default=None, min_length=2, max_length=40)
    description: str | None = None
    discount_type: DiscountType | None = None
    value: FiniteFloat | None = Field(default=None, ge=0)
    min_order: FiniteFloat | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    start_date: date | None = None
    expiry_date: date | None = None
    is_active: bool | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip().upper()


class CouponRead(SQLModel):
    id: uuid.UUID
    code: str
    description: str | None
    discount_type: DiscountType
    value: float
    min_order: float
    usage_limit: int
    times_used: int
    start_date: date | None
    expiry_date: date | None
    is_active: bool
    owner_id: uuid.UUID | None
    redeemed_coins: int
    created_at: datetime
