# app/schemas/order.py
import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import ConfigDict, FiniteFloat, field_validator
from sqlmodel import SQLModel, Field

OrderType = Literal["Delivery", "Pickup"]
OrderStatus = Literal["Received", "Cooking", "OutForDelivery", "Delivered", "Cancelled"]


class OrderItemIn(SQLModel):
    """
    One cart line: { name, unit_price, quantity }.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(max_length=200)
    unit_price: FiniteFloat = Field(ge=0)
    quantity: int = Field(gt=0, le=1000)

    @field_validator("name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("item name cannot be empty")
        return v


class OrderCreate(SQLModel):
    """
    Payload for placing an order.

    Backend derives:
      - subtotal from items
      - discount from the coupon (validated and reserved atomically)
      - final_total = max(subtotal - discount, 0)

    subtotal / discount_amount / final_total may be sent as the figures the
    client showed; they are cross-checked and a mismatch is rejected.
    """

    model_config = ConfigDict(extra="forbid")

    items: list[OrderItemIn] = Field(min_length=1)

    customer_name: str = Field(max_length=100)
    phone: str = Field(max_length=20)
    address: str
    order_type: OrderType = "Delivery"
    meal_time: str | None = None
    preferred_date: date | None = None
    instructions: str | None = None

    coupon_code: str | None = None

    subtotal: FiniteFloat | None = Field(default=None, ge=0)
    discount_amount: FiniteFloat | None = Field(default=None, ge=0)
    final_total: FiniteFloat | None = Field(default=None, ge=0)

    @field_validator("customer_name", "phone", "address")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("coupon_code", "instructions", "meal_time")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class OrderRead(SQLModel):
    """
    Order without items.
    """

    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID | None
    customer_name: str
    phone: str
    address: str
    order_type: OrderType
    meal_time: str | None
    preferred_date: date | None
    instructions: str | None
    subtotal: float
    discount_amount: float
    final_total: float
    coupon_code: str | None
    status: OrderStatus
    coins_awarded: bool
    coins_refunded: bool
    redeemed_coins: int
    coins_earned: int
    created_at: datetime
    updated_at: datetime


class OrderItemRead(SQLModel):
    id: uuid.UUID
    name: str
    unit_price: float
    quantity: int
    line_total: float


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items.
    """

    items: list[OrderItemRead]


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
