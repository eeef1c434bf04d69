# app/models/order.py
import uuid
from datetime import datetime, date, timezone

from sqlmodel import SQLModel, Field


class Order(SQLModel, table=True):
    """
    Customer order. Retained forever as a financial record.

    Monetary breakdown:
      - subtotal, discount_amount, final_total (final = subtotal - discount, >= 0)

    Idempotency flags (set once by the order state machine, never unset):
      - coins_awarded: earn side effect of Delivered has run
      - coins_refunded: refund side effect of Cancelled has run
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_number: str = Field(
        unique=True,
        index=True,
        description="Human-readable order number, e.g. BK-12345AB7Q",
    )

    # Guests place orders without an account
    user_id: uuid.UUID | None = Field(
        default=None,
        index=True,
        description="Owner account (by value, no enforced FK)",
    )

    customer_name: str = Field(description="Name given at checkout")
    phone: str = Field(description="Contact phone number")
    address: str = Field(description="Delivery address (or pickup note)")

    # Delivery | Pickup
    order_type: str = Field(default="Delivery")
    meal_time: str | None = None
    preferred_date: date | None = None
    instructions: str | None = None

    subtotal: float = Field(ge=0)
    discount_amount: float = Field(default=0.0, ge=0)
    final_total: float = Field(ge=0)

    coupon_code: str | None = Field(
        default=None,
        index=True,
        description="Uppercase coupon code used at placement",
    )

    # Received | Cooking | OutForDelivery | Delivered | Cancelled
    status: str = Field(
        default="Received",
        index=True,
        description="Order status lifecycle",
    )

    coins_awarded: bool = Field(default=False)
    coins_refunded: bool = Field(default=False)

    # Coins that funded the coupon used on this order (refunded on cancel)
    redeemed_coins: int = Field(default=0, ge=0)
    coins_earned: int = Field(default=0, ge=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order: { name, unit_price, quantity }.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    name: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )
