# app/schemas/wallet.py
import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import ConfigDict
from sqlmodel import SQLModel

Tier = Literal["Bronze", "Silver", "Gold"]
TransactionType = Literal["earn", "redeem", "refund", "expire"]


class WalletTransactionRead(SQLModel):
    id: uuid.UUID
    type: TransactionType
    amount: int
    description: str
    order_id: uuid.UUID | None
    coupon_code: str | None
    created_at: datetime


class WalletRead(SQLModel):
    """
    Wallet view: balance, tier progress and the latest ledger rows
    (newest first).
    """

    user_id: uuid.UUID
    balance: int
    tier: Tier
    earn_rate_percent: int
    total_spent: float
    next_tier: Tier | None = None
    spend_to_next_tier: float = 0.0
    transactions: list[WalletTransactionRead]


class RedeemRequest(SQLModel):
    """
    Payload for converting coins into a coupon.

    The minimum is enforced by the wallet service so the caller gets a
    BelowMinimum reason rather than a generic validation error.
    """

    model_config = ConfigDict(extra="forbid")

    coins: int


class RedeemResult(SQLModel):
    coupon_code: str
    coins: int
    discount_value: float
    expiry_date: date
    balance: int


class ReconcileRead(SQLModel):
    user_id: uuid.UUID
    cached_balance: int
    ledger_balance: int
    totals: dict[str, int]
    consistent: bool


class ExpiryRunResult(SQLModel):
    expired: int
    warned: int
