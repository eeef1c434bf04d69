# app/models/wallet.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class WalletAccount(SQLModel, table=True):
    """
    Loyalty wallet, one per user.

    `balance` is a cached view of the ledger:
        balance == sum(credits) - sum(debits) over wallet_transactions
    It is only ever changed in the same transaction that appends the
    matching WalletTransaction row.
    """

    __tablename__ = "wallet_accounts"

    user_id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="Owner (users.id, by value)",
    )

    balance: int = Field(default=0, ge=0)

    # Bronze | Silver | Gold
    tier: str = Field(default="Bronze")

    total_spent: float = Field(
        default=0.0,
        ge=0,
        description="Lifetime spend, grows only on delivery earn events",
    )

    last_transaction_at: datetime | None = Field(
        default=None,
        index=True,
        description="Last ledger append; drives coin expiry",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class WalletTransaction(SQLModel, table=True):
    """
    Append-only ledger row. Never updated or deleted.

    `amount` is always positive; the sign comes from `type`:
      - earn, refund   => credit
      - redeem, expire => debit
    """

    __tablename__ = "wallet_transactions"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(index=True)

    # earn | redeem | refund | expire
    type: str = Field(index=True)

    amount: int = Field(gt=0)
    description: str

    order_id: uuid.UUID | None = Field(default=None, index=True)
    coupon_code: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
