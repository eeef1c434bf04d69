# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Local mirror of an authenticated customer or staff member.

    Identity:
      - id: the JWT "sub" claim issued by the auth provider

    Role:
      - "user" | "admin"
      - guests have no row; their orders carry user_id = None

    Wallet data lives in wallet_accounts, keyed by this id.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        primary_key=True,
        index=True,
        description="JWT subject",
    )

    email: str = Field(
        unique=True,
        index=True,
    )

    name: str = Field(
        max_length=50,
        description="Display name; first part of email by default",
    )

    phone: str | None = Field(default=None, max_length=20)

    # Application role; admins receive order notifications
    role: str = Field(
        default="user",
        index=True,
        description="Application role: user | admin",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
