# app/models/notification.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class NotificationOutbox(SQLModel, table=True):
    """
    Pending notification written inside the business transaction.

    The dispatcher drains rows after commit, so delivery never blocks
    or rolls back the financial write.

    target:
      - "user"   => user_id is required
      - "admins" => every user with role='admin'
      - "all"    => every user
    """

    __tablename__ = "notification_outbox"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    target: str = Field(default="user")
    user_id: uuid.UUID | None = Field(default=None, index=True)

    title: str
    body: str
    link: str = Field(default="/")

    # pending | sending | sent | failed
    status: str = Field(default="pending", index=True)
    attempts: int = Field(default=0)
    # set by the drainer that owns the entry; a stale claim is taken over
    claimed_at: datetime | None = None
    last_error: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
    processed_at: datetime | None = None


class Notification(SQLModel, table=True):
    """
    In-app notification history, one row per recipient.
    """

    __tablename__ = "notifications"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(index=True)
    title: str
    message: str
    link: str = Field(default="/")
    is_read: bool = Field(default=False)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
