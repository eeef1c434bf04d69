# app/repositories/notification_repo.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import or_, and_, update
from sqlmodel import Session, select

from app.models.notification import Notification, NotificationOutbox


class NotificationRepository:
    """
    Data access layer for the notification outbox and in-app history.
    """

    # ---- Outbox ----

    def enqueue(self, session: Session, entry: NotificationOutbox) -> NotificationOutbox:
        session.add(entry)
        return entry

    def get_outbox(self, session: Session, entry_id: uuid.UUID) -> NotificationOutbox | None:
        return session.get(NotificationOutbox, entry_id)

    def _deliverable(self, max_attempts: int, stale_before: datetime):
        """
        pending, failed with attempts left, or sending with a claim older
        than `stale_before` (its drainer died before recording the outcome).
        """
        return or_(
            NotificationOutbox.status == "pending",
            and_(
                NotificationOutbox.status == "failed",
                NotificationOutbox.attempts < max_attempts,
            ),
            and_(
                NotificationOutbox.status == "sending",
                NotificationOutbox.attempts < max_attempts,
                or_(
                    NotificationOutbox.claimed_at.is_(None),
                    NotificationOutbox.claimed_at < stale_before,
                ),
            ),
        )

    def list_deliverable(
        self,
        session: Session,
        max_attempts: int,
        stale_before: datetime,
        limit: int = 100,
    ) -> list[NotificationOutbox]:
        stmt = (
            select(NotificationOutbox)
            .where(self._deliverable(max_attempts, stale_before))
            .order_by(NotificationOutbox.created_at)
            .limit(limit)
        )
        return session.exec(stmt).all()

    def claim(
        self,
        session: Session,
        entry_id: uuid.UUID,
        max_attempts: int,
        stale_before: datetime,
    ) -> bool:
        """
        Move an entry to 'sending' so two drainers never deliver it twice.
        """
        stmt = (
            update(NotificationOutbox)
            .where(
                NotificationOutbox.id == entry_id,
                self._deliverable(max_attempts, stale_before),
            )
            .values(
                status="sending",
                attempts=NotificationOutbox.attempts + 1,
                claimed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount == 1

    def mark(
        self,
        session: Session,
        entry_id: uuid.UUID,
        status: str,
        error: str | None = None,
    ) -> None:
        session.execute(
            update(NotificationOutbox)
            .where(NotificationOutbox.id == entry_id)
            .values(
                status=status,
                last_error=error,
                processed_at=datetime.now(timezone.utc),
            )
        )

    # ---- In-app history ----

    def add_many(self, session: Session, rows: list[Notification]) -> None:
        session.add_all(rows)

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return session.exec(stmt).all()

    def mark_read(self, session: Session, ids: list[uuid.UUID]) -> None:
        if not ids:
            return
        session.execute(
            update(Notification)
            .where(Notification.id.in_(ids))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
