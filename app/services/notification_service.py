# app/services/notification_service.py
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from app.core import email_client
from app.core.config import get_settings
from app.core.errors import CollaboratorUnavailableError
from app.models.notification import Notification, NotificationOutbox
from app.models.user import User
from app.repositories.notification_repo import NotificationRepository
from app.repositories.user_repo import UserRepository
from app.schemas.notification import NotificationRead

settings = get_settings()
logger = logging.getLogger(__name__)

TARGETS = {"user", "admins", "all"}


@dataclass
class DrainSummary:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


class NotificationService:
    """
    Notification dispatcher.

    Core services only call `notify` / `notify_user`, which append an
    outbox row to the caller's open transaction. `drain` runs after
    commit (background task or cron), resolves recipients, writes the
    in-app history and sends email when SMTP is configured.

    Delivery problems are logged here and never reach the caller of a
    financial operation.
    """

    def __init__(
        self,
        repo: NotificationRepository,
        user_repo: UserRepository,
        sender: Callable[..., None] | None = None,
    ):
        self.repo = repo
        self.user_repo = user_repo
        self.sender = sender or email_client.send_email

    # -------- Producer side (inside the caller's transaction) --------

    def notify(
        self,
        session: Session,
        target: str,
        title: str,
        body: str,
        link: str = "/",
        user_id: uuid.UUID | None = None,
    ) -> NotificationOutbox:
        if target not in TARGETS:
            raise ValueError(f"Unknown notification target: {target}")
        if target == "user" and user_id is None:
            raise ValueError("user_id is required for target='user'")

        entry = NotificationOutbox(
            target=target,
            user_id=user_id,
            title=title,
            body=body,
            link=link,
        )
        return self.repo.enqueue(session, entry)

    def notify_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        title: str,
        body: str,
        link: str = "/",
    ) -> NotificationOutbox:
        return self.notify(session, "user", title, body, link, user_id=user_id)

    def broadcast(
        self,
        session: Session,
        target: str,
        title: str,
        body: str,
        link: str = "/",
    ) -> NotificationOutbox:
        """Admin-initiated notification to 'admins' or 'all'; commits."""
        entry = self.notify(session, target, title, body, link)
        session.commit()
        session.refresh(entry)
        return entry

    # -------- Consumer side (after commit) --------

    def drain(
        self,
        session_factory: Callable[[], Session],
        limit: int = 100,
    ) -> DrainSummary:
        """
        Deliver pending entries, retry failed ones and take over stale claims.

        Never raises: every failure is logged and recorded on the entry.
        """
        summary = DrainSummary()

        try:
            with session_factory() as session:
                entry_ids = [
                    e.id
                    for e in self.repo.list_deliverable(
                        session,
                        settings.NOTIFICATION_MAX_ATTEMPTS,
                        self._stale_before(),
                        limit,
                    )
                ]
        except Exception:
            logger.exception("Notification drain could not read the outbox")
            summary.errors.append("outbox unavailable")
            return summary

        for entry_id in entry_ids:
            try:
                delivered = self._deliver_one(session_factory, entry_id)
            except Exception as exc:
                logger.exception("Notification %s failed", entry_id)
                summary.failed += 1
                summary.errors.append(str(exc))
                self._mark_failed(session_factory, entry_id, str(exc))
                continue

            if delivered:
                summary.sent += 1
            else:
                summary.skipped += 1

        if entry_ids:
            logger.info(
                "Notification drain: sent=%s failed=%s skipped=%s",
                summary.sent,
                summary.failed,
                summary.skipped,
            )
        return summary

    def _deliver_one(
        self,
        session_factory: Callable[[], Session],
        entry_id: uuid.UUID,
    ) -> bool:
        with session_factory() as session:
            if not self.repo.claim(
                session,
                entry_id,
                settings.NOTIFICATION_MAX_ATTEMPTS,
                self._stale_before(),
            ):
                # Another drainer owns it
                session.rollback()
                return False
            session.commit()

            entry = self.repo.get_outbox(session, entry_id)
            recipients = self._resolve_recipients(session, entry)

            self.repo.add_many(
                session,
                [
                    Notification(
                        user_id=user.id,
                        title=entry.title,
                        message=entry.body,
                        link=entry.link,
                    )
                    for user in recipients
                ],
            )

            email_error = self._send_emails(entry, recipients)
            self.repo.mark(session, entry_id, "sent", email_error)
            session.commit()
            return True

    def _stale_before(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(
            seconds=settings.NOTIFICATION_CLAIM_TIMEOUT_SECONDS
        )

    def _resolve_recipients(self, session: Session, entry: NotificationOutbox) -> list[User]:
        if entry.target == "admins":
            return self.user_repo.list_by_role(session, "admin")
        if entry.target == "all":
            return self.user_repo.list_everyone(session)

        user = self.user_repo.get_by_id(session, entry.user_id)
        return [user] if user else []

    def _send_emails(self, entry: NotificationOutbox, recipients: list[User]) -> str | None:
        """
        Best-effort email fan-out. In-app history is already written, so a
        transport failure is recorded on the entry but does not fail it.
        """
        if not email_client.is_configured() and self.sender is email_client.send_email:
            return None

        errors: list[str] = []
        for user in recipients:
            try:
                self._send_email(user, entry)
            except CollaboratorUnavailableError as exc:
                logger.warning("Email to %s failed: %s", user.email, exc)
                errors.append(f"{user.email}: {exc}")
        return "; ".join(errors) or None

    def _send_email(self, user: User, entry: NotificationOutbox) -> None:
        try:
            self.sender(
                to_email=user.email,
                subject=entry.title,
                text_body=f"{entry.body}\n\n{entry.link}",
            )
        except Exception as exc:
            raise CollaboratorUnavailableError(str(exc)) from exc

    def _mark_failed(
        self,
        session_factory: Callable[[], Session],
        entry_id: uuid.UUID,
        error: str,
    ) -> None:
        try:
            with session_factory() as session:
                self.repo.mark(session, entry_id, "failed", error)
                session.commit()
        except Exception:
            logger.exception("Could not record failure for notification %s", entry_id)

    # -------- In-app history --------

    def history(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[NotificationRead]:
        """
        Newest-first notification history. Unread entries are marked read.

        The returned rows keep their pre-read `is_read` value so clients can
        highlight what was new.
        """
        rows = self.repo.list_for_user(session, user_id, skip, limit)
        snapshot = [NotificationRead(**row.model_dump()) for row in rows]
        self.repo.mark_read(session, [row.id for row in rows if not row.is_read])
        session.commit()
        return snapshot
