"""Notification outbox and dispatcher tests."""

import uuid
from datetime import datetime, timedelta, timezone

from sqlmodel import select

from app.models.notification import Notification, NotificationOutbox
from app.repositories.notification_repo import NotificationRepository
from app.repositories.user_repo import UserRepository
from app.services.notification_service import NotificationService


class TestProducer:
    def test_notify_only_queues(self, session, services, customer):
        services.notifier.notify_user(session, customer.id, "Hello", "Body")
        session.commit()

        entry = session.exec(select(NotificationOutbox)).one()
        assert entry.status == "pending"
        assert entry.attempts == 0
        assert session.exec(select(Notification)).all() == []

    def test_rolled_back_work_leaves_no_entry(self, session, services, customer):
        services.notifier.notify_user(session, customer.id, "Hello", "Body")
        session.rollback()
        assert session.exec(select(NotificationOutbox)).all() == []


class TestDrain:
    def test_fans_out_to_admins(self, session, session_factory, services, sender, customer, admin):
        services.notifier.notify(session, "admins", "New Order Received", "Order #1")
        session.commit()

        summary = services.notifier.drain(session_factory)

        assert summary.sent == 1
        assert summary.failed == 0
        rows = session.exec(select(Notification)).all()
        assert [r.user_id for r in rows] == [admin.id]
        assert sender.sent == [(admin.email, "New Order Received")]

        entry = session.exec(select(NotificationOutbox)).one()
        assert entry.status == "sent"
        assert entry.attempts == 1
        assert entry.processed_at is not None

    def test_everyone_target(self, session, session_factory, services, customer, admin):
        services.notifier.broadcast(session, "all", "Eid menu", "Pre-order now")
        services.notifier.drain(session_factory)

        recipients = {r.user_id for r in session.exec(select(Notification)).all()}
        assert recipients == {customer.id, admin.id}

    def test_second_drain_has_nothing_to_do(self, session, session_factory, services, customer):
        services.notifier.notify_user(session, customer.id, "Hello", "Body")
        session.commit()

        services.notifier.drain(session_factory)
        summary = services.notifier.drain(session_factory)

        assert summary.sent == 0
        assert len(session.exec(select(Notification)).all()) == 1

    def test_email_failure_is_recorded_not_raised(
        self, session, session_factory, customer, failing_sender
    ):
        notifier = NotificationService(
            NotificationRepository(), UserRepository(), sender=failing_sender
        )
        notifier.notify_user(session, customer.id, "Coins Earned!", "You earned 19 coins!")
        session.commit()

        summary = notifier.drain(session_factory)

        assert summary.sent == 1
        entry = session.exec(select(NotificationOutbox)).one()
        assert entry.status == "sent"
        assert "smtp down" in entry.last_error
        assert len(session.exec(select(Notification)).all()) == 1

    def test_unknown_recipient_is_delivered_to_nobody(self, session, session_factory, services):
        services.notifier.notify_user(session, uuid.uuid4(), "Hello", "Body")
        session.commit()

        assert services.notifier.drain(session_factory).sent == 1
        assert session.exec(select(Notification)).all() == []


class TestStaleClaims:
    def _claimed(self, session, user_id, claimed_at):
        session.add(
            NotificationOutbox(
                target="user",
                user_id=user_id,
                title="Order Cooking",
                body="Your order is being prepared",
                status="sending",
                attempts=1,
                claimed_at=claimed_at,
            )
        )
        session.commit()

    def test_orphaned_claim_is_redelivered(self, session, session_factory, services, customer):
        self._claimed(session, customer.id, datetime.now(timezone.utc) - timedelta(hours=1))

        summary = services.notifier.drain(session_factory)

        assert summary.sent == 1
        session.expire_all()
        entry = session.exec(select(NotificationOutbox)).one()
        assert entry.status == "sent"
        assert entry.attempts == 2
        assert len(session.exec(select(Notification)).all()) == 1

    def test_live_claim_is_left_to_its_owner(self, session, session_factory, services, customer):
        self._claimed(session, customer.id, datetime.now(timezone.utc))

        summary = services.notifier.drain(session_factory)

        assert summary.sent == 0
        session.expire_all()
        assert session.exec(select(NotificationOutbox)).one().status == "sending"
        assert session.exec(select(Notification)).all() == []


class TestHistory:
    def test_newest_first_and_marks_read(self, session, session_factory, services, customer):
        services.notifier.notify_user(session, customer.id, "First", "1")
        session.commit()
        services.notifier.drain(session_factory)
        services.notifier.notify_user(session, customer.id, "Second", "2")
        session.commit()
        services.notifier.drain(session_factory)

        listed = services.notifier.history(session, customer.id)
        assert [n.title for n in listed] == ["Second", "First"]
        assert all(n.is_read is False for n in listed)

        again = services.notifier.history(session, customer.id)
        assert all(n.is_read is True for n in again)
