"""Wallet ledger tests: redeem, reconciliation and coin expiry."""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlmodel import Session, select

from app.core.errors import (
    AccountNotFoundError,
    BelowMinimumError,
    InsufficientBalanceError,
)
from app.models.coupon import Coupon
from app.models.notification import NotificationOutbox
from app.models.wallet import WalletAccount, WalletTransaction
from app.repositories.wallet_repo import WalletRepository

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def fund(session: Session, user_id: uuid.UUID, coins: int, **fields) -> WalletAccount:
    """Open an account whose balance is backed by a single earn row."""
    account = WalletAccount(
        user_id=user_id,
        balance=coins,
        last_transaction_at=fields.pop("last_transaction_at", NOW),
        **fields,
    )
    session.add(account)
    if coins:
        session.add(
            WalletTransaction(
                user_id=user_id, type="earn", amount=coins, description="seed"
            )
        )
    session.commit()
    return account


def ledger(session: Session, user_id: uuid.UUID) -> list[WalletTransaction]:
    stmt = select(WalletTransaction).where(WalletTransaction.user_id == user_id)
    return session.exec(stmt).all()


class TestRedeem:
    def test_below_minimum(self, session, services):
        user_id = uuid.uuid4()
        fund(session, user_id, 50)
        with pytest.raises(BelowMinimumError) as exc:
            services.wallet.redeem(session, user_id, 9, today=TODAY)
        assert exc.value.message == "Minimum 10 coins required to redeem."
        assert exc.value.status_code == 422

    def test_redeem_full_balance(self, session, services):
        user_id = uuid.uuid4()
        fund(session, user_id, 10)

        result = services.wallet.redeem(session, user_id, 10, today=TODAY)

        assert result.balance == 0
        assert result.discount_value == 10
        assert result.coupon_code.startswith("REDEEM-")
        assert len(result.coupon_code) == len("REDEEM-") + 8
        assert result.expiry_date == date(2026, 4, 9)

        coupon = session.exec(
            select(Coupon).where(Coupon.code == result.coupon_code)
        ).one()
        assert coupon.owner_id == user_id
        assert coupon.usage_limit == 1
        assert coupon.discount_type == "flat"
        assert coupon.redeemed_coins == 10

        rows = [r for r in ledger(session, user_id) if r.type == "redeem"]
        assert len(rows) == 1
        assert rows[0].amount == 10
        assert rows[0].coupon_code == result.coupon_code

        session.expire_all()
        assert services.wallet.reconcile(session, user_id).consistent

    def test_insufficient_balance(self, session, services):
        user_id = uuid.uuid4()
        fund(session, user_id, 30)
        with pytest.raises(InsufficientBalanceError):
            services.wallet.redeem(session, user_id, 31, today=TODAY)

        session.expire_all()
        assert session.get(WalletAccount, user_id).balance == 30
        assert session.exec(select(Coupon)).all() == []

    def test_no_account_is_insufficient(self, session, services):
        with pytest.raises(InsufficientBalanceError):
            services.wallet.redeem(session, uuid.uuid4(), 10, today=TODAY)


class TestReadAndReconcile:
    def test_untouched_wallet_reads_empty(self, session, services):
        wallet = services.wallet.get_wallet(session, uuid.uuid4())
        assert wallet.balance == 0
        assert wallet.tier == "Bronze"
        assert wallet.next_tier == "Silver"
        assert wallet.spend_to_next_tier == 5000
        assert wallet.transactions == []

    def test_history_is_limited_and_newest_first(self, session, services):
        user_id = uuid.uuid4()
        fund(session, user_id, 100)
        services.wallet.redeem(session, user_id, 10, today=TODAY)
        services.wallet.redeem(session, user_id, 20, today=TODAY)

        wallet = services.wallet.get_wallet(session, user_id, limit=2)
        assert wallet.balance == 70
        assert [t.amount for t in wallet.transactions] == [20, 10]

    def test_reconcile_detects_drift(self, session, services):
        user_id = uuid.uuid4()
        fund(session, user_id, 40)
        account = session.get(WalletAccount, user_id)
        account.balance = 45
        session.add(account)
        session.commit()

        report = services.wallet.reconcile(session, user_id)
        assert report.cached_balance == 45
        assert report.ledger_balance == 40
        assert report.consistent is False

    def test_reconcile_unknown_account(self, session, services):
        with pytest.raises(AccountNotFoundError):
            services.wallet.reconcile(session, uuid.uuid4())


class TestExpiry:
    def test_inactive_balance_expires(self, session, services):
        user_id = uuid.uuid4()
        fund(session, user_id, 80, last_transaction_at=NOW - timedelta(days=91))

        result = services.wallet.expire_inactive(session, now=NOW)

        assert result.expired == 1
        session.expire_all()
        account = session.get(WalletAccount, user_id)
        assert account.balance == 0
        expire_rows = [r for r in ledger(session, user_id) if r.type == "expire"]
        assert [r.amount for r in expire_rows] == [80]
        assert services.wallet.reconcile(session, user_id).consistent

        titles = [
            e.title
            for e in session.exec(
                select(NotificationOutbox).where(NotificationOutbox.user_id == user_id)
            ).all()
        ]
        assert titles == ["Coins Expired"]

    def test_active_and_warned_accounts(self, session, services):
        active = uuid.uuid4()
        soon = uuid.uuid4()
        fund(session, active, 80, last_transaction_at=NOW - timedelta(days=10))
        fund(session, soon, 25, last_transaction_at=NOW - timedelta(days=85))

        result = services.wallet.expire_inactive(session, now=NOW)

        assert result.expired == 0
        assert result.warned == 1
        session.expire_all()
        assert session.get(WalletAccount, active).balance == 80
        assert session.get(WalletAccount, soon).balance == 25

        warned = session.exec(
            select(NotificationOutbox).where(NotificationOutbox.user_id == soon)
        ).one()
        assert warned.title == "Coins Expiring Soon!"

    def test_empty_wallet_is_ignored(self, session, services):
        fund(session, uuid.uuid4(), 0, last_transaction_at=NOW - timedelta(days=200))
        assert services.wallet.expire_inactive(session, now=NOW).expired == 0


class TestAccountOpening:
    def test_first_use_opens_empty_account(self, session):
        user_id = uuid.uuid4()
        account = WalletRepository().get_or_create_account(session, user_id)
        session.commit()

        assert account.balance == 0
        assert account.tier == "Bronze"
        assert session.get(WalletAccount, user_id) is account

    def test_row_opened_by_another_transaction_is_reused(self, session, monkeypatch):
        user_id = uuid.uuid4()
        fund(session, user_id, 25)
        repo = WalletRepository()
        # The competing insert committed after this transaction's lookup
        monkeypatch.setattr(repo, "get_account", lambda s, uid: None)

        account = repo.get_or_create_account(session, user_id)
        session.commit()

        assert account.balance == 25
        assert len(session.exec(select(WalletAccount)).all()) == 1
