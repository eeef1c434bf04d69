# app/services/wallet_service.py
import logging
import uuid
from datetime import date, datetime, timedelta, timezone

from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import (
    AccountNotFoundError,
    BelowMinimumError,
    InsufficientBalanceError,
)
from app.database import run_in_transaction
from app.models.order import Order
from app.models.wallet import WalletTransaction
from app.repositories.wallet_repo import WalletRepository
from app.schemas.wallet import (
    ExpiryRunResult,
    ReconcileRead,
    RedeemResult,
    WalletRead,
    WalletTransactionRead,
)
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.tier_service import compute_earn, compute_tier, next_tier

settings = get_settings()
logger = logging.getLogger(__name__)

CREDIT_TYPES = {"earn", "refund"}


class WalletService:
    """
    Wallet ledger engine.

    Every balance change is paired with exactly one appended
    WalletTransaction in the same transaction, so the cached balance
    always equals the ledger sum.

    `earn_for_order` and `refund` are primitives: they run inside the
    caller's unit of work and never commit. They are not idempotent on
    their own; the order state machine guards them with order flags.
    """

    def __init__(
        self,
        repo: WalletRepository,
        coupon_service: CouponService,
        notifier: NotificationService,
    ):
        self.repo = repo
        self.coupon_service = coupon_service
        self.notifier = notifier

    # -------- Primitives (caller's transaction) --------

    def earn_for_order(self, session: Session, user_id: uuid.UUID, order: Order) -> int:
        """
        Credit coins for a delivered order.

        Lifetime spend grows by the order total and the tier is recomputed
        from the new spend before the rate is applied. Zero coins is a
        no-op: no spend change, no ledger row.

        Returns the coins credited.
        """
        account = self.repo.lock_account(session, user_id)
        coins, info = compute_earn(order.final_total, account.total_spent)
        if coins <= 0:
            logger.info("Order %s earns no coins (total %s)", order.order_number, order.final_total)
            return 0

        self.repo.record_spend(session, user_id, order.final_total, info.tier)
        self.repo.credit(session, user_id, coins)
        self.repo.append(
            session,
            WalletTransaction(
                user_id=user_id,
                type="earn",
                amount=coins,
                description=f"Earned from Order #{order.order_number}",
                order_id=order.id,
            ),
        )
        logger.info(
            "Wallet %s earned %s coins from order %s (tier %s)",
            user_id,
            coins,
            order.order_number,
            info.tier,
        )
        return coins

    def refund(
        self,
        session: Session,
        user_id: uuid.UUID,
        coins: int,
        order: Order | None = None,
    ) -> None:
        """
        Give coins back. Must not be called twice for the same cause.
        """
        if coins <= 0:
            return

        self.repo.get_or_create_account(session, user_id)
        self.repo.credit(session, user_id, coins)
        self.repo.append(
            session,
            WalletTransaction(
                user_id=user_id,
                type="refund",
                amount=coins,
                description=(
                    f"Refund for Cancelled Order #{order.order_number}"
                    if order
                    else "Coin refund"
                ),
                order_id=order.id if order else None,
            ),
        )
        logger.info("Wallet %s refunded %s coins", user_id, coins)

    # -------- Operations (own transaction) --------

    def redeem(
        self,
        session: Session,
        user_id: uuid.UUID,
        coins: int,
        today: date | None = None,
    ) -> RedeemResult:
        """
        Convert coins into a single-use flat coupon locked to the owner.

        Raises:
            BelowMinimumError: coins < REDEEM_MIN_COINS
            InsufficientBalanceError: coins > balance
        """
        minimum = settings.REDEEM_MIN_COINS
        if coins < minimum:
            raise BelowMinimumError(f"Minimum {minimum} coins required to redeem.")

        def work() -> RedeemResult:
            account = self.repo.lock_account(session, user_id)
            balance_before = account.balance

            if balance_before < coins or not self.repo.debit_if_sufficient(
                session, user_id, coins
            ):
                raise InsufficientBalanceError("Insufficient coin balance.")

            value = round(coins * settings.COIN_VALUE, 2)
            coupon = self.coupon_service.mint_redemption_coupon(
                session,
                owner_id=user_id,
                coins=coins,
                value=value,
                ttl_days=settings.REDEEM_COUPON_TTL_DAYS,
                today=today,
            )
            self.repo.append(
                session,
                WalletTransaction(
                    user_id=user_id,
                    type="redeem",
                    amount=coins,
                    description=f"Redeemed for {value:g} coupon ({coupon.code})",
                    coupon_code=coupon.code,
                ),
            )
            return RedeemResult(
                coupon_code=coupon.code,
                coins=coins,
                discount_value=value,
                expiry_date=coupon.expiry_date,
                balance=balance_before - coins,
            )

        result = run_in_transaction(session, work)
        logger.info("Wallet %s redeemed %s coins as %s", user_id, coins, result.coupon_code)
        return result

    def get_wallet(
        self,
        session: Session,
        user_id: uuid.UUID,
        limit: int | None = None,
    ) -> WalletRead:
        """
        Balance, tier and latest transactions. Accounts that were never
        touched read as an empty Bronze wallet.
        """
        account = self.repo.get_account(session, user_id)
        balance = account.balance if account else 0
        total_spent = account.total_spent if account else 0.0

        info = compute_tier(total_spent)
        upcoming, remaining = next_tier(total_spent)
        rows = self.repo.list_transactions(
            session, user_id, limit or settings.WALLET_HISTORY_LIMIT
        )

        return WalletRead(
            user_id=user_id,
            balance=balance,
            tier=info.tier,
            earn_rate_percent=info.earn_rate_percent,
            total_spent=total_spent,
            next_tier=upcoming,
            spend_to_next_tier=remaining,
            transactions=[
                WalletTransactionRead(**row.model_dump()) for row in rows
            ],
        )

    def reconcile(self, session: Session, user_id: uuid.UUID) -> ReconcileRead:
        """
        Compare the cached balance against the ledger sum.
        """
        account = self.repo.get_account(session, user_id)
        if account is None:
            raise AccountNotFoundError("Wallet not found")

        totals = self.repo.totals_by_type(session, user_id)
        ledger_balance = sum(
            total if type_ in CREDIT_TYPES else -total
            for type_, total in totals.items()
        )
        return ReconcileRead(
            user_id=user_id,
            cached_balance=account.balance,
            ledger_balance=ledger_balance,
            totals=totals,
            consistent=account.balance == ledger_balance,
        )

    def expire_inactive(
        self,
        session: Session,
        now: datetime | None = None,
    ) -> ExpiryRunResult:
        """
        Cron: expire coins after COIN_EXPIRY_DAYS without ledger activity and
        warn accounts entering the last COIN_EXPIRY_WARNING_DAYS.

        Each expiry is its own unit of work, appending an `expire` row for
        the full balance.
        """
        now = now or datetime.now(timezone.utc)
        expire_before = now - timedelta(days=settings.COIN_EXPIRY_DAYS)
        warn_before = expire_before + timedelta(days=settings.COIN_EXPIRY_WARNING_DAYS)

        candidates = [
            a.user_id
            for a in self.repo.list_inactive_with_balance(session, before=expire_before)
        ]

        expired = 0
        for user_id in candidates:

            def work(user_id: uuid.UUID = user_id) -> bool:
                account = self.repo.lock_account(session, user_id)
                coins = account.balance
                if coins <= 0 or not self.repo.zero_if_inactive(
                    session, user_id, coins, expire_before
                ):
                    return False
                self.repo.append(
                    session,
                    WalletTransaction(
                        user_id=user_id,
                        type="expire",
                        amount=coins,
                        description=f"{coins} coins expired after inactivity",
                    ),
                )
                self.notifier.notify_user(
                    session,
                    user_id,
                    "Coins Expired",
                    "Your coins have expired due to inactivity.",
                    "/account/wallet",
                )
                return True

            if run_in_transaction(session, work):
                expired += 1

        warned_accounts = self.repo.list_inactive_with_balance(
            session, before=warn_before, after=expire_before
        )
        for account in warned_accounts:
            self.notifier.notify_user(
                session,
                account.user_id,
                "Coins Expiring Soon!",
                f"Your coins will expire in {settings.COIN_EXPIRY_WARNING_DAYS} days. "
                "Order now to use them!",
                "/menus",
            )
        session.commit()

        logger.info("Coin expiry: expired=%s warned=%s", expired, len(warned_accounts))
        return ExpiryRunResult(expired=expired, warned=len(warned_accounts))
