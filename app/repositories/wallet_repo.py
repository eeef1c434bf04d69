# app/repositories/wallet_repo.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from app.models.wallet import WalletAccount, WalletTransaction

# Dialects with INSERT ... ON CONFLICT DO NOTHING
INSERT_IGNORE = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WalletRepository:
    """
    Data access layer for wallet_accounts and wallet_transactions.

    Balance changes are single UPDATE statements with the arithmetic done
    in SQL, so two writers never overwrite each other's read value.
    No commits here; the wallet service owns the transaction.
    """

    # ---- Accounts ----

    def get_account(self, session: Session, user_id: uuid.UUID) -> WalletAccount | None:
        return session.get(WalletAccount, user_id)

    def get_or_create_account(self, session: Session, user_id: uuid.UUID) -> WalletAccount:
        """
        Return the account, opening an empty one on first use.

        Two transactions may both miss the row; the insert skips an existing
        key instead of failing, and the winner's row is read back.
        """
        account = self.get_account(session, user_id)
        if account is not None:
            return account

        dialect = session.get_bind().dialect.name
        if dialect not in INSERT_IGNORE:
            account = WalletAccount(user_id=user_id)
            session.add(account)
            session.flush()
            return account

        values = WalletAccount(user_id=user_id).model_dump()
        session.execute(
            INSERT_IGNORE[dialect](WalletAccount)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        stmt = (
            select(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return session.exec(stmt).one()

    def lock_account(self, session: Session, user_id: uuid.UUID) -> WalletAccount:
        """
        Take the row write lock and return a freshly loaded account.

        The lock is taken with a no-op UPDATE rather than SELECT ... FOR UPDATE
        so it also serializes writers on SQLite.
        """
        self.get_or_create_account(session, user_id)
        session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .values(updated_at=_now())
        )
        stmt = (
            select(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return session.exec(stmt).one()

    def credit(
        self,
        session: Session,
        user_id: uuid.UUID,
        amount: int,
    ) -> None:
        session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .values(
                balance=WalletAccount.balance + amount,
                last_transaction_at=_now(),
                updated_at=_now(),
            )
        )

    def debit_if_sufficient(
        self,
        session: Session,
        user_id: uuid.UUID,
        amount: int,
        *,
        touch_activity: bool = True,
    ) -> bool:
        """
        Conditional decrement: succeeds only while balance >= amount.
        """
        values: dict = {
            "balance": WalletAccount.balance - amount,
            "updated_at": _now(),
        }
        if touch_activity:
            values["last_transaction_at"] = _now()

        result = session.execute(
            update(WalletAccount)
            .where(
                WalletAccount.user_id == user_id,
                WalletAccount.balance >= amount,
            )
            .values(values)
        )
        return result.rowcount == 1

    def record_spend(
        self,
        session: Session,
        user_id: uuid.UUID,
        amount: float,
        tier: str,
    ) -> None:
        session.execute(
            update(WalletAccount)
            .where(WalletAccount.user_id == user_id)
            .values(total_spent=WalletAccount.total_spent + amount, tier=tier)
        )

    def zero_if_inactive(
        self,
        session: Session,
        user_id: uuid.UUID,
        expected_balance: int,
        before: datetime,
    ) -> bool:
        """
        Clear the balance only if it is still `expected_balance` and the
        account is still inactive since `before`.
        """
        result = session.execute(
            update(WalletAccount)
            .where(
                WalletAccount.user_id == user_id,
                WalletAccount.balance == expected_balance,
                WalletAccount.last_transaction_at < before,
            )
            .values(balance=0, updated_at=_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_inactive_with_balance(
        self,
        session: Session,
        before: datetime,
        after: datetime | None = None,
    ) -> list[WalletAccount]:
        """
        Accounts holding coins whose last ledger activity is older than `before`
        (and newer than `after`, when given).
        """
        stmt = select(WalletAccount).where(
            WalletAccount.balance > 0,
            WalletAccount.last_transaction_at.is_not(None),
            WalletAccount.last_transaction_at < before,
        )
        if after is not None:
            stmt = stmt.where(WalletAccount.last_transaction_at > after)
        return session.exec(stmt).all()

    # ---- Ledger ----

    def append(self, session: Session, entry: WalletTransaction) -> WalletTransaction:
        session.add(entry)
        session.flush()
        return entry

    def list_transactions(
        self,
        session: Session,
        user_id: uuid.UUID,
        limit: int | None = None,
    ) -> list[WalletTransaction]:
        stmt = (
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return session.exec(stmt).all()

    def totals_by_type(self, session: Session, user_id: uuid.UUID) -> dict[str, int]:
        stmt = (
            select(WalletTransaction.type, func.coalesce(func.sum(WalletTransaction.amount), 0))
            .where(WalletTransaction.user_id == user_id)
            .group_by(WalletTransaction.type)
        )
        return {type_: int(total) for type_, total in session.exec(stmt).all()}
