# app/repositories/order_repo.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import update
from sqlmodel import Session, select

from app.models.order import Order, OrderItem


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - No commits here; every write is part of a unit of work owned by
        the service (see app.database.run_in_transaction).
    """

    # ---- Orders ----

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return session.exec(stmt).all()

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def get_by_number(self, session: Session, order_number: str) -> Order | None:
        stmt = select(Order).where(Order.order_number == order_number)
        return session.exec(stmt).first()

    def number_exists(self, session: Session, order_number: str) -> bool:
        return self.get_by_number(session, order_number) is not None

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()
        return order

    def set_status(self, session: Session, order_id: uuid.UUID, status: str) -> None:
        """
        Unconditional status write.

        Issued as an UPDATE statement so it takes the row lock before the
        flag checks that follow in the same transaction.
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .values(status=status, updated_at=datetime.now(timezone.utc))
        )
        session.execute(stmt)

    def claim_flag(self, session: Session, order_id: uuid.UUID, flag: str) -> bool:
        """
        Compare-and-swap an idempotency flag from False to True.

        Returns True only for the caller that flipped it. A concurrent
        transaction blocks on the row lock and then sees the flag set.
        """
        column = getattr(Order, flag)
        stmt = (
            update(Order)
            .where(Order.id == order_id, column == False)  # noqa: E712
            .values({flag: True})
        )
        result = session.execute(stmt)
        return result.rowcount == 1

    def set_coins_earned(self, session: Session, order_id: uuid.UUID, coins: int) -> None:
        session.execute(update(Order).where(Order.id == order_id).values(coins_earned=coins))

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = select(OrderItem).where(OrderItem.order_id == order_id)
        return session.exec(stmt).all()

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        return items
