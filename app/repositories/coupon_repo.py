# app/repositories/coupon_repo.py
from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import or_, and_, update
from sqlmodel import Session, select

from app.models.coupon import Coupon


class CouponRepository:
    """
    Data access layer for coupons.

    `reserve` is the only writer of times_used.
    """

    def get_by_id(self, session: Session, coupon_id: uuid.UUID) -> Coupon | None:
        return session.get(Coupon, coupon_id)

    def get_by_code(self, session: Session, code: str) -> Coupon | None:
        """Case-insensitive lookup; codes are stored uppercase."""
        stmt = select(Coupon).where(Coupon.code == code.strip().upper())
        return session.exec(stmt).first()

    def list(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        owner_id: uuid.UUID | None = None,
    ) -> list[Coupon]:
        stmt = select(Coupon)
        if owner_id is not None:
            stmt = stmt.where(Coupon.owner_id == owner_id)
        stmt = stmt.order_by(Coupon.created_at.desc()).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def create(self, session: Session, coupon: Coupon) -> Coupon:
        session.add(coupon)
        session.flush()
        return coupon

    def update(self, session: Session, coupon: Coupon) -> Coupon:
        session.add(coupon)
        session.flush()
        return coupon

    def reserve(self, session: Session, coupon_id: uuid.UUID) -> bool:
        """
        Atomically consume one use.

            UPDATE coupons SET times_used = times_used + 1
            WHERE id = :id AND (usage_limit = 0 OR times_used < usage_limit)

        Returns False when no slot was left.
        """
        stmt = (
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit == 0, Coupon.times_used < Coupon.usage_limit),
            )
            .values(times_used=Coupon.times_used + 1)
        )
        result = session.execute(stmt)
        return result.rowcount == 1

    def deactivate_stale(self, session: Session, today: date) -> int:
        """
        Deactivate expired and exhausted coupons. Returns affected row count.
        """
        stmt = (
            update(Coupon)
            .where(
                Coupon.is_active == True,  # noqa: E712
                or_(
                    and_(Coupon.expiry_date.is_not(None), Coupon.expiry_date < today),
                    and_(Coupon.usage_limit > 0, Coupon.times_used >= Coupon.usage_limit),
                ),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        return result.rowcount
