"""Coupon engine tests: discount math, validation order, atomic reservation."""

import threading
import uuid
from datetime import date

import pytest
from sqlmodel import Session, select

from app.core.errors import (
    CouponExpiredError,
    CouponInactiveError,
    CouponNotFoundError,
    CouponNotOwnerError,
    CouponNotStartedError,
    MinimumNotMetError,
    UsageLimitReachedError,
    ValidationFailedError,
)
from app.models.coupon import Coupon
from app.models.order import Order
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.schemas.order import OrderCreate
from app.services.coupon_service import compute_discount

TODAY = date(2026, 3, 10)


def add_coupon(session: Session, **fields) -> Coupon:
    data = {"code": "SAVE10", "discount_type": "percentage", "value": 10}
    data.update(fields)
    coupon = Coupon(**data)
    session.add(coupon)
    session.commit()
    session.refresh(coupon)
    return coupon


class TestComputeDiscount:
    def test_percentage(self):
        assert compute_discount("percentage", 10, 200) == 20

    def test_half_off_small_cart(self):
        assert compute_discount("percentage", 50, 40) == 20

    def test_flat(self):
        assert compute_discount("flat", 50, 200) == 50

    def test_flat_is_clamped_to_subtotal(self):
        assert compute_discount("flat", 500, 300) == 300

    def test_rounding(self):
        assert compute_discount("percentage", 15, 99.99) == 15.0


class TestValidate:
    def test_valid_coupon(self, session, services):
        add_coupon(session)
        quote = services.coupons.validate(session, "save10", 400, today=TODAY)
        assert quote.coupon.code == "SAVE10"
        assert quote.discount_amount == 40

    def test_unknown_code(self, session, services):
        with pytest.raises(CouponNotFoundError) as exc:
            services.coupons.validate(session, "NOPE", 400, today=TODAY)
        assert exc.value.message == "Invalid coupon code"

    def test_inactive(self, session, services):
        add_coupon(session, is_active=False)
        with pytest.raises(CouponInactiveError):
            services.coupons.validate(session, "SAVE10", 400, today=TODAY)

    def test_owner_lock(self, session, services):
        owner = uuid.uuid4()
        add_coupon(session, owner_id=owner)
        with pytest.raises(CouponNotOwnerError):
            services.coupons.validate(session, "SAVE10", 400, uuid.uuid4(), TODAY)
        with pytest.raises(CouponNotOwnerError):
            services.coupons.validate(session, "SAVE10", 400, None, TODAY)
        assert services.coupons.validate(session, "SAVE10", 400, owner, TODAY)

    def test_not_started(self, session, services):
        add_coupon(session, start_date=date(2026, 3, 11))
        with pytest.raises(CouponNotStartedError):
            services.coupons.validate(session, "SAVE10", 400, today=TODAY)

    def test_valid_through_expiry_day(self, session, services):
        add_coupon(session, expiry_date=TODAY)
        assert services.coupons.validate(session, "SAVE10", 400, today=TODAY)
        with pytest.raises(CouponExpiredError):
            services.coupons.validate(
                session, "SAVE10", 400, today=date(2026, 3, 11)
            )

    def test_usage_limit_reached(self, session, services):
        add_coupon(session, usage_limit=2, times_used=2)
        with pytest.raises(UsageLimitReachedError):
            services.coupons.validate(session, "SAVE10", 400, today=TODAY)

    def test_minimum_not_met(self, session, services):
        add_coupon(session, min_order=500)
        with pytest.raises(MinimumNotMetError) as exc:
            services.coupons.validate(session, "SAVE10", 499.99, today=TODAY)
        assert exc.value.reason == "MinimumNotMet"

    def test_inactive_reported_before_expired(self, session, services):
        add_coupon(session, is_active=False, expiry_date=date(2026, 1, 1))
        with pytest.raises(CouponInactiveError):
            services.coupons.validate(session, "SAVE10", 400, today=TODAY)

    def test_validate_does_not_consume(self, session, services):
        coupon = add_coupon(session, usage_limit=1)
        services.coupons.validate(session, "SAVE10", 400, today=TODAY)
        session.refresh(coupon)
        assert coupon.times_used == 0


class TestReservation:
    def test_last_slot_goes_to_one_of_two_concurrent_orders(
        self, session, session_factory, services, make_order_payload
    ):
        coupon = add_coupon(session, code="ONCE", usage_limit=1)
        payload = OrderCreate(**make_order_payload(coupon_code="ONCE"))

        barrier = threading.Barrier(2)
        outcomes: list[str] = []

        def place():
            with session_factory() as s:
                barrier.wait()
                try:
                    services.orders.place_order(s, None, payload, today=TODAY)
                    outcomes.append("placed")
                except UsageLimitReachedError:
                    outcomes.append("limit")

        threads = [threading.Thread(target=place) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["limit", "placed"]
        session.refresh(coupon)
        assert coupon.times_used == 1
        assert len(session.exec(select(Order)).all()) == 1

    def test_unlimited_coupon_keeps_counting(self, session, services, make_order_payload):
        coupon = add_coupon(session, code="OPEN", usage_limit=0)
        payload = OrderCreate(**make_order_payload(coupon_code="OPEN"))
        for _ in range(3):
            services.orders.place_order(session, None, payload, today=TODAY)
        session.refresh(coupon)
        assert coupon.times_used == 3


class TestAdmin:
    def test_create_uppercases_and_rejects_duplicates(self, session, services):
        created = services.coupons.create_coupon(
            session, CouponCreate(code="eid25", discount_type="flat", value=25)
        )
        assert created.code == "EID25"
        with pytest.raises(ValidationFailedError):
            services.coupons.create_coupon(
                session, CouponCreate(code="EID25", value=5)
            )

    def test_update_and_deactivate(self, session, services):
        coupon = add_coupon(session)
        updated = services.coupons.update_coupon(
            session, coupon.id, CouponUpdate(value=15, min_order=100)
        )
        assert updated.value == 15
        assert updated.min_order == 100

        deactivated = services.coupons.deactivate_coupon(session, coupon.id)
        assert deactivated.is_active is False
        assert services.coupons.get_coupon(session, coupon.id).code == "SAVE10"

    def test_sweep_deactivates_expired_and_exhausted(self, session, services):
        add_coupon(session, code="OLD", expiry_date=date(2026, 3, 9))
        add_coupon(session, code="USEDUP", usage_limit=1, times_used=1)
        fresh = add_coupon(session, code="FRESH", expiry_date=TODAY)

        assert services.coupons.sweep_stale(session, today=TODAY) == 2
        session.refresh(fresh)
        assert fresh.is_active is True
