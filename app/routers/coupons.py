# app/routers/coupons.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import get_current_user, require_admin
from app.core.errors import CouponNotFoundError, CouponRejected
from app.database import get_session
from app.models.user import User
from app.repositories.coupon_repo import CouponRepository
from app.schemas.coupon import (
    CouponCreate,
    CouponRead,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidation,
)
from app.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["Coupons"])

repo = CouponRepository()
service = CouponService(repo)


@router.post("/validate", response_model=CouponValidation)
def validate_coupon(
    payload: CouponValidateRequest,
    session: Session = Depends(get_session),
    current_user: User | None = Depends(get_current_user),
):
    """
    Check a code against the current cart subtotal.

    Always 200: rejections come back as valid=false with a reason so the
    checkout form can show them inline. Nothing is reserved here.
    """
    try:
        quote = service.validate(
            session,
            payload.code,
            payload.cart_subtotal,
            current_user.id if current_user else None,
        )
    except (CouponNotFoundError, CouponRejected) as exc:
        return CouponValidation(
            valid=False,
            code=payload.code.upper(),
            reason=exc.reason,
            message=exc.message,
        )

    return CouponValidation(
        valid=True,
        code=quote.coupon.code,
        discount_amount=quote.discount_amount,
        discount_type=quote.coupon.discount_type,
        value=quote.coupon.value,
    )


# -------- Admin endpoints --------


@router.get(
    "/admin",
    response_model=list[CouponRead],
    dependencies=[Depends(require_admin)],
)
def list_coupons(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    owner_id: uuid.UUID | None = None,
):
    return service.list_coupons(session, skip, limit, owner_id)


@router.post(
    "/admin",
    response_model=CouponRead,
    status_code=201,
    dependencies=[Depends(require_admin)],
)
def create_coupon(
    payload: CouponCreate,
    session: Session = Depends(get_session),
):
    return service.create_coupon(session, payload)


@router.get(
    "/admin/{coupon_id}",
    response_model=CouponRead,
    dependencies=[Depends(require_admin)],
)
def get_coupon(
    coupon_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_coupon(session, coupon_id)


@router.patch(
    "/admin/{coupon_id}",
    response_model=CouponRead,
    dependencies=[Depends(require_admin)],
)
def update_coupon(
    coupon_id: uuid.UUID,
    payload: CouponUpdate,
    session: Session = Depends(get_session),
):
    return service.update_coupon(session, coupon_id, payload)


@router.delete(
    "/admin/{coupon_id}",
    response_model=CouponRead,
    dependencies=[Depends(require_admin)],
)
def deactivate_coupon(
    coupon_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Soft delete: the coupon is deactivated, never removed.
    """
    return service.deactivate_coupon(session, coupon_id)
