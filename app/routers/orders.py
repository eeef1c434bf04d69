# app/routers/orders.py
import uuid
from collections.abc import Callable

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

from app.core.auth import get_current_user, require_admin, require_user
from app.database import get_session, get_session_factory
from app.models.user import User
from app.repositories.coupon_repo import CouponRepository
from app.repositories.notification_repo import NotificationRepository
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import UserRepository
from app.repositories.wallet_repo import WalletRepository
from app.schemas.order import (
    OrderCreate,
    OrderRead,
    OrderStatus,
    OrderStatusUpdate,
    OrderWithItemsRead,
)
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.order_service import OrderService
from app.services.wallet_service import WalletService

router = APIRouter(prefix="/orders", tags=["Orders"])

notifier = NotificationService(NotificationRepository(), UserRepository())
coupon_service = CouponService(CouponRepository())
wallet_service = WalletService(WalletRepository(), coupon_service, notifier)
service = OrderService(OrderRepository(), coupon_service, wallet_service, notifier)


# -------- Customer / guest endpoints --------


@router.post(
    "",
    response_model=OrderWithItemsRead,
    status_code=201,
)
def place_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    current_user: User | None = Depends(get_current_user),
):
    """
    Place an order. Guests may order; signed-in customers get the order
    linked to their account (history, coins, owner-locked coupons).
    """
    order = service.place_order(
        session,
        current_user.id if current_user else None,
        payload,
    )
    background_tasks.add_task(notifier.drain, session_factory)
    return order


@router.get(
    "/me",
    response_model=list[OrderRead],
)
def list_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    skip: int = 0,
    limit: int = 50,
):
    """
    List the authenticated user's orders (without items), newest first.
    """
    return service.list_user_orders(session, current_user.id, skip, limit)


@router.get(
    "/me/{order_id}",
    response_model=OrderWithItemsRead,
)
def get_my_order(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.get_user_order(session, current_user.id, order_id)


@router.get(
    "/track/{order_number}",
    response_model=OrderWithItemsRead,
)
def track_order(
    order_number: str,
    session: Session = Depends(get_session),
    current_user: User | None = Depends(get_current_user),
):
    """
    Track an order by its public number.
    """
    return service.track_order(session, order_number, current_user)


# -------- Admin endpoints --------


@router.get(
    "",
    response_model=list[OrderRead],
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 50,
    status: OrderStatus | None = None,
):
    """
    List all orders (admin only), optionally filtered by status.
    """
    return service.list_all_orders(session, skip, limit, status)


@router.get(
    "/{order_id}",
    response_model=OrderWithItemsRead,
    dependencies=[Depends(require_admin)],
)
def get_order_admin(
    order_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    return service.get_order_admin(session, order_id)


@router.patch(
    "/{order_id}/status",
    response_model=OrderRead,
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Move an order to a new status (admin only).

    Delivered credits coins once; Cancelled refunds redeemed coins once.
    Notifications go out after the commit.
    """
    order = service.transition_status(session, order_id, payload.status)
    background_tasks.add_task(notifier.drain, session_factory)
    return order
