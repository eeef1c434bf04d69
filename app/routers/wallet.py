# app/routers/wallet.py
import uuid

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_admin, require_user
from app.database import get_session
from app.models.user import User
from app.repositories.coupon_repo import CouponRepository
from app.repositories.notification_repo import NotificationRepository
from app.repositories.user_repo import UserRepository
from app.repositories.wallet_repo import WalletRepository
from app.schemas.wallet import ReconcileRead, RedeemRequest, RedeemResult, WalletRead
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.wallet_service import WalletService

router = APIRouter(prefix="/wallet", tags=["Wallet"])

notifier = NotificationService(NotificationRepository(), UserRepository())
service = WalletService(WalletRepository(), CouponService(CouponRepository()), notifier)


@router.get("", response_model=WalletRead)
def read_wallet(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    limit: int | None = None,
):
    """
    Balance, tier progress and the latest transactions.
    """
    return service.get_wallet(session, current_user.id, limit)


@router.post("/redeem", response_model=RedeemResult)
def redeem_coins(
    payload: RedeemRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Convert coins into a single-use coupon locked to the caller.
    """
    return service.redeem(session, current_user.id, payload.coins)


@router.get(
    "/{user_id}/reconcile",
    response_model=ReconcileRead,
    dependencies=[Depends(require_admin)],
)
def reconcile_wallet(
    user_id: uuid.UUID,
    session: Session = Depends(get_session),
):
    """
    Compare the cached balance with the ledger sum (admin only).
    """
    return service.reconcile(session, user_id)
