# app/routers/cron.py
import secrets
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session

from app.core.config import get_settings
from app.database import get_session, get_session_factory
from app.repositories.coupon_repo import CouponRepository
from app.repositories.notification_repo import NotificationRepository
from app.repositories.user_repo import UserRepository
from app.repositories.wallet_repo import WalletRepository
from app.schemas.notification import DrainResult
from app.schemas.wallet import ExpiryRunResult
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.wallet_service import WalletService

settings = get_settings()


def require_cron_secret(request: Request) -> None:
    """
    Scheduler auth: `Authorization: Bearer <CRON_SECRET>` or `?key=<CRON_SECRET>`.

    Without a configured secret the jobs are disabled.
    """
    expected = settings.CRON_SECRET
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduled jobs are disabled",
        )

    header = request.headers.get("authorization", "")
    provided = header[7:] if header.lower().startswith("bearer ") else None
    provided = provided or request.query_params.get("key") or ""

    if not secrets.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized access",
        )


router = APIRouter(
    prefix="/cron",
    tags=["Cron"],
    dependencies=[Depends(require_cron_secret)],
)

notifier = NotificationService(NotificationRepository(), UserRepository())
coupon_service = CouponService(CouponRepository())
wallet_service = WalletService(WalletRepository(), coupon_service, notifier)

# Schedulers differ in the verb they send
CRON_METHODS = ["GET", "POST"]


@router.api_route("/coin-expiry", methods=CRON_METHODS, response_model=ExpiryRunResult)
def run_coin_expiry(
    session: Session = Depends(get_session),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Expire coins of inactive wallets, warn the ones close to expiry, then
    deliver the queued notifications.
    """
    result = wallet_service.expire_inactive(session)
    notifier.drain(session_factory)
    return result


@router.api_route("/cleanup-coupons", methods=CRON_METHODS)
def run_coupon_cleanup(session: Session = Depends(get_session)):
    """Deactivate expired and exhausted coupons."""
    count = coupon_service.sweep_stale(session)
    return {"success": True, "deactivated": count}


@router.api_route("/notifications", methods=CRON_METHODS, response_model=DrainResult)
def run_notification_drain(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """Deliver pending outbox entries and retry failed ones."""
    summary = notifier.drain(session_factory)
    return DrainResult(sent=summary.sent, failed=summary.failed, skipped=summary.skipped)
