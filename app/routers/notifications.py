# app/routers/notifications.py
from collections.abc import Callable

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

from app.core.auth import require_admin, require_auth
from app.database import get_session, get_session_factory
from app.models.user import User
from app.repositories.notification_repo import NotificationRepository
from app.repositories.user_repo import UserRepository
from app.schemas.notification import BroadcastCreate, BroadcastQueued, NotificationRead
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

service = NotificationService(NotificationRepository(), UserRepository())


@router.get("", response_model=list[NotificationRead])
def list_my_notifications(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    skip: int = 0,
    limit: int = 50,
):
    """
    In-app history, newest first. Listing marks entries as read.
    """
    return service.history(session, current_user.id, skip, limit)


@router.post(
    "/broadcast",
    response_model=BroadcastQueued,
    status_code=202,
    dependencies=[Depends(require_admin)],
)
def broadcast(
    payload: BroadcastCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Queue a manual notification to every admin or every user.
    """
    entry = service.broadcast(
        session, payload.target, payload.title, payload.body, payload.link
    )
    background_tasks.add_task(service.drain, session_factory)
    return BroadcastQueued(id=entry.id, target=entry.target, status=entry.status)
