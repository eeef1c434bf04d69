# app/services/user_service.py
import logging
import uuid

from fastapi import HTTPException, status
from sqlmodel import Session

from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user import UserUpdate, UserRoleUpdate

logger = logging.getLogger(__name__)


class UserService:
    """
    Business logic for User profiles and roles.

    Roles matter to the rest of the system: "admin" users are the
    recipients of the 'admins' notification target.
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    # ----- Self profile -----

    def get_me(self, current_user: User) -> User:
        return current_user

    def update_me(
        self,
        session: Session,
        current_user: User,
        payload: UserUpdate,
    ) -> User:
        """
        Partial update: name and phone.
        """
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            current_user.name = changes["name"]
        if "phone" in changes:
            current_user.phone = changes["phone"]

        return self.repo.save(session, current_user)

    # ----- Admin operations -----

    def list_users(self, session: Session, skip: int, limit: int) -> list[User]:
        return self.repo.list(session, skip=skip, limit=limit)

    def get_user(self, session: Session, user_id: uuid.UUID) -> User:
        """
        Raises:
            HTTPException(404): if not found.
        """
        user = self.repo.get_by_id(session, user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )
        return user

    def update_role(
        self,
        session: Session,
        user_id: uuid.UUID,
        payload: UserRoleUpdate,
    ) -> User:
        user = self.get_user(session, user_id)
        user.role = payload.role
        logger.info("User %s role set to %s", user.id, payload.role)
        return self.repo.save(session, user)
