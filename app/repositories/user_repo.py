# app/repositories/user_repo.py
from __future__ import annotations

import uuid

from sqlmodel import Session, select

from app.models.user import User


class UserRepository:
    """
    Data access layer for User.

    Responsibilities:
      - Pure DB operations (queries + persistence)
      - No FastAPI, no HTTP, no business logic
    """

    def get_by_id(self, session: Session, user_id: uuid.UUID) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def list(self, session: Session, skip: int = 0, limit: int = 50) -> list[User]:
        stmt = select(User).order_by(User.created_at).offset(skip).limit(limit)
        return session.exec(stmt).all()

    def list_by_role(self, session: Session, role: str) -> list[User]:
        """Recipient resolution for role-targeted notifications."""
        stmt = select(User).where(User.role == role)
        return session.exec(stmt).all()

    def list_everyone(self, session: Session) -> list[User]:
        return session.exec(select(User)).all()

    def save(self, session: Session, user: User) -> User:
        """Insert or update a User and commit."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
