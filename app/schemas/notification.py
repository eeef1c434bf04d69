# app/schemas/notification.py
import uuid
from datetime import datetime
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class NotificationRead(SQLModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    message: str
    link: str
    is_read: bool
    created_at: datetime


class BroadcastCreate(SQLModel):
    """
    Admin payload for a manual notification.
    """

    model_config = ConfigDict(extra="forbid")

    target: Literal["admins", "all"] = "all"
    title: str = Field(max_length=120)
    body: str = Field(max_length=1000)
    link: str = "/"

    @field_validator("title", "body")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class BroadcastQueued(SQLModel):
    id: uuid.UUID
    target: str
    status: str


class DrainResult(SQLModel):
    sent: int
    failed: int
    skipped: int
