from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from typing import Optional
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from vaxfamily.core.utils import utcnow


class NotificationType(str, Enum):
    UPCOMING = "Upcoming"
    REMINDER = "Reminder"
    INFO = "Info"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True)  # addressee, patient account or staff id
    member_name: str
    message: str
    date: str
    type: str = Field(default=NotificationType.INFO.value)
    is_read: bool = Field(default=False, index=True)
    appointment_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
