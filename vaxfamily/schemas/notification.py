from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

from vaxfamily.db.models.notification import NotificationType

class NotificationCreate(BaseModel):
    user_id: str
    member_name: str
    message: str
    date: Optional[str] = None
    type: NotificationType = NotificationType.INFO

class NotificationResponse(BaseModel):
    id: UUID
    user_id: str
    member_name: str
    message: str
    date: str
    type: str
    is_read: bool
    appointment_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True

class UnreadCountResponse(BaseModel):
    user_id: str
    unread: int

class ClearedResponse(BaseModel):
    deleted: int
