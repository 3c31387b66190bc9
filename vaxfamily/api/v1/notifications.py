from fastapi import APIRouter, Depends, Response
from typing import List
from uuid import UUID

from vaxfamily.api.deps import get_current_caller, get_notification_service
from vaxfamily.core.security import Caller
from vaxfamily.schemas.notification import (
    ClearedResponse,
    NotificationCreate,
    NotificationResponse,
    UnreadCountResponse,
)
from vaxfamily.services.notification_service import NotificationService

router = APIRouter()

@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    return await service.list_for(caller, caller.id)

@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    return UnreadCountResponse(user_id=caller.id, unread=await service.unread_count_for(caller, caller.id))

@router.post("", response_model=NotificationResponse, status_code=201)
async def notify(
    payload: NotificationCreate,
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    return await service.notify(
        caller, payload.user_id, payload.member_name, payload.message, payload.date, payload.type
    )

@router.post("/reminders/{patient_id}", response_model=NotificationResponse, status_code=201)
async def send_dose_reminder(
    patient_id: UUID,
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    return await service.send_dose_reminder(caller, patient_id)

@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    return await service.mark_read(caller, notification_id)

@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: UUID,
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    await service.delete(caller, notification_id)
    return Response(status_code=204)

@router.delete("", response_model=ClearedResponse)
async def clear_all(
    caller: Caller = Depends(get_current_caller),
    service: NotificationService = Depends(get_notification_service)
):
    return ClearedResponse(deleted=await service.clear_all(caller, caller.id))
