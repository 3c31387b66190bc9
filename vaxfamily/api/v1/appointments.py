from fastapi import APIRouter, Depends
from typing import List, Optional
from uuid import UUID

from vaxfamily.api.deps import get_appointment_service, get_current_caller
from vaxfamily.core.security import Caller
from vaxfamily.db.models import AppointmentStatus
from vaxfamily.schemas.appointment import (
    AppointmentResponse,
    CheckupRequestCreate,
    PurgeResponse,
    SlotUpdate,
    StaffBookingCreate,
    TransitionRequest,
)
from vaxfamily.services.appointment_service import AppointmentService

router = APIRouter()

@router.post("/checkup-requests", response_model=AppointmentResponse, status_code=201)
async def create_checkup_request(
    request: CheckupRequestCreate,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.create_checkup_request(caller, request)

@router.post("/bookings", response_model=AppointmentResponse, status_code=201)
async def create_staff_booking(
    request: StaffBookingCreate,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.create_staff_booking(caller, request)

@router.get("", response_model=List[AppointmentResponse])
async def list_appointments(
    status: Optional[AppointmentStatus] = None,
    date: Optional[str] = None,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.list_by_owner(caller, caller.id, caller.role, status=status, on_date=date)

@router.get("/day/{day}", response_model=List[AppointmentResponse])
async def list_day(
    day: str,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.list_for_day(caller, day)

@router.delete("/history", response_model=PurgeResponse)
async def purge_history(
    status: str,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    deleted = await service.purge_terminal_history(caller, caller.id, status)
    return PurgeResponse(status=status, deleted=deleted)

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def read_appointment(
    appointment_id: UUID,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.get_appointment(caller, appointment_id)

@router.post("/{appointment_id}/schedule", response_model=AppointmentResponse)
async def schedule_request(
    appointment_id: UUID,
    slot: SlotUpdate,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.schedule_request(caller, appointment_id, slot.date, slot.time, slot.expected_version)

@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule(
    appointment_id: UUID,
    slot: SlotUpdate,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    return await service.reschedule(caller, appointment_id, slot.date, slot.time, slot.expected_version)

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel(
    appointment_id: UUID,
    request: Optional[TransitionRequest] = None,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    expected = request.expected_version if request else None
    return await service.cancel(caller, appointment_id, expected)

@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete(
    appointment_id: UUID,
    request: Optional[TransitionRequest] = None,
    caller: Caller = Depends(get_current_caller),
    service: AppointmentService = Depends(get_appointment_service)
):
    expected = request.expected_version if request else None
    return await service.complete(caller, appointment_id, expected)
