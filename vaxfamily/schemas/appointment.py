from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional

from vaxfamily.db.models.appointment import AppointmentType

# Required-by-type fields stay optional here so the ledger can reject them
# with a ValidationError that names the missing field.

class CheckupRequestCreate(BaseModel):
    patient_id: Optional[UUID] = None
    staff_id: Optional[str] = None
    reason_for_checkup: Optional[str] = None
    date: Optional[str] = None

class StaffBookingCreate(BaseModel):
    patient_id: Optional[UUID] = None
    appointment_type: AppointmentType = AppointmentType.VACCINATION
    vaccine: Optional[str] = None
    dose: Optional[str] = None
    reason_for_checkup: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None

class SlotUpdate(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    expected_version: Optional[int] = None

class TransitionRequest(BaseModel):
    expected_version: Optional[int] = None

class AppointmentResponse(BaseModel):
    id: UUID
    patient_id: UUID
    patient_name: str
    account_id: Optional[str] = None
    staff_id: Optional[str] = None
    staff_name: Optional[str] = None
    appointment_type: str
    vaccine: Optional[str] = None
    dose: Optional[str] = None
    reason_for_checkup: Optional[str] = None
    date: str
    time: Optional[str] = None
    status: str
    booked_by_staff: bool
    family_owner_name: Optional[str] = None
    family_owner_email: Optional[str] = None
    family_member_relationship: Optional[str] = None
    version: int
    created_at: datetime

    class Config:
        from_attributes = True

class PurgeResponse(BaseModel):
    status: str
    deleted: int
