from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from typing import Optional
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from vaxfamily.core.utils import utcnow


class AppointmentType(str, Enum):
    VACCINATION = "vaccination"
    CHECKUP = "checkup"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    patient_id: UUID = Field(index=True)
    patient_name: str
    account_id: Optional[str] = Field(default=None, index=True)  # patient account that owns it
    staff_id: Optional[str] = Field(default=None, index=True)
    staff_name: Optional[str] = None
    appointment_type: str  # vaccination, checkup
    vaccine: Optional[str] = None
    dose: Optional[str] = None
    reason_for_checkup: Optional[str] = None
    date: str  # yyyy-MM-dd
    time: Optional[str] = None  # HH:mm, unset while pending
    status: str = Field(default=AppointmentStatus.PENDING.value, index=True)
    booked_by_staff: bool = Field(default=False)
    family_owner_name: Optional[str] = None
    family_owner_email: Optional[str] = None
    family_member_relationship: Optional[str] = None
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
