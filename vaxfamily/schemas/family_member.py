from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional, List

from vaxfamily.db.models.family_member import VaccineStatus

class VaccineRecord(BaseModel):
    name: str
    dose: str
    date: str
    status: VaccineStatus

class NextDose(BaseModel):
    vaccine: str
    dose: Optional[str] = None
    date: str

class FamilyMemberBase(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    relationship: str = "Me"
    age: Optional[int] = None
    birthdate: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None

class FamilyMemberCreate(FamilyMemberBase):
    # Roster entries may be linked to a registered patient account
    account_id: Optional[str] = None
    family_owner_id: Optional[UUID] = None

class FamilyMemberUpdate(BaseModel):
    # History and derived fields are not writable here, see the care-record endpoints
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None
    age: Optional[int] = None
    birthdate: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    account_id: Optional[str] = None
    family_owner_id: Optional[UUID] = None

class FamilyMemberResponse(FamilyMemberBase):
    id: UUID
    owner_id: str
    partition: str
    account_id: Optional[str] = None
    family_owner_id: Optional[UUID] = None
    vaccine_history: List[VaccineRecord] = []
    is_fully_vaccinated: bool
    next_dose: Optional[NextDose] = None
    created_at: datetime

    class Config:
        from_attributes = True

class FamilyGroupResponse(BaseModel):
    owner: FamilyMemberResponse
    members: List[FamilyMemberResponse]

class VaccinationEvent(BaseModel):
    vaccine_name: str
    date: str
    dose: Optional[str] = None

class VaccineRecordCreate(BaseModel):
    name: str
    date: str
    dose: Optional[str] = None
    status: VaccineStatus = VaccineStatus.COMPLETED
