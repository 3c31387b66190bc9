from sqlmodel import SQLModel, Field
from sqlalchemy import JSON, Column, DateTime
from typing import Optional, List
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from vaxfamily.core.utils import utcnow

OWNER_RELATIONSHIP = "Me"


class Partition(str, Enum):
    FAMILY = "family"  # owned by a patient account
    ROSTER = "roster"  # owned by a staff member


class VaccineStatus(str, Enum):
    COMPLETED = "Completed"
    UPCOMING = "Upcoming"


class FamilyMember(SQLModel, table=True):
    __tablename__ = "family_members"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(index=True)
    partition: str = Field(default=Partition.FAMILY.value, index=True)
    account_id: Optional[str] = Field(default=None, index=True)
    family_owner_id: Optional[UUID] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    relationship: str = OWNER_RELATIONSHIP
    age: Optional[int] = None
    birthdate: Optional[str] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    # [{"name", "dose", "date", "status"}], in insertion order
    vaccine_history: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    is_fully_vaccinated: bool = Field(default=False)
    next_dose: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))

    @property
    def is_account_owner(self) -> bool:
        return self.relationship == OWNER_RELATIONSHIP
