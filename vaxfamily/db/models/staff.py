from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from typing import Optional
from datetime import datetime

from vaxfamily.core.utils import utcnow


class StaffMember(SQLModel, table=True):
    __tablename__ = "staff_members"
    id: str = Field(primary_key=True)  # identity oracle id of the staff caller
    name: str
    email: Optional[str] = None
    specialty: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
