from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class StaffProfileUpdate(BaseModel):
    name: str
    email: Optional[str] = None
    specialty: Optional[str] = None

class StaffResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    specialty: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
