from fastapi import APIRouter, Depends
from typing import List

from vaxfamily.api.deps import get_current_caller, get_staff_service
from vaxfamily.core.security import Caller
from vaxfamily.schemas.staff import StaffProfileUpdate, StaffResponse
from vaxfamily.services.staff_service import StaffService

router = APIRouter()

@router.get("", response_model=List[StaffResponse])
async def list_staff(
    caller: Caller = Depends(get_current_caller),
    service: StaffService = Depends(get_staff_service)
):
    # Patients pick the doctor for a checkup request from this list
    return await service.list_staff()

@router.put("/me", response_model=StaffResponse)
async def upsert_profile(
    payload: StaffProfileUpdate,
    caller: Caller = Depends(get_current_caller),
    service: StaffService = Depends(get_staff_service)
):
    return await service.upsert_profile(caller, payload)
