from fastapi import APIRouter, Depends, Response
from typing import List
from uuid import UUID

from vaxfamily.api.deps import get_care_record_service, get_current_caller, get_family_service
from vaxfamily.core.security import Caller
from vaxfamily.schemas.family_member import (
    FamilyGroupResponse,
    FamilyMemberCreate,
    FamilyMemberResponse,
    FamilyMemberUpdate,
    VaccineRecordCreate,
)
from vaxfamily.services.care_record_service import CareRecordService
from vaxfamily.services.family_service import FamilyService

router = APIRouter()

@router.post("", response_model=FamilyMemberResponse, status_code=201)
async def create_member(
    payload: FamilyMemberCreate,
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    return await service.create_member(caller, payload)

@router.get("", response_model=List[FamilyMemberResponse])
async def list_members(
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    return await service.list_members(caller)

@router.get("/groups", response_model=List[FamilyGroupResponse])
async def list_family_groups(
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    groups = await service.list_family_groups(caller)
    return [
        FamilyGroupResponse(
            owner=FamilyMemberResponse.model_validate(group.owner),
            members=[FamilyMemberResponse.model_validate(m) for m in group.members],
        )
        for group in groups
    ]

@router.post("/linked-accounts/{account_id}/sync", response_model=List[FamilyMemberResponse])
async def sync_linked_family(
    account_id: str,
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    return await service.sync_linked_family(caller, account_id)

@router.get("/{member_id}", response_model=FamilyMemberResponse)
async def read_member(
    member_id: UUID,
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    return await service.get_member(caller, member_id)

@router.patch("/{member_id}", response_model=FamilyMemberResponse)
async def update_member(
    member_id: UUID,
    payload: FamilyMemberUpdate,
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    return await service.update_member(caller, member_id, payload)

@router.delete("/{member_id}", status_code=204)
async def delete_member(
    member_id: UUID,
    caller: Caller = Depends(get_current_caller),
    service: FamilyService = Depends(get_family_service)
):
    await service.delete_member(caller, member_id)
    return Response(status_code=204)

@router.post("/{member_id}/vaccinations", response_model=FamilyMemberResponse, status_code=201)
async def add_vaccination(
    member_id: UUID,
    payload: VaccineRecordCreate,
    caller: Caller = Depends(get_current_caller),
    service: CareRecordService = Depends(get_care_record_service)
):
    return await service.add_history_entry(
        caller, member_id, payload.name, payload.date, payload.dose, payload.status
    )
