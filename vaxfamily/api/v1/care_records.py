from fastapi import APIRouter, Depends
from uuid import UUID

from vaxfamily.api.deps import get_care_record_service, get_current_caller
from vaxfamily.core.security import Caller
from vaxfamily.schemas.family_member import FamilyMemberResponse, VaccinationEvent
from vaxfamily.services.care_record_service import CareRecordService

router = APIRouter()

@router.post("/{patient_id}/projections", response_model=FamilyMemberResponse)
async def project_vaccination_event(
    patient_id: UUID,
    event: VaccinationEvent,
    caller: Caller = Depends(get_current_caller),
    service: CareRecordService = Depends(get_care_record_service)
):
    return await service.project_vaccination_event(caller, patient_id, event.vaccine_name, event.date, event.dose)

@router.post("/{patient_id}/completions", response_model=FamilyMemberResponse)
async def complete_vaccination_event(
    patient_id: UUID,
    event: VaccinationEvent,
    caller: Caller = Depends(get_current_caller),
    service: CareRecordService = Depends(get_care_record_service)
):
    return await service.complete_vaccination_event(caller, patient_id, event.vaccine_name, event.date, event.dose)
