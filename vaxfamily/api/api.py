from fastapi import APIRouter
from vaxfamily.api.v1 import appointments, care_records, notifications, patients, staff

api_router = APIRouter()

api_router.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(patients.router, prefix="/patients", tags=["patients"])
api_router.include_router(care_records.router, prefix="/care-records", tags=["care-records"])
api_router.include_router(staff.router, prefix="/staff", tags=["staff"])
