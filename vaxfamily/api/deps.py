from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jwt.exceptions import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from vaxfamily.core.config import settings
from vaxfamily.core.security import Caller, decode_caller
from vaxfamily.db.session import get_session
from vaxfamily.services.appointment_service import AppointmentService
from vaxfamily.services.care_record_service import CareRecordService
from vaxfamily.services.family_service import FamilyService
from vaxfamily.services.notification_service import NotificationService
from vaxfamily.services.staff_service import StaffService

# Tokens are issued by the external identity provider; this only reads them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")

async def get_current_caller(request: Request, token: str = Depends(oauth2_scheme)) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        caller = decode_caller(token)
    except (PyJWTError, ValueError):
        raise credentials_exception
    request.state.caller = caller
    return caller

async def get_appointment_service(session: AsyncSession = Depends(get_session)) -> AppointmentService:
    return AppointmentService(session)

async def get_notification_service(session: AsyncSession = Depends(get_session)) -> NotificationService:
    return NotificationService(session)

async def get_family_service(session: AsyncSession = Depends(get_session)) -> FamilyService:
    return FamilyService(session)

async def get_care_record_service(session: AsyncSession = Depends(get_session)) -> CareRecordService:
    return CareRecordService(session)

async def get_staff_service(session: AsyncSession = Depends(get_session)) -> StaffService:
    return StaffService(session)
