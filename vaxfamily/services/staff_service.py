from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from vaxfamily.core.exceptions import AuthorizationError, ValidationError
from vaxfamily.core.security import Caller
from vaxfamily.core.utils import require_text, with_store_retry
from vaxfamily.db.models import StaffMember
from vaxfamily.schemas.staff import StaffProfileUpdate


class StaffService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_staff(self, staff_id: Optional[str]) -> StaffMember:
        """Resolve a staff id; an unknown id is an input problem, not a missing resource."""
        staff_id = require_text(staff_id, "staff_id")
        staff = await self.session.get(StaffMember, staff_id)
        if not staff:
            raise ValidationError("staff_id", f"Unknown staff member '{staff_id}'")
        return staff

    @with_store_retry
    async def upsert_profile(self, caller: Caller, data: StaffProfileUpdate) -> StaffMember:
        if not caller.is_staff:
            raise AuthorizationError("Only staff have a directory profile")
        name = require_text(data.name, "name")

        staff = await self.session.get(StaffMember, caller.id)
        if staff is None:
            staff = StaffMember(id=caller.id, name=name)
        staff.name = name
        staff.email = data.email
        staff.specialty = data.specialty

        self.session.add(staff)
        await self.session.commit()
        await self.session.refresh(staff)
        return staff

    @with_store_retry
    async def list_staff(self) -> List[StaffMember]:
        result = await self.session.execute(select(StaffMember).order_by(StaffMember.name))
        return list(result.scalars().all())
