from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from vaxfamily.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from vaxfamily.core.logger import get_logger
from vaxfamily.core.security import Caller
from vaxfamily.core.utils import require_text, with_store_retry
from vaxfamily.db.models import OWNER_RELATIONSHIP, Appointment, FamilyMember, Partition
from vaxfamily.schemas.family_member import FamilyMemberCreate, FamilyMemberUpdate
from vaxfamily.services.care_record_service import CareRecordService, is_fully_vaccinated, next_dose
from vaxfamily.services.family_grouping import FamilyGroup, group_by_family

logger = get_logger("family")


def partition_for(caller: Caller) -> Partition:
    return Partition.ROSTER if caller.is_staff else Partition.FAMILY


class FamilyService:
    """
    Patient records in both partitions: a patient's own family list and a
    staff member's roster. Each caller only ever sees the partition scoped
    to its own id.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.care_records = CareRecordService(session)

    async def _get_owned(self, caller: Caller, member_id: UUID) -> FamilyMember:
        member = await self.session.get(FamilyMember, member_id, populate_existing=True)
        if not member:
            raise NotFoundError("Patient", member_id, field="patient_id")
        if member.owner_id != caller.id or member.partition != partition_for(caller).value:
            raise AuthorizationError("Patient record belongs to another account")
        return member

    async def _check_family_owner(self, caller: Caller, family_owner_id: Optional[UUID]) -> None:
        if family_owner_id is None:
            return
        owner = await self.session.get(FamilyMember, family_owner_id)
        if (
            owner is None
            or owner.owner_id != caller.id
            or owner.relationship != OWNER_RELATIONSHIP
        ):
            raise ValidationError("family_owner_id", "family_owner_id must name an account owner on the same list")

    async def find_account_owner(self, account_id: str) -> Optional[FamilyMember]:
        """The ``"Me"`` member of a patient account's family list, if any."""
        stmt = select(FamilyMember).where(
            FamilyMember.owner_id == account_id,
            FamilyMember.partition == Partition.FAMILY.value,
            FamilyMember.relationship == OWNER_RELATIONSHIP,
        ).order_by(FamilyMember.created_at)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    @with_store_retry
    async def create_member(self, caller: Caller, data: FamilyMemberCreate) -> FamilyMember:
        partition = partition_for(caller)
        name = require_text(data.name, "name")
        relationship = require_text(data.relationship, "relationship")
        await self._check_family_owner(caller, data.family_owner_id)

        member = FamilyMember(
            owner_id=caller.id,
            partition=partition.value,
            # Family lists belong to the caller's own account
            account_id=caller.id if partition == Partition.FAMILY else data.account_id,
            family_owner_id=data.family_owner_id,
            name=name,
            email=data.email,
            phone=data.phone,
            relationship=relationship,
            age=data.age,
            birthdate=data.birthdate,
            gender=data.gender,
            avatar_url=data.avatar_url,
            vaccine_history=[],
            is_fully_vaccinated=False,
            next_dose=None,
        )
        self.session.add(member)
        await self.session.commit()
        await self.session.refresh(member)
        logger.info(f"Added {partition.value} member {member.id} for {caller.id}")
        return member

    @with_store_retry
    async def list_members(self, caller: Caller) -> List[FamilyMember]:
        stmt = (
            select(FamilyMember)
            .where(
                FamilyMember.owner_id == caller.id,
                FamilyMember.partition == partition_for(caller).value,
            )
            .order_by(FamilyMember.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @with_store_retry
    async def get_member(self, caller: Caller, member_id: UUID) -> FamilyMember:
        await self._get_owned(caller, member_id)
        # History is derived from appointments on read to heal interrupted writes
        return await self.care_records.reconcile(member_id)

    async def list_family_groups(self, caller: Caller) -> List[FamilyGroup]:
        return group_by_family(await self.list_members(caller))

    @with_store_retry
    async def update_member(self, caller: Caller, member_id: UUID, data: FamilyMemberUpdate) -> FamilyMember:
        member = await self._get_owned(caller, member_id)
        changes = data.model_dump(exclude_unset=True)

        if "name" in changes:
            changes["name"] = require_text(changes["name"], "name")
        if "relationship" in changes:
            changes["relationship"] = require_text(changes["relationship"], "relationship")
        if "family_owner_id" in changes:
            await self._check_family_owner(caller, changes["family_owner_id"])
        if member.partition == Partition.FAMILY.value:
            changes.pop("account_id", None)

        renamed = "name" in changes and changes["name"] != member.name
        for key, value in changes.items():
            setattr(member, key, value)
        member.version += 1
        self.session.add(member)

        if renamed:
            # Appointment snapshots follow the source record
            await self.session.execute(
                update(Appointment)
                .where(Appointment.patient_id == member_id)
                .values(patient_name=member.name)
                .execution_options(synchronize_session=False)
            )

        await self.session.commit()
        await self.session.refresh(member)
        return member

    @with_store_retry
    async def sync_linked_family(self, caller: Caller, account_id: str) -> List[FamilyMember]:
        """
        Copy members a registered patient account added to its own family list
        onto the staff roster, under the roster entry linked to that account.
        Members already on the roster, matched by name and birthdate, are
        skipped. Returns the roster entries created.
        """
        if not caller.is_staff:
            raise AuthorizationError("Only staff can import family members into a roster")
        account_id = require_text(account_id, "account_id")

        roster = await self.list_members(caller)
        linked = [m for m in roster if m.account_id == account_id]
        owner = next((m for m in linked if m.is_account_owner), None)
        if owner is None:
            raise ValidationError("account_id", f"No roster entry is linked to account '{account_id}'")

        stmt = (
            select(FamilyMember)
            .where(
                FamilyMember.owner_id == account_id,
                FamilyMember.partition == Partition.FAMILY.value,
            )
            .order_by(FamilyMember.created_at)
        )
        result = await self.session.execute(stmt)
        known = {(m.name, m.birthdate) for m in linked}

        created = []
        for source in result.scalars().all():
            if (source.name, source.birthdate) in known:
                continue
            history = [dict(entry) for entry in source.vaccine_history or []]
            member = FamilyMember(
                owner_id=caller.id,
                partition=Partition.ROSTER.value,
                account_id=account_id,
                family_owner_id=None if source.is_account_owner else owner.id,
                name=source.name,
                email=source.email or owner.email,
                phone=source.phone or owner.phone,
                relationship=source.relationship,
                age=source.age,
                birthdate=source.birthdate,
                gender=source.gender,
                avatar_url=source.avatar_url,
                vaccine_history=history,
                is_fully_vaccinated=is_fully_vaccinated(history),
                next_dose=next_dose(history),
            )
            self.session.add(member)
            known.add((source.name, source.birthdate))
            created.append(member)

        if created:
            await self.session.commit()
            for member in created:
                await self.session.refresh(member)
        logger.info(f"Imported {len(created)} family members of account {account_id} into roster of {caller.id}")
        return created

    @with_store_retry
    async def delete_member(self, caller: Caller, member_id: UUID) -> None:
        member = await self._get_owned(caller, member_id)
        await self.session.delete(member)
        await self.session.commit()
        logger.info(f"Removed member {member_id} for {caller.id}")
