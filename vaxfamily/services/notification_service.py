from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from vaxfamily.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from vaxfamily.core.logger import get_logger
from vaxfamily.core.security import Caller
from vaxfamily.core.utils import display_date, parse_date, require_text, today_iso, with_store_retry
from vaxfamily.db.models import FamilyMember, Notification, NotificationType

logger = get_logger("notifications")


class NotificationService:
    def __init__(self, session: AsyncSession):
        self.session = session

    def stage(
        self,
        addressee_id: str,
        member_name: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        date: Optional[str] = None,
        appointment_id: Optional[UUID] = None,
    ) -> Notification:
        """Add a notification to the current transaction without committing it."""
        notification = Notification(
            user_id=addressee_id,
            member_name=member_name,
            message=message,
            date=date or today_iso(),
            type=NotificationType(type).value,
            is_read=False,
            appointment_id=appointment_id,
        )
        self.session.add(notification)
        logger.info(f"{notification.type} notification queued for {addressee_id}")
        return notification

    @with_store_retry
    async def add(
        self,
        addressee_id: str,
        member_name: str,
        message: str,
        date: Optional[str] = None,
        type: NotificationType = NotificationType.INFO,
    ) -> Notification:
        addressee_id = require_text(addressee_id, "user_id")
        message = require_text(message, "message")
        date = parse_date(date) if date else None
        notification = self.stage(addressee_id, member_name, message, type, date)
        await self.session.commit()
        await self.session.refresh(notification)
        return notification

    async def notify(
        self,
        caller: Caller,
        addressee_id: str,
        member_name: str,
        message: str,
        date: Optional[str] = None,
        type: NotificationType = NotificationType.INFO,
    ) -> Notification:
        # Patients only receive notifications; staff may send them directly
        if not caller.is_staff:
            raise AuthorizationError("Only staff can send notifications")
        return await self.add(addressee_id, member_name, message, date, type)

    async def _get_owned(self, caller: Caller, notification_id: UUID) -> Notification:
        notification = await self.session.get(Notification, notification_id, populate_existing=True)
        if not notification:
            raise NotFoundError("Notification", notification_id)
        if notification.user_id != caller.id:
            raise AuthorizationError("Notification belongs to another user")
        return notification

    def _ensure_owner(self, caller: Caller, owner_id: str) -> None:
        if caller.id != owner_id:
            raise AuthorizationError("Notifications can only be managed by their addressee")

    @with_store_retry
    async def mark_read(self, caller: Caller, notification_id: UUID) -> Notification:
        notification = await self._get_owned(caller, notification_id)
        if not notification.is_read:
            # One-way flip; a concurrent second flip is harmless
            await self.session.execute(
                update(Notification)
                .where(Notification.id == notification_id)
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            await self.session.refresh(notification)
        return notification

    @with_store_retry
    async def delete(self, caller: Caller, notification_id: UUID) -> None:
        notification = await self._get_owned(caller, notification_id)
        await self.session.delete(notification)
        await self.session.commit()

    @with_store_retry
    async def clear_all(self, caller: Caller, addressee_id: str) -> int:
        self._ensure_owner(caller, addressee_id)
        stmt = (
            delete(Notification)
            .where(Notification.user_id == addressee_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        logger.info(f"Cleared {result.rowcount} notifications for {addressee_id}")
        return result.rowcount

    @with_store_retry
    async def unread_count_for(self, caller: Caller, owner_id: str) -> int:
        self._ensure_owner(caller, owner_id)
        # Always counted from the store, never cached
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == owner_id,
            Notification.is_read == False,  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    @with_store_retry
    async def list_for(self, caller: Caller, owner_id: str) -> List[Notification]:
        self._ensure_owner(caller, owner_id)
        stmt = (
            select(Notification)
            .where(Notification.user_id == owner_id)
            .order_by(Notification.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @with_store_retry
    async def send_dose_reminder(self, caller: Caller, patient_id: UUID) -> Notification:
        """
        Staff action: remind a patient's linked account about the next dose.
        """
        if not caller.is_staff:
            raise AuthorizationError("Only staff can send dose reminders")
        patient = await self.session.get(FamilyMember, patient_id, populate_existing=True)
        if not patient:
            raise NotFoundError("Patient", patient_id, field="patient_id")
        if patient.owner_id != caller.id:
            raise AuthorizationError("Patient is not on this staff roster")
        if not patient.next_dose:
            raise ValidationError("next_dose", f"{patient.name} has no upcoming dose")
        if not patient.account_id:
            raise ValidationError("account_id", f"{patient.name} has no linked patient account")

        dose = patient.next_dose
        when = display_date(dose["date"])
        if patient.is_account_owner:
            message = f"Reminder: Your {dose['vaccine']} is scheduled for {when}"
        else:
            message = f"Reminder: {patient.name}'s {dose['vaccine']} is scheduled for {when}"

        notification = self.stage(patient.account_id, patient.name, message, NotificationType.REMINDER)
        await self.session.commit()
        await self.session.refresh(notification)
        return notification
