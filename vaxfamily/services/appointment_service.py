from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from vaxfamily.core.config import settings
from vaxfamily.core.exceptions import (
    AuthorizationError,
    CareCoordinationError,
    NotFoundError,
    StaleStateError,
    ValidationError,
)
from vaxfamily.core.logger import get_logger
from vaxfamily.core.security import Caller, Role
from vaxfamily.core.utils import display_date, parse_date, parse_time, require_text, today_iso, utcnow, with_store_retry
from vaxfamily.db.models import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    FamilyMember,
    NotificationType,
    Partition,
    StaffMember,
)
from vaxfamily.schemas.appointment import CheckupRequestCreate, StaffBookingCreate
from vaxfamily.services.care_record_service import CareRecordService
from vaxfamily.services.family_service import FamilyService
from vaxfamily.services.notification_service import NotificationService
from vaxfamily.services.staff_service import StaffService

logger = get_logger("ledger")

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, Set[AppointmentStatus]] = {
    AppointmentStatus.PENDING: {AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED},
    AppointmentStatus.SCHEDULED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

PURGEABLE_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


def sort_key(appointment: Appointment):
    # Date, then time; unset times (pending requests) go after timed entries
    return (appointment.date, appointment.time is None, appointment.time or "")


def sort_appointments(appointments) -> List[Appointment]:
    return sorted(appointments, key=sort_key)


def ensure_transition(appointment: Appointment, target: AppointmentStatus) -> None:
    current = AppointmentStatus(appointment.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        if current.is_terminal:
            message = f"Appointment is {current.value} and can no longer change"
        else:
            message = f"Cannot move appointment from {current.value} to {target.value}"
        raise ValidationError("status", message)


def _kind(appointment: Appointment) -> str:
    return "vaccination" if appointment.appointment_type == AppointmentType.VACCINATION.value else "checkup"


class AppointmentService:
    """
    The appointment ledger.

    Every transition reads the appointment, checks role, ownership and the
    state machine, then writes with a conditional update on the status and
    version that were read. Notification and vaccination-history side effects
    are staged in the same transaction and committed together, so a failed
    call never leaves a partial change behind.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.notifications = NotificationService(session)
        self.care_records = CareRecordService(session)
        self.family = FamilyService(session)
        self.staff = StaffService(session)

    # Reads

    async def _load(self, appointment_id: UUID) -> Appointment:
        appointment = await self.session.get(Appointment, appointment_id, populate_existing=True)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    def _ensure_party(self, caller: Caller, appointment: Appointment) -> None:
        if caller.is_staff and appointment.staff_id == caller.id:
            return
        if caller.is_patient and appointment.account_id == caller.id:
            return
        raise AuthorizationError("Appointment belongs to another account")

    def _ensure_assigned_staff(self, caller: Caller, appointment: Appointment, action: str) -> None:
        if not caller.is_staff:
            raise AuthorizationError(f"Only staff can {action} appointments")
        if appointment.staff_id != caller.id:
            raise AuthorizationError(f"Only the assigned staff member can {action} this appointment")

    def _ensure_fresh(self, appointment: Appointment, expected_version: Optional[int]) -> None:
        if expected_version is not None and appointment.version != expected_version:
            raise StaleStateError(
                "Appointment",
                appointment.id,
                f"Appointment {appointment.id} changed since it was read "
                f"(version {expected_version}, now {appointment.version}, status {appointment.status})",
            )

    @with_store_retry
    async def get_appointment(self, caller: Caller, appointment_id: UUID) -> Appointment:
        appointment = await self._load(appointment_id)
        self._ensure_party(caller, appointment)
        return appointment

    @with_store_retry
    async def list_by_owner(
        self,
        caller: Caller,
        owner_id: str,
        role_filter: Role,
        status: Optional[AppointmentStatus] = None,
        on_date: Optional[str] = None,
    ) -> List[Appointment]:
        if owner_id != caller.id or Role(role_filter) != caller.role:
            raise AuthorizationError("Appointments can only be listed by their owner")

        column = Appointment.staff_id if Role(role_filter) == Role.STAFF else Appointment.account_id
        stmt = select(Appointment).where(column == owner_id)
        if status is not None:
            stmt = stmt.where(Appointment.status == AppointmentStatus(status).value)
        if on_date is not None:
            stmt = stmt.where(Appointment.date == parse_date(on_date))

        result = await self.session.execute(stmt)
        return sort_appointments(result.scalars().all())

    async def list_for_day(self, caller: Caller, on_date: str) -> List[Appointment]:
        """The caller's appointments on one day, by time."""
        return await self.list_by_owner(caller, caller.id, caller.role, on_date=on_date)

    # Creation

    @with_store_retry
    async def create_checkup_request(self, caller: Caller, data: CheckupRequestCreate) -> Appointment:
        if not caller.is_patient:
            raise AuthorizationError("Only patients can request checkups")

        reason = require_text(data.reason_for_checkup, "reason_for_checkup")
        if data.patient_id is None:
            raise ValidationError("patient_id")
        staff = await self.staff.get_staff(data.staff_id)
        preferred_date = parse_date(data.date) if data.date else today_iso()

        patient = await self.session.get(FamilyMember, data.patient_id, populate_existing=True)
        if not patient:
            raise NotFoundError("Patient", data.patient_id, field="patient_id")
        if patient.owner_id != caller.id or patient.partition != Partition.FAMILY.value:
            raise AuthorizationError("Patient is not on the caller's family list")

        owner = patient if patient.is_account_owner else await self.family.find_account_owner(caller.id)

        appointment = Appointment(
            patient_id=patient.id,
            patient_name=patient.name,
            account_id=caller.id,
            staff_id=staff.id,
            staff_name=staff.name,
            appointment_type=AppointmentType.CHECKUP.value,
            reason_for_checkup=reason,
            date=preferred_date,
            time=None,
            status=AppointmentStatus.PENDING.value,
            booked_by_staff=False,
            family_owner_name=owner.name if owner else None,
            family_owner_email=owner.email if owner else None,
            family_member_relationship=patient.relationship,
        )
        self.session.add(appointment)
        await self.session.flush()

        self.notifications.stage(
            staff.id,
            patient.name,
            f"New checkup request from {patient.name}: {reason}",
            NotificationType.REMINDER,
            appointment_id=appointment.id,
        )

        await self.session.commit()
        await self.session.refresh(appointment)
        logger.info(f"Checkup request {appointment.id} for patient {patient.id} routed to staff {staff.id}")
        return appointment

    @with_store_retry
    async def create_staff_booking(self, caller: Caller, data: StaffBookingCreate) -> Appointment:
        if not caller.is_staff:
            raise AuthorizationError("Only staff can book appointments directly")

        if data.patient_id is None:
            raise ValidationError("patient_id")
        appointment_type = AppointmentType(data.appointment_type)
        if appointment_type == AppointmentType.VACCINATION:
            vaccine = require_text(data.vaccine, "vaccine")
            reason = None
        else:
            reason = require_text(data.reason_for_checkup, "reason_for_checkup")
            vaccine = None
        booked_date = parse_date(data.date)
        booked_time = parse_time(data.time)

        patient = await self.session.get(FamilyMember, data.patient_id, populate_existing=True)
        if not patient:
            raise NotFoundError("Patient", data.patient_id, field="patient_id")
        if patient.owner_id != caller.id or patient.partition != Partition.ROSTER.value:
            raise AuthorizationError("Patient is not on this staff roster")

        staff = await self.session.get(StaffMember, caller.id)
        dose = (data.dose or settings.DEFAULT_DOSE_LABEL) if vaccine else None

        appointment = Appointment(
            patient_id=patient.id,
            patient_name=patient.name,
            account_id=patient.account_id,
            staff_id=caller.id,
            staff_name=staff.name if staff else "Staff",
            appointment_type=appointment_type.value,
            vaccine=vaccine,
            dose=dose,
            reason_for_checkup=reason,
            date=booked_date,
            time=booked_time,
            # Staff bookings are confirmed on creation
            status=AppointmentStatus.SCHEDULED.value,
            booked_by_staff=True,
            family_member_relationship=patient.relationship,
        )
        async with self._staged():
            self.session.add(appointment)
            await self.session.flush()

            if vaccine:
                await self.care_records.stage_projection(patient.id, vaccine, booked_date, dose)

            if patient.account_id:
                what = vaccine if vaccine else "checkup"
                self.notifications.stage(
                    patient.account_id,
                    patient.name,
                    f"New {_kind(appointment)} appointment scheduled: {what} on {display_date(booked_date)} at {booked_time}",
                    NotificationType.INFO,
                    appointment_id=appointment.id,
                )

            await self.session.commit()
        await self.session.refresh(appointment)
        logger.info(f"Staff {caller.id} booked {appointment.appointment_type} {appointment.id} for patient {patient.id}")
        return appointment

    # Transitions

    async def _commit_transition(
        self, appointment: Appointment, target: AppointmentStatus, **values
    ) -> None:
        """Conditional write against the status and version that were read."""
        # Rollback expires the instance, so the error is built from these
        appointment_id, read_status, read_version = appointment.id, appointment.status, appointment.version
        stmt = (
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status == read_status,
                Appointment.version == read_version,
            )
            .values(
                status=target.value,
                version=read_version + 1,
                updated_at=utcnow(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            await self.session.rollback()
            raise StaleStateError(
                "Appointment",
                appointment_id,
                f"Appointment {appointment_id} is no longer {read_status}",
            )

    @asynccontextmanager
    async def _staged(self):
        """Discard every write staged in the block when a step of it is rejected."""
        try:
            yield
        except CareCoordinationError:
            await self.session.rollback()
            raise

    async def _finish(self, appointment_id: UUID) -> Appointment:
        await self.session.commit()
        return await self._load(appointment_id)

    def _notify_patient(self, appointment: Appointment, message: str) -> None:
        if appointment.account_id:
            self.notifications.stage(
                appointment.account_id,
                appointment.patient_name,
                message,
                NotificationType.INFO,
                appointment_id=appointment.id,
            )

    @with_store_retry
    async def schedule_request(
        self,
        caller: Caller,
        appointment_id: UUID,
        date: Optional[str],
        time: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Appointment:
        appointment = await self._load(appointment_id)
        self._ensure_assigned_staff(caller, appointment, "schedule")
        self._ensure_fresh(appointment, expected_version)
        # Only pending requests can be scheduled; scheduled ones go through reschedule
        ensure_transition(appointment, AppointmentStatus.SCHEDULED)
        new_date = parse_date(date)
        new_time = parse_time(time)

        async with self._staged():
            await self._commit_transition(appointment, AppointmentStatus.SCHEDULED, date=new_date, time=new_time)
            await self._stage_slot_change(appointment, new_date)
            self._notify_patient(
                appointment,
                f"Your {_kind(appointment)} appointment has been approved! Scheduled for {display_date(new_date)} at {new_time}",
            )
            logger.info(f"Appointment {appointment_id} scheduled for {new_date} {new_time}")
            return await self._finish(appointment_id)

    @with_store_retry
    async def reschedule(
        self,
        caller: Caller,
        appointment_id: UUID,
        date: Optional[str],
        time: Optional[str],
        expected_version: Optional[int] = None,
    ) -> Appointment:
        """
        Move an appointment to a new slot. A pending request is scheduled by
        the same call; a scheduled one keeps its status.
        """
        appointment = await self._load(appointment_id)
        self._ensure_assigned_staff(caller, appointment, "reschedule")
        self._ensure_fresh(appointment, expected_version)
        current = AppointmentStatus(appointment.status)
        if current.is_terminal:
            raise ValidationError("status", f"Appointment is {current.value} and cannot be rescheduled")
        new_date = parse_date(date)
        new_time = parse_time(time)

        async with self._staged():
            await self._commit_transition(appointment, AppointmentStatus.SCHEDULED, date=new_date, time=new_time)
            await self._stage_slot_change(appointment, new_date)
            if current == AppointmentStatus.PENDING:
                message = f"Your {_kind(appointment)} appointment has been scheduled for {display_date(new_date)} at {new_time}"
            else:
                message = f"Your {_kind(appointment)} appointment was rescheduled to {display_date(new_date)} at {new_time}"
            self._notify_patient(appointment, message)
            logger.info(f"Appointment {appointment_id} moved to {new_date} {new_time}")
            return await self._finish(appointment_id)

    async def _stage_slot_change(self, appointment: Appointment, new_date: str) -> None:
        if appointment.appointment_type != AppointmentType.VACCINATION.value or not appointment.vaccine:
            return
        dose = appointment.dose or settings.DEFAULT_DOSE_LABEL
        if appointment.status == AppointmentStatus.PENDING.value:
            await self.care_records.stage_projection(appointment.patient_id, appointment.vaccine, new_date, dose)
        else:
            await self.care_records.stage_move_projection(
                appointment.patient_id, appointment.vaccine, appointment.date, new_date, dose
            )

    @with_store_retry
    async def cancel(
        self, caller: Caller, appointment_id: UUID, expected_version: Optional[int] = None
    ) -> Appointment:
        appointment = await self._load(appointment_id)
        self._ensure_party(caller, appointment)
        self._ensure_fresh(appointment, expected_version)
        ensure_transition(appointment, AppointmentStatus.CANCELLED)

        async with self._staged():
            await self._commit_transition(appointment, AppointmentStatus.CANCELLED)
            if (
                appointment.appointment_type == AppointmentType.VACCINATION.value
                and appointment.vaccine
                and appointment.status == AppointmentStatus.SCHEDULED.value
            ):
                await self.care_records.stage_withdrawal(appointment.patient_id, appointment.vaccine, appointment.date)

            if caller.is_staff:
                if appointment.status == AppointmentStatus.PENDING.value:
                    message = (
                        f"Your {_kind(appointment)} request has been declined. Please contact the clinic "
                        f"for more information or submit a new request."
                    )
                else:
                    message = (
                        f"Your {_kind(appointment)} appointment scheduled for {display_date(appointment.date)} "
                        f"at {appointment.time} has been cancelled by staff."
                    )
                self._notify_patient(appointment, message)

            logger.info(f"Appointment {appointment_id} cancelled by {caller.role.value} {caller.id}")
            return await self._finish(appointment_id)

    @with_store_retry
    async def complete(
        self, caller: Caller, appointment_id: UUID, expected_version: Optional[int] = None
    ) -> Appointment:
        appointment = await self._load(appointment_id)
        self._ensure_assigned_staff(caller, appointment, "complete")
        self._ensure_fresh(appointment, expected_version)
        ensure_transition(appointment, AppointmentStatus.COMPLETED)

        async with self._staged():
            await self._commit_transition(appointment, AppointmentStatus.COMPLETED)
            if appointment.appointment_type == AppointmentType.VACCINATION.value and appointment.vaccine:
                dose = appointment.dose or settings.DEFAULT_DOSE_LABEL
                patient = await self.care_records.stage_completion(
                    appointment.patient_id, appointment.vaccine, appointment.date, dose
                )
                if patient is None:
                    logger.warning(
                        f"Patient {appointment.patient_id} no longer exists; completed {appointment.vaccine} "
                        f"for appointment {appointment_id} has no history to update"
                    )

            self._notify_patient(
                appointment,
                f"Your {_kind(appointment)} appointment has been completed. Thank you for visiting!",
            )
            logger.info(f"Appointment {appointment_id} completed by staff {caller.id}")
            return await self._finish(appointment_id)

    @with_store_retry
    async def purge_terminal_history(self, caller: Caller, owner_id: str, status: AppointmentStatus) -> int:
        """Delete the owner's completed or cancelled appointments. Returns the number removed."""
        if owner_id != caller.id:
            raise AuthorizationError("History can only be purged by its owner")
        try:
            status = AppointmentStatus(status)
        except ValueError:
            raise ValidationError("status", f"Unknown status '{status}'")
        if status not in PURGEABLE_STATUSES:
            raise ValidationError("status", "Only completed or cancelled history can be purged")

        column = Appointment.staff_id if caller.is_staff else Appointment.account_id
        stmt = (
            delete(Appointment)
            .where(column == owner_id, Appointment.status == status.value)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        logger.info(f"Purged {result.rowcount} {status.value} appointments for {owner_id}")
        return result.rowcount
