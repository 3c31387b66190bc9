from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from vaxfamily.core.config import settings
from vaxfamily.core.exceptions import AuthorizationError, NotFoundError, StaleStateError
from vaxfamily.core.logger import get_logger
from vaxfamily.core.security import Caller
from vaxfamily.core.utils import parse_date, require_text, with_store_retry
from vaxfamily.db.models import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    FamilyMember,
    VaccineStatus,
)

logger = get_logger("care_records")

# Conflicting history writers are re-read and re-applied this many times
HISTORY_WRITE_ATTEMPTS = 3

HistoryMutation = Callable[[List[dict]], bool]


def is_fully_vaccinated(history: Optional[List[dict]]) -> bool:
    # An empty history counts as incomplete
    if not history:
        return False
    return all(entry.get("status") == VaccineStatus.COMPLETED.value for entry in history)


def next_dose(history: Optional[List[dict]]) -> Optional[dict]:
    upcoming = [e for e in history or [] if e.get("status") == VaccineStatus.UPCOMING.value]
    if not upcoming:
        return None
    # min() keeps the first of equal dates, so ties resolve in history order
    entry = min(upcoming, key=lambda e: e.get("date") or "")
    return {"vaccine": entry.get("name"), "dose": entry.get("dose"), "date": entry.get("date")}


def _entry(name: str, dose: str, date: str, status: VaccineStatus) -> dict:
    return {"name": name, "dose": dose, "date": date, "status": status.value}


def _matches(entry: dict, name: str, date: str) -> bool:
    return entry.get("name") == name and entry.get("date") == date


class CareRecordService:
    """
    Keeps each patient's vaccination history consistent with their
    vaccination appointments.

    The ``stage_*`` methods write inside the caller's transaction without
    committing, so the ledger can pair a status change with its history
    change in one commit. The public operations commit on their own.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_patient(self, patient_id: UUID) -> FamilyMember:
        patient = await self.session.get(FamilyMember, patient_id, populate_existing=True)
        if not patient:
            raise NotFoundError("Patient", patient_id, field="patient_id")
        return patient

    async def _rewrite_history(self, patient_id: UUID, mutate: HistoryMutation) -> Optional[FamilyMember]:
        """
        Apply ``mutate`` to a copy of the patient's history and write it back
        guarded by the row version. Returns None when the patient is gone.
        """
        for _ in range(HISTORY_WRITE_ATTEMPTS):
            patient = await self.session.get(FamilyMember, patient_id, populate_existing=True)
            if patient is None:
                return None

            history = [dict(entry) for entry in patient.vaccine_history or []]
            if not mutate(history):
                return patient

            stmt = (
                update(FamilyMember)
                .where(FamilyMember.id == patient_id, FamilyMember.version == patient.version)
                .values(
                    vaccine_history=history,
                    is_fully_vaccinated=is_fully_vaccinated(history),
                    next_dose=next_dose(history),
                    version=patient.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            if result.rowcount == 1:
                return patient

        raise StaleStateError("Patient", patient_id, "vaccination history kept changing while being updated")

    # Staged writes, used by the ledger inside its own transaction

    async def stage_projection(self, patient_id: UUID, vaccine_name: str, date: str, dose: str) -> Optional[FamilyMember]:
        def mutate(history: List[dict]) -> bool:
            for entry in history:
                if _matches(entry, vaccine_name, date) and entry.get("dose") == dose:
                    return False
            history.append(_entry(vaccine_name, dose, date, VaccineStatus.UPCOMING))
            return True

        return await self._rewrite_history(patient_id, mutate)

    async def stage_completion(self, patient_id: UUID, vaccine_name: str, date: str, dose: str) -> Optional[FamilyMember]:
        def mutate(history: List[dict]) -> bool:
            for entry in history:
                if (
                    _matches(entry, vaccine_name, date)
                    and entry.get("dose") == dose
                    and entry.get("status") == VaccineStatus.COMPLETED.value
                ):
                    return False
            for entry in history:
                if _matches(entry, vaccine_name, date) and entry.get("status") == VaccineStatus.UPCOMING.value:
                    entry["status"] = VaccineStatus.COMPLETED.value
                    return True
            logger.warning(
                f"No upcoming '{vaccine_name}' entry on {date} for patient {patient_id}; appending a completed one"
            )
            history.append(_entry(vaccine_name, dose, date, VaccineStatus.COMPLETED))
            return True

        return await self._rewrite_history(patient_id, mutate)

    async def stage_move_projection(
        self, patient_id: UUID, vaccine_name: str, old_date: str, new_date: str, dose: str
    ) -> Optional[FamilyMember]:
        def mutate(history: List[dict]) -> bool:
            for entry in history:
                if _matches(entry, vaccine_name, old_date) and entry.get("status") == VaccineStatus.UPCOMING.value:
                    if old_date == new_date:
                        return False
                    entry["date"] = new_date
                    return True
            history.append(_entry(vaccine_name, dose, new_date, VaccineStatus.UPCOMING))
            return True

        return await self._rewrite_history(patient_id, mutate)

    async def stage_withdrawal(self, patient_id: UUID, vaccine_name: str, date: str) -> Optional[FamilyMember]:
        def mutate(history: List[dict]) -> bool:
            for index, entry in enumerate(history):
                if _matches(entry, vaccine_name, date) and entry.get("status") == VaccineStatus.UPCOMING.value:
                    del history[index]
                    return True
            return False

        return await self._rewrite_history(patient_id, mutate)

    # Public operations

    def _ensure_staff(self, caller: Caller) -> None:
        if not caller.is_staff:
            raise AuthorizationError("Only staff can change vaccination records")

    async def _owned_patient(self, caller: Caller, patient_id: UUID) -> FamilyMember:
        patient = await self.get_patient(patient_id)
        if patient.owner_id != caller.id:
            raise AuthorizationError("Patient record belongs to another account")
        return patient

    @with_store_retry
    async def project_vaccination_event(
        self, caller: Caller, patient_id: UUID, vaccine_name: str, date: str, dose: Optional[str] = None
    ) -> FamilyMember:
        self._ensure_staff(caller)
        vaccine_name = require_text(vaccine_name, "vaccine_name")
        date = parse_date(date)
        await self._owned_patient(caller, patient_id)

        await self.stage_projection(patient_id, vaccine_name, date, dose or settings.DEFAULT_DOSE_LABEL)
        await self.session.commit()
        return await self.get_patient(patient_id)

    @with_store_retry
    async def complete_vaccination_event(
        self, caller: Caller, patient_id: UUID, vaccine_name: str, date: str, dose: Optional[str] = None
    ) -> FamilyMember:
        self._ensure_staff(caller)
        vaccine_name = require_text(vaccine_name, "vaccine_name")
        date = parse_date(date)
        await self._owned_patient(caller, patient_id)

        await self.stage_completion(patient_id, vaccine_name, date, dose or settings.DEFAULT_DOSE_LABEL)
        await self.session.commit()
        return await self.get_patient(patient_id)

    @with_store_retry
    async def add_history_entry(
        self,
        caller: Caller,
        patient_id: UUID,
        name: str,
        date: str,
        dose: Optional[str] = None,
        status: VaccineStatus = VaccineStatus.COMPLETED,
    ) -> FamilyMember:
        """Record a vaccination given outside the appointment flow."""
        await self._owned_patient(caller, patient_id)
        name = require_text(name, "name")
        date = parse_date(date)
        dose = dose or settings.DEFAULT_DOSE_LABEL

        if VaccineStatus(status) == VaccineStatus.COMPLETED:
            await self.stage_completion(patient_id, name, date, dose)
        else:
            await self.stage_projection(patient_id, name, date, dose)
        await self.session.commit()
        return await self.get_patient(patient_id)

    async def reconcile(self, patient_id: UUID) -> Optional[FamilyMember]:
        """
        Re-derive history entries from the patient's vaccination appointments.

        Scheduled appointments must have an Upcoming entry and completed ones a
        Completed entry. Missing entries are added and every repair is logged.
        Entries without a matching appointment are left alone, they may have
        been recorded by hand.
        """
        stmt = select(Appointment).where(
            Appointment.patient_id == patient_id,
            Appointment.appointment_type == AppointmentType.VACCINATION.value,
            Appointment.status.in_([AppointmentStatus.SCHEDULED.value, AppointmentStatus.COMPLETED.value]),
        )
        result = await self.session.execute(stmt)
        appointments = result.scalars().all()
        if not appointments:
            return await self.session.get(FamilyMember, patient_id, populate_existing=True)

        repaired_any = False

        def mutate(history: List[dict]) -> bool:
            nonlocal repaired_any
            repaired = False
            for appt in appointments:
                dose = appt.dose or settings.DEFAULT_DOSE_LABEL
                matching = [e for e in history if _matches(e, appt.vaccine, appt.date)]
                if appt.status == AppointmentStatus.COMPLETED.value:
                    if any(e.get("status") == VaccineStatus.COMPLETED.value for e in matching):
                        continue
                    upcoming = [e for e in matching if e.get("status") == VaccineStatus.UPCOMING.value]
                    if upcoming:
                        upcoming[0]["status"] = VaccineStatus.COMPLETED.value
                    else:
                        history.append(_entry(appt.vaccine, dose, appt.date, VaccineStatus.COMPLETED))
                    logger.warning(f"Reconciled completed '{appt.vaccine}' on {appt.date} for patient {patient_id}")
                    repaired = True
                elif not matching:
                    history.append(_entry(appt.vaccine, dose, appt.date, VaccineStatus.UPCOMING))
                    logger.warning(f"Reconciled upcoming '{appt.vaccine}' on {appt.date} for patient {patient_id}")
                    repaired = True
            repaired_any = repaired_any or repaired
            return repaired

        patient = await self._rewrite_history(patient_id, mutate)
        if patient is not None and repaired_any:
            await self.session.commit()
            patient = await self.session.get(FamilyMember, patient_id, populate_existing=True)
        return patient
