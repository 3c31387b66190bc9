import pytest

from vaxfamily.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from vaxfamily.db.models import Appointment, AppointmentStatus, AppointmentType, FamilyMember, VaccineStatus
from vaxfamily.services.care_record_service import CareRecordService, is_fully_vaccinated, next_dose

from tests.conftest import PATIENT_ID, STAFF_ID


def entry(name, date, status="Completed", dose="Dose 1"):
    return {"name": name, "dose": dose, "date": date, "status": status}


async def reload_member(session, member_id):
    return await session.get(FamilyMember, member_id, populate_existing=True)


def test_empty_history_is_not_fully_vaccinated():
    assert is_fully_vaccinated([]) is False
    assert is_fully_vaccinated(None) is False


def test_fully_vaccinated_only_when_every_entry_is_completed():
    assert is_fully_vaccinated([entry("MMR", "2025-01-01"), entry("Polio", "2025-02-01")]) is True
    assert is_fully_vaccinated([entry("MMR", "2025-01-01"), entry("Polio", "2025-02-01", "Upcoming")]) is False


def test_next_dose_is_earliest_upcoming_entry():
    history = [
        entry("MMR", "2025-01-01"),
        entry("Hepatitis B", "2025-06-01", "Upcoming", "Dose 2"),
        entry("Polio", "2025-04-15", "Upcoming"),
        entry("Tdap", "2025-04-15", "Upcoming"),
    ]
    assert next_dose(history) == {"vaccine": "Polio", "dose": "Dose 1", "date": "2025-04-15"}
    assert next_dose([entry("MMR", "2025-01-01")]) is None
    assert next_dose([]) is None


@pytest.mark.asyncio
async def test_projection_is_idempotent(session, seeded, staff):
    service = CareRecordService(session)

    await service.project_vaccination_event(staff, seeded["roster_ryan"], "Polio", "2025-04-15")
    member = await service.project_vaccination_event(staff, seeded["roster_ryan"], "Polio", "2025-04-15")

    assert member.vaccine_history == [entry("Polio", "2025-04-15", "Upcoming")]
    assert member.next_dose == {"vaccine": "Polio", "dose": "Dose 1", "date": "2025-04-15"}
    assert member.is_fully_vaccinated is False


@pytest.mark.asyncio
async def test_completion_flips_matching_upcoming_entry(session, seeded, staff):
    service = CareRecordService(session)
    await service.project_vaccination_event(staff, seeded["roster_ryan"], "Polio", "2025-04-15", "Dose 2")

    member = await service.complete_vaccination_event(staff, seeded["roster_ryan"], "Polio", "2025-04-15", "Dose 2")
    assert member.vaccine_history == [entry("Polio", "2025-04-15", dose="Dose 2")]
    assert member.is_fully_vaccinated is True
    assert member.next_dose is None

    again = await service.complete_vaccination_event(staff, seeded["roster_ryan"], "Polio", "2025-04-15", "Dose 2")
    assert again.vaccine_history == member.vaccine_history


@pytest.mark.asyncio
async def test_completion_without_projection_appends_entry(session, seeded, staff):
    service = CareRecordService(session)

    member = await service.complete_vaccination_event(staff, seeded["roster_ryan"], "Tdap", "2025-02-02")

    assert member.vaccine_history == [entry("Tdap", "2025-02-02")]


@pytest.mark.asyncio
async def test_care_record_operations_check_caller(session, seeded, staff, other_staff, patient):
    service = CareRecordService(session)

    with pytest.raises(AuthorizationError):
        await service.project_vaccination_event(patient, seeded["jessica"], "MMR", "2025-03-10")
    with pytest.raises(AuthorizationError):
        await service.project_vaccination_event(other_staff, seeded["roster_ryan"], "MMR", "2025-03-10")
    with pytest.raises(ValidationError) as exc:
        await service.project_vaccination_event(staff, seeded["roster_ryan"], "", "2025-03-10")
    assert exc.value.field == "vaccine_name"
    with pytest.raises(ValidationError) as exc:
        await service.complete_vaccination_event(staff, seeded["roster_ryan"], "MMR", "March 10")
    assert exc.value.field == "date"

    member = await reload_member(session, seeded["roster_ryan"])
    assert member.vaccine_history == []


@pytest.mark.asyncio
async def test_patient_records_outside_vaccination(session, seeded, patient, other_patient):
    service = CareRecordService(session)

    member = await service.add_history_entry(patient, seeded["julian"], "BCG", "2019-05-01")
    assert member.vaccine_history == [entry("BCG", "2019-05-01")]
    assert member.is_fully_vaccinated is True

    member = await service.add_history_entry(
        patient, seeded["julian"], "Varicella", "2026-01-10", "Dose 2", VaccineStatus.UPCOMING
    )
    assert member.next_dose == {"vaccine": "Varicella", "dose": "Dose 2", "date": "2026-01-10"}
    assert member.is_fully_vaccinated is False

    with pytest.raises(AuthorizationError):
        await service.add_history_entry(other_patient, seeded["julian"], "BCG", "2019-05-01")


@pytest.mark.asyncio
async def test_unknown_patient_is_not_found(session, seeded, staff):
    from uuid import uuid4

    with pytest.raises(NotFoundError) as exc:
        await CareRecordService(session).project_vaccination_event(staff, uuid4(), "MMR", "2025-03-10")
    assert exc.value.field == "patient_id"


@pytest.mark.asyncio
async def test_reconcile_restores_entries_from_appointments(session, seeded):
    patient_id = seeded["roster_julian"]
    session.add_all([
        Appointment(
            patient_id=patient_id, patient_name="Julian Doe", account_id=PATIENT_ID, staff_id=STAFF_ID,
            appointment_type=AppointmentType.VACCINATION.value, vaccine="MMR", dose="Dose 1",
            date="2025-03-10", time="09:30", status=AppointmentStatus.COMPLETED.value,
        ),
        Appointment(
            patient_id=patient_id, patient_name="Julian Doe", account_id=PATIENT_ID, staff_id=STAFF_ID,
            appointment_type=AppointmentType.VACCINATION.value, vaccine="Polio", dose="Dose 2",
            date="2025-05-01", time="10:00", status=AppointmentStatus.SCHEDULED.value,
        ),
        Appointment(
            patient_id=patient_id, patient_name="Julian Doe", account_id=PATIENT_ID, staff_id=STAFF_ID,
            appointment_type=AppointmentType.VACCINATION.value, vaccine="Tdap", dose="Dose 1",
            date="2025-06-01", time="10:00", status=AppointmentStatus.CANCELLED.value,
        ),
    ])
    member = await reload_member(session, patient_id)
    member.vaccine_history = [entry("MMR", "2025-03-10", "Upcoming"), entry("BCG", "2019-05-01")]
    session.add(member)
    await session.commit()

    reconciled = await CareRecordService(session).reconcile(patient_id)

    assert reconciled.vaccine_history == [
        entry("MMR", "2025-03-10"),
        entry("BCG", "2019-05-01"),
        entry("Polio", "2025-05-01", "Upcoming", "Dose 2"),
    ]
    assert reconciled.next_dose == {"vaccine": "Polio", "dose": "Dose 2", "date": "2025-05-01"}

    # Nothing left to repair on a second pass
    version = reconciled.version
    again = await CareRecordService(session).reconcile(patient_id)
    assert again.version == version
