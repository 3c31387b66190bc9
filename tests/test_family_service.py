from uuid import uuid4

import pytest

from vaxfamily.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from vaxfamily.db.models import Partition
from vaxfamily.schemas.appointment import StaffBookingCreate
from vaxfamily.schemas.family_member import FamilyMemberCreate, FamilyMemberUpdate
from vaxfamily.services.appointment_service import AppointmentService
from vaxfamily.services.care_record_service import CareRecordService
from vaxfamily.services.family_service import FamilyService

from tests.conftest import PATIENT_ID, STAFF_ID


@pytest.mark.asyncio
async def test_family_members_are_scoped_to_the_account(session, seeded, patient, other_patient):
    service = FamilyService(session)

    member = await service.create_member(
        patient, FamilyMemberCreate(name="Ana Doe", relationship="Daughter", account_id="ignored")
    )
    assert member.partition == Partition.FAMILY.value
    assert member.owner_id == PATIENT_ID
    assert member.account_id == PATIENT_ID
    assert member.vaccine_history == []
    assert member.is_fully_vaccinated is False

    names = [m.name for m in await service.list_members(patient)]
    assert names == ["Jessica Doe", "Julian Doe", "Ana Doe"]
    assert await service.list_members(other_patient) == []

    with pytest.raises(AuthorizationError):
        await service.get_member(other_patient, member.id)
    with pytest.raises(NotFoundError):
        await service.get_member(patient, uuid4())


@pytest.mark.asyncio
async def test_roster_entries_keep_linked_account(session, seeded, staff):
    service = FamilyService(session)

    member = await service.create_member(
        staff, FamilyMemberCreate(name="Leo Smith", relationship="Son", account_id="patient-9")
    )

    assert member.partition == Partition.ROSTER.value
    assert member.owner_id == STAFF_ID
    assert member.account_id == "patient-9"


@pytest.mark.asyncio
async def test_create_member_requires_name(session, seeded, patient):
    with pytest.raises(ValidationError) as exc:
        await FamilyService(session).create_member(patient, FamilyMemberCreate(name=" "))
    assert exc.value.field == "name"


@pytest.mark.asyncio
async def test_family_owner_link_must_point_at_an_owner(session, seeded, staff):
    service = FamilyService(session)

    with pytest.raises(ValidationError) as exc:
        await service.create_member(
            staff,
            FamilyMemberCreate(name="Kevin Brown", relationship="Stepson", family_owner_id=seeded["roster_julian"]),
        )
    assert exc.value.field == "family_owner_id"

    # An owner from someone else's list is not accepted either
    with pytest.raises(ValidationError):
        await service.create_member(
            staff,
            FamilyMemberCreate(name="Kevin Brown", relationship="Stepson", family_owner_id=seeded["jessica"]),
        )

    stepson = await service.create_member(
        staff,
        FamilyMemberCreate(name="Kevin Brown", relationship="Stepson", family_owner_id=seeded["roster_ryan"]),
    )
    groups = await service.list_family_groups(staff)
    ryan = next(g for g in groups if g.owner.name == "Ryan Smith")
    assert [m.id for m in ryan.members] == [seeded["roster_ryan"], stepson.id]


@pytest.mark.asyncio
async def test_roster_groups_cover_every_member(session, seeded, staff):
    groups = await FamilyService(session).list_family_groups(staff)

    assert [[m.name for m in g.members] for g in groups] == [
        ["Jessica Doe", "Julian Doe"],
        ["Ryan Smith"],
    ]


@pytest.mark.asyncio
async def test_rename_refreshes_appointment_snapshots(session, seeded, staff):
    appointments = AppointmentService(session)
    booked = await appointments.create_staff_booking(
        staff,
        StaffBookingCreate(patient_id=seeded["roster_julian"], vaccine="MMR", date="2025-03-10", time="09:30"),
    )

    member = await FamilyService(session).update_member(
        staff, seeded["roster_julian"], FamilyMemberUpdate(name="Julian A. Doe", age=7)
    )
    assert member.name == "Julian A. Doe"
    assert member.age == 7

    refreshed = await appointments.get_appointment(staff, booked.id)
    assert refreshed.patient_name == "Julian A. Doe"


@pytest.mark.asyncio
async def test_update_cannot_relink_family_list(session, seeded, patient):
    member = await FamilyService(session).update_member(
        patient, seeded["julian"], FamilyMemberUpdate(account_id="patient-9", phone="555-0101")
    )

    assert member.account_id == PATIENT_ID
    assert member.phone == "555-0101"


@pytest.mark.asyncio
async def test_delete_member(session, seeded, patient, other_patient):
    service = FamilyService(session)

    with pytest.raises(AuthorizationError):
        await service.delete_member(other_patient, seeded["julian"])

    await service.delete_member(patient, seeded["julian"])
    assert [m.name for m in await service.list_members(patient)] == ["Jessica Doe"]


@pytest.mark.asyncio
async def test_sync_linked_family_imports_new_members_once(session, seeded, patient, staff):
    service = FamilyService(session)
    added = await service.create_member(
        patient,
        FamilyMemberCreate(name="Ana Doe", relationship="Daughter", birthdate="2020-02-14", age=5),
    )
    await CareRecordService(session).add_history_entry(patient, added.id, "BCG", "2020-03-01")

    imported = await service.sync_linked_family(staff, PATIENT_ID)

    assert [m.name for m in imported] == ["Ana Doe"]
    copy = imported[0]
    assert copy.partition == Partition.ROSTER.value
    assert copy.owner_id == STAFF_ID
    assert copy.account_id == PATIENT_ID
    assert copy.family_owner_id == seeded["roster_jessica"]
    assert copy.birthdate == "2020-02-14"
    assert copy.vaccine_history == [{"name": "BCG", "dose": "Dose 1", "date": "2020-03-01", "status": "Completed"}]
    assert copy.is_fully_vaccinated is True

    assert await service.sync_linked_family(staff, PATIENT_ID) == []

    groups = await service.list_family_groups(staff)
    assert [m.name for m in groups[0].members] == ["Jessica Doe", "Julian Doe", "Ana Doe"]


@pytest.mark.asyncio
async def test_sync_linked_family_needs_a_linked_owner(session, seeded, patient, staff, other_staff):
    service = FamilyService(session)

    with pytest.raises(AuthorizationError):
        await service.sync_linked_family(patient, PATIENT_ID)
    with pytest.raises(ValidationError) as exc:
        await service.sync_linked_family(other_staff, PATIENT_ID)
    assert exc.value.field == "account_id"
    with pytest.raises(ValidationError) as exc:
        await service.sync_linked_family(staff, " ")
    assert exc.value.field == "account_id"
