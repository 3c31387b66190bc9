import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import vaxfamily.db.models  # noqa: F401
from vaxfamily.core.security import Caller, Role
from vaxfamily.db.models import FamilyMember, Partition, StaffMember

PATIENT_ID = "patient-1"
OTHER_PATIENT_ID = "patient-2"
STAFF_ID = "staff-1"
OTHER_STAFF_ID = "staff-2"


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File backed so that separate sessions hold separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vaxfamily.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def patient():
    return Caller(id=PATIENT_ID, role=Role.PATIENT)


@pytest.fixture
def other_patient():
    return Caller(id=OTHER_PATIENT_ID, role=Role.PATIENT)


@pytest.fixture
def staff():
    return Caller(id=STAFF_ID, role=Role.STAFF)


@pytest.fixture
def other_staff():
    return Caller(id=OTHER_STAFF_ID, role=Role.STAFF)


def _member(owner_id, partition, name, relationship="Me", **extra):
    return FamilyMember(
        owner_id=owner_id,
        partition=partition.value,
        name=name,
        relationship=relationship,
        vaccine_history=[],
        **extra,
    )


@pytest_asyncio.fixture
async def seeded(session_factory):
    """
    One staff member, the patient's own family list, and the staff roster,
    where the patient's family appears again linked to the patient account.
    """
    async with session_factory() as s:
        s.add(StaffMember(id=STAFF_ID, name="Dr. Maria Santos", email="maria@clinic.test", specialty="Pediatrics"))
        s.add(StaffMember(id=OTHER_STAFF_ID, name="Dr. Alan Reyes", specialty="General Practice"))

        jessica = _member(PATIENT_ID, Partition.FAMILY, "Jessica Doe", email="jessica@example.com", account_id=PATIENT_ID)
        julian = _member(PATIENT_ID, Partition.FAMILY, "Julian Doe", "Son", account_id=PATIENT_ID)

        roster_jessica = _member(STAFF_ID, Partition.ROSTER, "Jessica Doe", account_id=PATIENT_ID)
        roster_julian = _member(STAFF_ID, Partition.ROSTER, "Julian Doe", "Son", account_id=PATIENT_ID)
        roster_ryan = _member(STAFF_ID, Partition.ROSTER, "Ryan Smith")
        walk_in = _member(OTHER_STAFF_ID, Partition.ROSTER, "Nora Lee")

        s.add_all([jessica, julian, roster_jessica, roster_julian, roster_ryan, walk_in])
        await s.commit()

        return {
            "jessica": jessica.id,
            "julian": julian.id,
            "roster_jessica": roster_jessica.id,
            "roster_julian": roster_julian.id,
            "roster_ryan": roster_ryan.id,
            "walk_in": walk_in.id,
        }
