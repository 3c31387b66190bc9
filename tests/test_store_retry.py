import pytest
from sqlalchemy.exc import OperationalError

from vaxfamily.core.config import settings
from vaxfamily.core.exceptions import AuthorizationError, StoreUnavailableError
from vaxfamily.services.notification_service import NotificationService

from tests.conftest import PATIENT_ID


def store_down():
    return OperationalError("SELECT", {}, Exception("database is locked"))


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "STORE_RETRY_BACKOFF_SECONDS", 0.0)


@pytest.mark.asyncio
async def test_transient_failure_is_retried(session, patient, monkeypatch):
    service = NotificationService(session)
    await service.add(PATIENT_ID, "Jessica Doe", "Your results are ready")

    execute = session.execute
    calls = []

    async def fails_once(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise store_down()
        return await execute(*args, **kwargs)

    monkeypatch.setattr(session, "execute", fails_once)

    assert await service.unread_count_for(patient, PATIENT_ID) == 1
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_store_unavailable_after_all_attempts(session, patient, monkeypatch):
    service = NotificationService(session)
    calls = []

    async def always_fails(*args, **kwargs):
        calls.append(args)
        raise store_down()

    monkeypatch.setattr(session, "execute", always_fails)

    with pytest.raises(StoreUnavailableError) as exc:
        await service.unread_count_for(patient, PATIENT_ID)

    assert len(calls) == settings.STORE_RETRY_ATTEMPTS
    assert exc.value.retryable is True
    assert exc.value.status_code == 503
    assert exc.value.to_dict()["error"] == "store_unavailable"
    assert isinstance(exc.value.__cause__, OperationalError)


@pytest.mark.asyncio
async def test_rejections_are_not_retried(session, other_patient, monkeypatch):
    service = NotificationService(session)
    calls = []
    execute = session.execute

    async def counting(*args, **kwargs):
        calls.append(args)
        return await execute(*args, **kwargs)

    monkeypatch.setattr(session, "execute", counting)

    with pytest.raises(AuthorizationError):
        await service.clear_all(other_patient, PATIENT_ID)
    assert calls == []
