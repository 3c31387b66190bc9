import asyncio
import functools
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from vaxfamily.core.config import settings
from vaxfamily.core.exceptions import StoreUnavailableError, ValidationError
from vaxfamily.core.logger import get_logger

logger = get_logger("store")

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

TRANSIENT_STORE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


def parse_date(value: Optional[str], field: str = "date") -> str:
    """Validate a ``yyyy-MM-dd`` string and return it normalised."""
    if not value or not str(value).strip():
        raise ValidationError(field)
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date().isoformat()
    except ValueError:
        raise ValidationError(field, f"'{field}' must use the yyyy-MM-dd format")


def parse_time(value: Optional[str], field: str = "time") -> str:
    """Validate a 24-hour ``HH:mm`` string and return it zero padded."""
    if not value or not str(value).strip():
        raise ValidationError(field)
    try:
        return datetime.strptime(str(value).strip(), TIME_FORMAT).strftime(TIME_FORMAT)
    except ValueError:
        raise ValidationError(field, f"'{field}' must use the 24-hour HH:mm format")


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field)
    return str(value).strip()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today_iso() -> str:
    return date.today().isoformat()


def display_date(value: str) -> str:
    # 2025-03-10 -> March 10, 2025
    parsed = datetime.strptime(value, DATE_FORMAT)
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def with_store_retry(func):
    """
    Re-run a service coroutine when the store fails transiently.

    The wrapped method must belong to an object exposing ``session``. Every
    attempt starts from a rolled back session so the whole
    read-validate-write cycle is repeated against fresh data.
    """

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        attempts = max(1, settings.STORE_RETRY_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                try:
                    return await func(self, *args, **kwargs)
                except TRANSIENT_STORE_ERRORS as exc:
                    raise StoreUnavailableError(f"store call failed: {exc.__class__.__name__}") from exc
            except StoreUnavailableError as exc:
                await self.session.rollback()
                if attempt == attempts:
                    logger.error(f"{func.__qualname__} gave up after {attempts} attempts: {exc.message}")
                    raise
                delay = settings.STORE_RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    f"{func.__qualname__} attempt {attempt}/{attempts} failed ({exc.message}), retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

    return wrapper
