from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import jwt

from vaxfamily.core.config import settings


class Role(str, Enum):
    PATIENT = "patient"
    STAFF = "staff"


@dataclass(frozen=True)
class Caller:
    """Identity of whoever is invoking an operation, as supplied by the identity oracle."""

    id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role == Role.STAFF

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def token_for(caller: Caller, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token({"sub": caller.id, "role": caller.role.value}, expires_delta)


def decode_caller(token: str) -> Caller:
    # Raises jwt.PyJWTError on a bad signature or expired token and ValueError on an unknown role
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("token has no subject")
    return Caller(id=str(user_id), role=Role(payload.get("role")))
