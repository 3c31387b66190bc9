from typing import Any, Optional


class CareCoordinationError(Exception):
    """Base class for every error the care-coordination core surfaces."""

    code = "care_coordination_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(CareCoordinationError):
    """A required field is missing or invalid. Fix the input, do not retry."""

    code = "validation_error"
    status_code = 422

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"'{field}' is required", field=field)


class AuthorizationError(CareCoordinationError):
    code = "authorization_error"
    status_code = 403


class StaleStateError(CareCoordinationError):
    """The record changed between read and commit. Re-read and retry."""

    code = "stale_state"
    status_code = 409

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        super().__init__(message or f"{entity} {entity_id} was modified concurrently")
        self.entity = entity
        self.entity_id = entity_id


class NotFoundError(CareCoordinationError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any, field: Optional[str] = None):
        super().__init__(f"{entity} {entity_id} not found", field=field)
        self.entity = entity
        self.entity_id = entity_id


class StoreUnavailableError(CareCoordinationError):
    """Transient store failure; nothing was committed, safe to retry."""

    code = "store_unavailable"
    status_code = 503
    retryable = True
