"""
Error taxonomy for the reservation core.

Every business-rule violation is a ReservationError subclass with a stable
`code`, a human message and a `details` dict naming the table, constraint,
time window or records involved. The HTTP layer maps `status_code` and
serialises `to_dict()`; infrastructure faults are never wrapped here.
"""
from typing import Any, Dict


class ReservationError(Exception):
    """Base class for expected business-rule violations."""

    code = "reservation_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> dict:
        from seatplan.services.audit_service import make_audit_safe
        return {"code": self.code, "message": self.message, "details": make_audit_safe(self.details)}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"


class OutOfServiceHoursError(ReservationError):
    code = "out_of_service_hours"
    status_code = 422


class TableUnavailableError(ReservationError):
    code = "table_unavailable"
    status_code = 409


class CapacityExceededError(ReservationError):
    code = "capacity_exceeded"
    status_code = 422


class ReservationNotFoundError(ReservationError):
    code = "reservation_not_found"
    status_code = 404


class InvalidTransitionError(ReservationError):
    code = "invalid_transition"
    status_code = 409


class NoTableAssignedError(ReservationError):
    code = "no_table_assigned"
    status_code = 409


class StaleStateError(ReservationError):
    code = "stale_state"
    status_code = 409


class ConflictUnresolvedError(ReservationError):
    code = "conflict_unresolved"
    status_code = 409


class TableNotFoundError(ReservationError):
    code = "table_not_found"
    status_code = 404


class ZoneNotFoundError(ReservationError):
    code = "zone_not_found"
    status_code = 404


class CustomerNotFoundError(ReservationError):
    code = "customer_not_found"
    status_code = 404


class InvalidRequestError(ReservationError):
    code = "invalid_request"
    status_code = 422


class PermissionDeniedError(ReservationError):
    code = "permission_denied"
    status_code = 403


class RateLimitExceededError(ReservationError):
    code = "rate_limit_exceeded"
    status_code = 429
