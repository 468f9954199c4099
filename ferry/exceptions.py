"""
Booking domain exceptions.

Business-rule violations (capacity, state, cutoff, restriction) are raised as
subclasses of ``BookingDomainError`` and rendered by the API layer as typed
error payloads. Anything else (store unavailable, programming errors) is an
infrastructure failure and is reported to the caller as a generic error.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable error codes returned to API callers"""
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    INVALID_STATE = "INVALID_STATE"
    CUTOFF_PASSED = "CUTOFF_PASSED"
    BOOKING_RESTRICTED = "BOOKING_RESTRICTED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"


class BookingDomainError(Exception):
    """
    Base class for expected business-rule failures.

    Carries a message suitable for end users, a machine readable code,
    structured details and the HTTP status the API layer should use.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format"""
        return {
            "error": {
                "message": self.message,
                "code": self.error_code.value,
                "details": self.details,
                "type": self.__class__.__name__
            }
        }

    def __str__(self) -> str:
        return f"{self.error_code.value}: {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message='{self.message}', error_code='{self.error_code.value}')"


class CapacityError(BookingDomainError):
    """Requested seats exceed what is left in the channel quota"""

    def __init__(
        self,
        available: int,
        requested: Optional[int] = None,
        channel: Optional[str] = None,
        message: Optional[str] = None
    ):
        self.available = max(0, available)
        self.requested = requested
        if not message:
            message = f"Not enough seats available: {self.available} left"
            if requested is not None:
                message += f", need {requested}"
        details = {"available": self.available, "requested": requested, "channel": channel}
        super().__init__(message, ErrorCode.INSUFFICIENT_CAPACITY, details, 409)


class InvalidStateError(BookingDomainError):
    """Operation attempted from a status that does not permit it"""

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        target_status: Optional[str] = None
    ):
        self.current_status = current_status
        details = {"current_status": current_status, "target_status": target_status}
        super().__init__(message, ErrorCode.INVALID_STATE, details, 409)


class CutoffError(BookingDomainError):
    """Departure is too close for the requested operation"""

    def __init__(self, message: str, departure_at: Optional[datetime] = None):
        self.departure_at = departure_at
        details = {"departure_at": departure_at.isoformat() if departure_at else None}
        super().__init__(message, ErrorCode.CUTOFF_PASSED, details, 400)


class RestrictionError(BookingDomainError):
    """Passenger is blocked from creating bookings"""

    def __init__(
        self,
        message: str = "This account is blocked from making new bookings",
        blocked_until: Optional[datetime] = None
    ):
        self.blocked_until = blocked_until
        details = {
            "blocked_until": blocked_until.isoformat() if blocked_until else None,
            "indefinite": blocked_until is None,
        }
        if blocked_until:
            message = f"{message} until {blocked_until:%d %b %Y %H:%M}"
        super().__init__(message, ErrorCode.BOOKING_RESTRICTED, details, 403)


class NotFoundError(BookingDomainError):
    """Reference or id does not resolve to an existing row"""

    def __init__(
        self,
        resource_type: str = "Resource",
        resource_id: Optional[Any] = None,
        message: Optional[str] = None
    ):
        if not message:
            message = f"{resource_type} not found"
            if resource_id is not None:
                message += f" ({resource_id})"
        details = {
            "resource_type": resource_type,
            "resource_id": str(resource_id) if resource_id is not None else None
        }
        super().__init__(message, ErrorCode.RESOURCE_NOT_FOUND, details, 404)


class ValidationError(BookingDomainError):
    """Malformed or out-of-range input"""

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details, 422)


class AuthorizationError(BookingDomainError):
    """Actor lacks the capability required for an operation"""

    def __init__(self, message: str = "Not enough permissions", capability: Optional[str] = None):
        details = {"capability": capability} if capability else {}
        super().__init__(message, ErrorCode.INSUFFICIENT_PERMISSIONS, details, 403)
