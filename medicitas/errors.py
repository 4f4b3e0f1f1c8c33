"""Error taxonomy shared by services and view-models.

Every error carries a ``message`` that is safe to show to the user as-is.
Services raise; view-models catch and present.
"""
from typing import Any, Optional


class MedicitasError(Exception):
    """Base class for all client errors."""

    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthExpired(MedicitasError):
    """Raised when the backend answers 401. The session is already purged."""

    default_message = "Your session has expired. Please log in again."


class ValidationError(MedicitasError):
    """Client-side validation failure. No request was sent."""

    default_message = "Please complete all required fields."


class TransitionNotAllowed(ValidationError):
    """Appointment state change rejected locally by the state machine."""

    default_message = "This action is not allowed for the appointment's current state."


class RemoteRejection(MedicitasError):
    """Structured error returned by the backend."""

    default_message = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.payload = payload


class StaleStateConflict(RemoteRejection):
    """Appointment is no longer in the state the transition expected."""

    default_message = (
        "This appointment was changed by someone else. "
        "The list has been refreshed, please review it."
    )


class NetworkFailure(MedicitasError):
    """Request never completed (connection error, timeout, unreadable body)."""

    default_message = "Could not reach the server. Please try again."


class BackendUnavailable(NetworkFailure):
    """Raised when the circuit breaker is open (fail fast)."""

    default_message = "The server is temporarily unavailable. Please try again shortly."
