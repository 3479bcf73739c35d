"""Domain errors raised by the network services.

Services raise these and never swallow them; the HTTP layer maps each one to
a status code in middleware/error_handler.py.
"""

from __future__ import annotations


class NetworkError(ValueError):
    """Base class for Garden Network domain errors."""

    code = "network_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(NetworkError):
    """A profile or request field is malformed."""

    code = "validation_error"
    status_code = 422

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class DuplicateConnectionError(NetworkError):
    """A connection record already exists between the two classrooms."""

    code = "duplicate_connection"
    status_code = 409


class InvalidStateTransition(NetworkError):
    """Wrong actor, or wrong current status, for the requested action."""

    code = "invalid_state_transition"
    status_code = 409


class ChallengeClosedError(NetworkError):
    """The challenge has ended or is no longer active."""

    code = "challenge_closed"
    status_code = 409


class NotFoundError(NetworkError):
    """The referenced classroom, profile, connection or challenge does not exist."""

    code = "not_found"
    status_code = 404
