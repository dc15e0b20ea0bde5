"""
Relay error taxonomy.

Every failure that can reach a client carries a stable code, a human-readable
message and optional details. All of them except MisconfiguredError are
recovered at the event boundary and sent back as an `error` frame.
"""

from typing import Any


class RelayError(Exception):
    """Base class for errors surfaced to a session."""

    code = "relay_error"

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        """Serialize for an `error` frame."""
        payload: dict[str, Any] = {"message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class AuthenticationFailed(RelayError):
    code = "authentication_failed"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class MisconfiguredError(RelayError):
    """Verification secret (or other required setting) is missing. Fatal for the connection."""

    code = "misconfigured"


class NotReadyError(RelayError):
    code = "not_ready"

    def __init__(self, message: str = "Database not connected. Please try again."):
        super().__init__(message)


class NotFoundError(RelayError):
    code = "not_found"


class AccessDeniedError(RelayError):
    code = "access_denied"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class InvalidReceiverError(RelayError):
    code = "invalid_receiver"

    def __init__(self, message: str = "Invalid receiver"):
        super().__init__(message)


class ValidationError(RelayError):
    """Malformed inbound payload or message draft."""

    code = "validation_error"


class OperationTimeout(RelayError):
    code = "timeout"


class WriteError(RelayError):
    code = "write_error"
