"""
Error taxonomy for the order engine.

Every failure the engine surfaces derives from BackofficeError so the HTTP
layer can map it to a response in one place:

    ValidationError        - bad input caught before any network call
    NetworkError           - transport failure talking to the order API
    AuthError              - order API rejected our credentials
    BackendError           - order API answered with a non-success status
    InvalidTransitionError - illegal order state transition
    PaymentStateError      - payment action not allowed in the current session state
    StorageError           - durable cart cache unavailable
"""

from typing import Any, Optional


class BackofficeError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BackofficeError):
    """Raised synchronously, before dispatch, for invalid items or carts."""


class NetworkError(BackofficeError):
    """Raised when the order API cannot be reached."""


class AuthError(BackofficeError):
    """Raised on 401 responses; the client has already dropped its token."""


class BackendError(BackofficeError):
    """Raised when the order API returns a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidTransitionError(BackofficeError):
    """Raised when an order state does not accept an event."""

    def __init__(self, message: str, state: Any, event: Any):
        super().__init__(message)
        self.state = state
        self.event = event


class PaymentStateError(BackofficeError):
    """Raised when a payment action is not valid for the table right now."""


class StorageError(BackofficeError):
    """Raised when the durable cart cache cannot be read or written."""
