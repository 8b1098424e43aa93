"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from backoffice.core.config import get_settings, Settings, EnvironmentMode
from backoffice.core.exceptions import (
    BackofficeError,
    ValidationError,
    NetworkError,
    AuthError,
    BackendError,
    InvalidTransitionError,
    PaymentStateError,
    StorageError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "BackofficeError",
    "ValidationError",
    "NetworkError",
    "AuthError",
    "BackendError",
    "InvalidTransitionError",
    "PaymentStateError",
    "StorageError",
]
