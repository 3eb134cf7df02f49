"""Error taxonomy and backend error classification."""

from enum import Enum
from typing import Any

from .constants import JWT_EXPIRED_CODE, SESSION_EXPIRED_MARKERS


class ErrorKind(str, Enum):
    """How a failure should be reported to the user."""

    VALIDATION = 'validation'
    EXTERNAL = 'external'
    SESSION_EXPIRED = 'session_expired'
    TIMEOUT = 'timeout'


class PickleplayError(Exception):
    """Base class for errors raised by the client."""

    kind = ErrorKind.EXTERNAL

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class DraftValidationError(PickleplayError):
    """A wizard step rejected its input."""

    kind = ErrorKind.VALIDATION


class InvalidTransitionError(PickleplayError):
    """An event was sent to a wizard step that cannot handle it."""

    kind = ErrorKind.VALIDATION


class BackendError(PickleplayError):
    """The hosted backend rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        kind: ErrorKind = ErrorKind.EXTERNAL,
    ):
        super().__init__(message, code)
        self.status_code = status_code
        self.kind = kind


class SessionExpiredError(BackendError):
    """The stored session is missing or no longer accepted."""

    def __init__(self, message: str = 'Session expired. Please log in again.', code: str | None = None):
        super().__init__(message, code=code, status_code=401, kind=ErrorKind.SESSION_EXPIRED)


class PickerTimeoutError(PickleplayError):
    """A native picker did not respond in time."""

    kind = ErrorKind.TIMEOUT


def is_session_expired_message(message: str | None) -> bool:
    """Check a backend message for the session-expiry phrases."""
    if not message:
        return False
    return any(marker in message for marker in SESSION_EXPIRED_MARKERS)


def classify_backend_error(status_code: int | None, payload: Any) -> BackendError:
    """
    Turn a failed backend response into a typed error.

    This is the single place where the backend's error text is inspected;
    callers branch on ``error.kind`` instead.

    Args:
        status_code: HTTP status of the response (None for network errors)
        payload: Decoded JSON body, a plain string, or None

    Returns:
        BackendError (or SessionExpiredError) describing the failure
    """
    if isinstance(payload, dict):
        message = (
            payload.get('message')
            or payload.get('msg')
            or payload.get('error_description')
            or payload.get('error')
            or f'HTTP {status_code}'
        )
        code = payload.get('code') or payload.get('error_code')
    elif payload:
        message = str(payload)
        code = None
    else:
        message = f'HTTP {status_code}' if status_code else 'Network error'
        code = None

    message = str(message)
    code = str(code) if code is not None else None

    if code == JWT_EXPIRED_CODE or status_code == 401 or is_session_expired_message(message):
        return SessionExpiredError(message, code=code)

    return BackendError(message, code=code, status_code=status_code)
