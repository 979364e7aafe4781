# storefront/core/errors.py
from typing import Any


DEFAULT_ERROR_MESSAGE = "Request failed"


class ApiError(Exception):
    """
    A cart request that did not produce a fresh cart snapshot.

    Attributes:
        status: HTTP status code (0 when no response was received).
        message: human-readable message taken from the response envelope.
        payload: decoded response body, or None.
    """

    def __init__(self, message: str, status: int, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload


class TransportError(ApiError):
    """The request could not complete (connection error, unreadable body)."""

    def __init__(self, message: str = "Network error", payload: Any = None):
        super().__init__(message, 0, payload)


class UnauthorizedError(ApiError):
    """
    The bearer credential is missing, invalid or expired (HTTP 401).

    This is a session transition signal, not an error to display:
    callers react by switching back to guest mode.
    """

    def __init__(self, message: str = "Authentication required", payload: Any = None):
        super().__init__(message, 401, payload)


def extract_error_message(payload: Any, fallback: str = DEFAULT_ERROR_MESSAGE) -> str:
    """
    Pick the message to surface from an API envelope.

    Order:
      1. first non-blank `errors[].message`
      2. non-blank `message`
      3. fallback
    """
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict):
                msg = first.get("message")
                if isinstance(msg, str) and msg.strip():
                    return msg

        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg

    return fallback
