"""Application exception types."""

from typing import Any

from scribedesk.schemas.error import ErrorKind, ErrorResponse, LifecycleError


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class BackendError(Exception):
    """Raised by backing-store adapters; services convert it into a ``LifecycleError``."""

    kind: ErrorKind = ErrorKind.NETWORK
    default_code = "BACKEND_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code or self.default_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_lifecycle_error(self) -> LifecycleError:
        details = dict(self.details or {})
        if self.status_code is not None:
            details["status_code"] = self.status_code
        return LifecycleError(kind=self.kind, code=self.code, message=str(self), details=details or None)


class BackendAuthError(BackendError):
    kind = ErrorKind.AUTH
    default_code = "UNAUTHORIZED"


class BackendConflictError(BackendError):
    kind = ErrorKind.CONFLICT
    default_code = "ACTION_CONFLICT"


class BackendUnavailableError(BackendError):
    kind = ErrorKind.NETWORK
    default_code = "BACKEND_UNAVAILABLE"


class BackendPaymentError(BackendError):
    kind = ErrorKind.PAYMENT
    default_code = "PAYMENT_FAILED"


class ChannelInUseError(Exception):
    """Raised when a second push-channel connection is opened for the same actor."""


__all__ = [
    "ApiError",
    "BackendAuthError",
    "BackendConflictError",
    "BackendError",
    "BackendPaymentError",
    "BackendUnavailableError",
    "ChannelInUseError",
]
