"""Error taxonomy shared by the resolution core and its adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from applinks.domain.resolution.context import ResolutionResult

type ReferrerFailureReason = Literal["unsupported", "service_unavailable", "unknown"]


class AppLinksError(RuntimeError):
    """Base class for every error raised or delivered by AppLinks."""


class ServiceError(AppLinksError):
    """Raised when the resolution service does not return a usable record."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(ServiceError):
    """Transport-level failure talking to the resolution service."""


class DecodeError(ServiceError):
    """The resolution service answered with a body we could not decode."""


class AuthError(ServiceError):
    """The resolution service rejected the credential (401/403)."""


class NotFoundError(ServiceError):
    """The requested link or visit does not exist (404)."""


class ValidationError(AppLinksError):
    """A request or credential failed local validation before any network call."""


class UnsupportedPlatformError(AppLinksError):
    """The install-referrer service is not available on this platform."""

    def __init__(self, message: str, *, reason: ReferrerFailureReason, code: int | None = None):
        super().__init__(message)
        self.reason: ReferrerFailureReason = reason
        self.code = code


class ExpiredLinkError(AppLinksError):
    """A deferred link payload is past its expiry timestamp."""


class NoHandlerError(AppLinksError):
    """No registered stage claims the identifier."""


class ResolutionError(AppLinksError):
    """A stage failed while resolving; carries the non-handled result."""

    def __init__(self, message: str, *, result: ResolutionResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class PipelineBusyError(AppLinksError):
    """Stages were reconfigured while a resolution was in flight."""


__all__ = [
    "AppLinksError",
    "AuthError",
    "DecodeError",
    "ExpiredLinkError",
    "NetworkError",
    "NoHandlerError",
    "NotFoundError",
    "PipelineBusyError",
    "ReferrerFailureReason",
    "ResolutionError",
    "ServiceError",
    "UnsupportedPlatformError",
    "ValidationError",
]
