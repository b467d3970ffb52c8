"""Exception hierarchy for citefetch.

Every error carries a stable ``code`` and an HTTP-equivalent ``status`` so the
routing layer can render it without inspecting the exception type.
"""

from typing import Any


class CiteFetchError(Exception):
    """Base exception for all citefetch errors."""

    code: str = "INTERNAL_ERROR"
    status: int = 500

    def __init__(
        self,
        message: str,
        *,
        details: str | None = None,
        retry_after: float | None = None,
        code: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.retry_after = retry_after
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error payload shape consumed by collaborators."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        if self.retry_after is not None:
            payload["retryAfter"] = round(self.retry_after, 3)
        return payload


class ConfigurationError(CiteFetchError):
    """Raised when configuration is invalid or missing."""


# Input errors: never retried.


class InputError(CiteFetchError):
    """Caller supplied something we refuse to act on."""

    code = "INVALID_URL"
    status = 400


class InvalidURLError(InputError):
    """URL is malformed, too long, uses a disallowed scheme or cannot be resolved."""


class BlockedHostError(InputError):
    """Hostname is on the static denylist."""

    code = "URL_BLOCKED"
    status = 403


class PrivateIPNotAllowedError(BlockedHostError):
    """Hostname is an IP literal in a private, loopback or link-local range."""


class SSRFDetectedError(BlockedHostError):
    """Hostname resolves to at least one private address."""


class InvalidIdentifierError(InputError):
    """DOI or ISBN is malformed."""

    code = "INVALID_REQUEST"


class InvalidChecksumError(InvalidIdentifierError):
    """ISBN check digit does not validate."""


# Capacity errors: caller may retry after backoff.


class CapacityError(CiteFetchError):
    """Request rejected to protect shared resources."""

    code = "SERVICE_UNAVAILABLE"
    status = 503


class RateLimitedError(CapacityError):
    """Client exceeded the request budget of the current window."""

    code = "RATE_LIMITED"
    status = 429

    def __init__(self, message: str, *, limit: int, reset_at: float, retry_after: float) -> None:
        super().__init__(message, retry_after=retry_after)
        self.limit = limit
        self.reset_at = reset_at


class PoolExhaustedError(CapacityError):
    """All browser sessions are leased."""


# Backend errors: ``transient`` ones count towards circuit breaker failures.


class BackendError(CiteFetchError):
    """Failure talking to the browser backend or a bibliographic registry."""

    code = "FETCH_FAILED"
    status = 502
    transient: bool = True

    def __init__(self, message: str, *, transient: bool | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if transient is not None:
            self.transient = transient


class CircuitOpenError(BackendError):
    """Circuit breaker is open; the backend was not called."""

    code = "SERVICE_UNAVAILABLE"
    status = 503
    transient = False


class BrowserConnectionError(BackendError):
    """Could not connect to the browser automation backend."""

    status = 503


class PageNotFoundError(BackendError):
    """Target page answered 404."""

    status = 404
    transient = False


class PageLoadTimeoutError(BackendError):
    """Navigation timed out, got no response, or answered with an HTTP error."""

    code = "TIMEOUT"
    status = 504


class FetchFailedError(BackendError):
    """Unexpected backend failure while loading a page."""


class RegistryNotFoundError(BackendError):
    """DOI or ISBN unknown to the registry."""

    status = 404
    transient = False


class RegistryError(BackendError):
    """Registry answered with an error status or the request failed."""


class RegistryTimeoutError(RegistryError):
    """Registry request timed out."""

    code = "TIMEOUT"
    status = 504


# Extraction errors: never retried.


class ExtractionFailedError(CiteFetchError):
    """Could not produce minimum-viable metadata."""

    code = "METADATA_MISSING"
    status = 422
    transient = False

    def __init__(self, message: str, *, transient: bool | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if transient is not None:
            self.transient = transient


class RegistryParseError(ExtractionFailedError):
    """Registry response did not match the expected schema."""


def to_citefetch_error(exc: BaseException) -> CiteFetchError:
    """Normalize an arbitrary exception into the citefetch taxonomy."""
    if isinstance(exc, CiteFetchError):
        return exc
    return CiteFetchError("Internal server error", details=str(exc) or None)


def is_transient(exc: BaseException) -> bool:
    """Whether an exception should count as a backend failure."""
    if isinstance(exc, (InputError, CapacityError)):
        return False
    return bool(getattr(exc, "transient", True))


__all__ = [
    "CiteFetchError",
    "ConfigurationError",
    "InputError",
    "InvalidURLError",
    "BlockedHostError",
    "PrivateIPNotAllowedError",
    "SSRFDetectedError",
    "InvalidIdentifierError",
    "InvalidChecksumError",
    "CapacityError",
    "RateLimitedError",
    "PoolExhaustedError",
    "BackendError",
    "CircuitOpenError",
    "BrowserConnectionError",
    "PageNotFoundError",
    "PageLoadTimeoutError",
    "FetchFailedError",
    "RegistryNotFoundError",
    "RegistryError",
    "RegistryTimeoutError",
    "ExtractionFailedError",
    "RegistryParseError",
    "to_citefetch_error",
    "is_transient",
]
