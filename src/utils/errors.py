"""Custom exception hierarchy for Release Radar.

All application exceptions inherit from :class:`ReleaseRadarError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "spotify") caused the failure.

The hierarchy is organized by where the failure is handled:

    ReleaseRadarError  (base -- catch-all for any Release Radar error)
    +-- ParseError            (malformed release date / id, recovered locally)
    +-- CatalogError          (a single catalog request failed)
    |   +-- RateLimitError    (429, carries retry_after_seconds)
    |   +-- UnauthorizedError (401/403, fatal to the run)
    |   +-- NotFoundError     (404, callers treat as zero results)
    |   +-- ServerError       (5xx or undecodable body)
    |   +-- NetworkError      (timeout / connection failure)
    |   +-- BadRequestError   (any other 4xx)
    +-- RetrievalError        (every artist in a run failed)
    +-- ConfigurationError    (startup / missing config)

Every :class:`CatalogError` exposes an :class:`~src.models.catalog.ErrorKind`
so per-artist outcomes can record *what* failed without keeping the
exception object around.
"""

from __future__ import annotations

from src.models.catalog import ErrorKind

# Floor applied to server-provided Retry-After hints.
MIN_RETRY_AFTER_SECONDS = 1.0


class ReleaseRadarError(Exception):
    """Base exception for all Release Radar errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets, e.g.
    ``[spotify] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Local data errors
# ---------------------------------------------------------------------------

class ParseError(ReleaseRadarError):
    """Raised when a release date (or other catalog field) cannot be parsed."""

    def __init__(
        self,
        message: str = "Could not parse value",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.PARSE_ERROR


# ---------------------------------------------------------------------------
# Catalog service errors
# ---------------------------------------------------------------------------

class CatalogError(ReleaseRadarError):
    """Base class for a failed catalog request.

    The gateway never retries; subclasses tell the caller which recovery
    applies (pause and retry, treat as empty, or abort).
    """

    _kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(
        self,
        message: str = "Catalog request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)

    @property
    def kind(self) -> ErrorKind:
        return self._kind


class RateLimitError(CatalogError):
    """Raised when the catalog answers 429.

    ``retry_after_seconds`` is the server's ``Retry-After`` hint, or the
    one-second default when the header is absent.  Values below the
    default are raised to it.
    """

    _kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        if retry_after_seconds is None:
            retry_after_seconds = MIN_RETRY_AFTER_SECONDS
        self._retry_after_seconds = max(float(retry_after_seconds), MIN_RETRY_AFTER_SECONDS)

    @property
    def retry_after_seconds(self) -> float:
        return self._retry_after_seconds


class UnauthorizedError(CatalogError):
    """Raised on 401/403.  Token refresh is out of scope, so this ends the run."""

    _kind = ErrorKind.UNAUTHORIZED

    def __init__(
        self,
        message: str = "Access token expired or invalid. Please re-authenticate",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(CatalogError):
    """Raised on 404.  Callers translate this into an empty result."""

    _kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ServerError(CatalogError):
    """Raised on 5xx responses or a response body that is not valid JSON."""

    _kind = ErrorKind.SERVER_ERROR

    def __init__(
        self,
        message: str = "Catalog service error",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class NetworkError(CatalogError):
    """Raised when the request never produced a response (timeout, DNS, reset)."""

    _kind = ErrorKind.NETWORK_ERROR

    def __init__(
        self,
        message: str = "Network error talking to the catalog service",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BadRequestError(CatalogError):
    """Raised on any other 4xx.  Retrying the same request would not help."""

    _kind = ErrorKind.BAD_REQUEST

    def __init__(
        self,
        message: str = "Catalog rejected the request",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


# ---------------------------------------------------------------------------
# Run-level errors
# ---------------------------------------------------------------------------

class RetrievalError(ReleaseRadarError):
    """Raised when no artist in a run could be retrieved successfully."""

    def __init__(
        self,
        message: str = "Release retrieval failed for every artist",
        provider_name: str | None = None,
        failed_artist_ids: list[str] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._failed_artist_ids = list(failed_artist_ids or [])

    @property
    def failed_artist_ids(self) -> list[str]:
        return list(self._failed_artist_ids)


class ConfigurationError(ReleaseRadarError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
