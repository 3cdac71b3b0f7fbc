from __future__ import annotations


class WeatherDashError(Exception):
    """Base class for errors that map onto the JSON error envelope."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WeatherDashError):
    """Caller supplied a missing or out-of-range coordinate, unit or query."""

    status_code = 400


class LocalRateLimitExceeded(WeatherDashError):
    """The adapter's own rolling request ceiling was hit."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.") -> None:
        super().__init__(message)


class UpstreamError(WeatherDashError):
    """Network failure, non-2xx response or malformed payload from a provider."""

    status_code = 502

    def __init__(self, provider: str, detail: str, *, upstream_status: int | None = None) -> None:
        super().__init__(f"{provider} API error: {detail}")
        self.provider = provider
        self.detail = detail
        self.upstream_status = upstream_status


class CacheUnavailable(Exception):
    """The cache backing store could not be read or written.

    Never reaches a request handler: the cache turns it into a miss.
    """


class ConfigurationError(RuntimeError):
    """Fatal startup condition, e.g. the active provider has no API key."""
