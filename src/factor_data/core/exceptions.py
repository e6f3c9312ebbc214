"""Custom exception hierarchy for factor-data."""

from __future__ import annotations

from datetime import timedelta
from typing import Any


class DataError(Exception):
    """Base exception for all factor-data errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(DataError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value
    """


class NetworkError(DataError):
    """Connection failure, timeout or other transport problem.

    Policy: the registry records it and moves on to the next source.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"Network error: {message}", context)


class RateLimitedError(DataError):
    """A source refused the request because of its rate limit.

    Context keys:
        source: str — the source that rate limited the request
        retry_after: float | None — suggested wait in seconds
    """

    def __init__(self, source: str, retry_after: timedelta | None = None):
        super().__init__(
            f"Rate limited by {source}: retry after {retry_after}",
            context={
                "source": source,
                "retry_after": retry_after.total_seconds() if retry_after else None,
            },
        )
        self.source = source
        self.retry_after = retry_after


class SymbolNotFoundError(DataError):
    """The requested symbol is unknown to the source.

    Default batch fetches skip symbols that raise this error.
    """

    def __init__(self, symbol: str):
        super().__init__(f"Symbol not found: {symbol}", context={"symbol": symbol})
        self.symbol = symbol


class DataNotAvailableError(DataError):
    """The symbol exists but has no data for the requested range."""

    def __init__(self, symbol: str, start: Any, end: Any):
        super().__init__(
            f"Data not available for {symbol} in range {start} to {end}",
            context={"symbol": symbol, "start": str(start), "end": str(end)},
        )
        self.symbol = symbol
        self.start = str(start)
        self.end = str(end)


class ParseError(DataError):
    """A response or stored record could not be decoded."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"Parse error: {message}", context)


class CacheError(DataError):
    """A cache backend failed internally (storage I/O, serialization, locking).

    A cache miss is never a CacheError.

    Context keys:
        operation: str — "get_ohlcv", "put_metrics", "clear", etc.
        table: str — the table involved, when there is one
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"Cache error: {message}", context)


class ProviderNotConfiguredError(DataError):
    """No source is registered for the requested capability.

    Policy: returned immediately, before the cache or any source is touched.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"Provider not configured: {message}", context)


class InvalidParameterError(DataError):
    """A caller supplied an invalid argument (bad range, bad frequency, ...)."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"Invalid parameter: {message}", context)


class AuthenticationFailedError(DataError):
    """A source rejected our credentials."""

    def __init__(self, source: str):
        super().__init__(
            f"Authentication failed for provider {source}",
            context={"source": source},
        )
        self.source = source


class NotSupportedError(DataError):
    """The source does not implement the requested feature."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(f"Feature not supported: {message}", context)


class OtherError(DataError):
    """Any failure that fits none of the kinds above."""
