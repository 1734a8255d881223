"""
Error taxonomy for querying and shaping occurrence data.

Every error carries a ``context`` dict (query parameters, page index,
records accumulated so far) so callers can decide whether to retry, narrow
the query, or accept a partial result.

    ObisExplorerError
    ├── InvalidQueryError      malformed input, raised before any request
    ├── QueryRejectedError     non-retriable 4xx from the server
    ├── TransientFetchError    network / 429 / 5xx after the retry budget
    ├── QueryTimeoutError      per-page or total budget exceeded
    └── UnknownFieldError      projection onto a field the entity lacks
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from obis_explorer.models import ResultSet


class ObisExplorerError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"


class InvalidQueryError(ObisExplorerError, ValueError):
    """The query configuration is malformed. Never retried."""


class QueryRejectedError(ObisExplorerError):
    """The server refused the request (4xx other than rate limiting)."""

    def __init__(
        self, message: str, status_code: int, server_message: str = "", **context: Any
    ) -> None:
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code
        self.server_message = server_message


class TransientFetchError(ObisExplorerError):
    """A retriable failure that persisted after the retry budget was spent."""

    def __init__(self, message: str, status_code: int | None = None, **context: Any) -> None:
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class QueryTimeoutError(ObisExplorerError, TimeoutError):
    """The per-page or total-query time budget was exceeded.

    ``partial`` holds the accumulated ResultSet when the caller asked for
    partial results on timeout; otherwise it is None and the partial data
    has been discarded.
    """

    def __init__(self, message: str, partial: ResultSet | None = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.partial = partial


class UnknownFieldError(ObisExplorerError, KeyError):
    """A projection named a field that does not exist on the entity."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return ObisExplorerError.__str__(self)
