"""Per-scenario request context.

A RequestContext holds the most recent response of one scenario. The executor
writes to it and the validator reads from it; every scenario gets its own
instance, so nothing leaks between scenarios.
"""

from __future__ import annotations

from books_bdd.models import CapturedResponse


class ContextError(Exception):
    """Base class for request context errors."""


class NoResponseError(ContextError):
    """Raised when a response is read before any request was made."""


class RequestContext:
    """Holds at most one captured response.

    Usage:
        context = RequestContext()
        executor = Executor(target, context)
        executor.execute_get(BOOKS_PATH)
        context.response.status_code
    """

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._response: CapturedResponse | None = None

    def capture(self, response: CapturedResponse) -> None:
        """Store response, replacing any previous one."""
        self._response = response

    def reset(self) -> None:
        self._response = None

    @property
    def has_response(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> CapturedResponse:
        """The captured response.

        Raises:
            NoResponseError: If no request has been made in this context.
        """
        if self._response is None:
            raise NoResponseError("Response is null - no API call was made")
        return self._response

    def __repr__(self) -> str:
        status = self._response.status_code if self._response is not None else None
        return f"RequestContext(name={self.name!r}, status={status})"
