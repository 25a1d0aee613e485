"""Error taxonomy for storyboard runs.

Most failures never surface as exceptions: a missing element is a normal
``None`` from the locator, a poll deadline is a ``PollResult`` with
``satisfied=False``, and both are folded into ``PhaseOutcome`` records by the
orchestrator. Exceptions are reserved for the two conditions that end a call
outright: the target page is unreachable, or the prompt service failed.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    ELEMENT_NOT_FOUND = "element_not_found"
    TIMEOUT = "timeout"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    UPSTREAM_SERVICE = "upstream_service"


class FlowboardError(RuntimeError):
    """Base class for errors raised by flowboard."""

    kind: ErrorKind = ErrorKind.UPSTREAM_SERVICE


class TransportUnavailable(FlowboardError):
    """No loaded host page to talk to."""

    kind = ErrorKind.TRANSPORT_UNAVAILABLE

    def __init__(self, message: str = "transport unavailable"):
        super().__init__(message)


class PromptGenerationError(FlowboardError):
    """Prompt service failed or returned nothing usable."""

    kind = ErrorKind.UPSTREAM_SERVICE

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
