"""Failure types surfaced by the dashboard core.

Absence (unknown user, no interactions, no matching video) is never an
error here: it is an empty list, an empty dict or a ``None`` field.
"""

from typing import Any


class DashboardError(Exception):
    """Base class for every failure raised by this package."""


class TransportError(DashboardError):
    """A backend or upstream call failed; carries the status to report."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class UpstreamStatusError(TransportError):
    """The upstream service answered with a non-2xx status."""

    def __init__(self, status: int, body: Any):
        super().__init__(status, f"upstream responded with status {status}")
        self.body = body


class UpstreamShapeError(TransportError):
    """The upstream answered 2xx but not with the expected envelope."""

    def __init__(self, status: int, body: Any):
        super().__init__(status, "upstream returned an unexpected response")
        self.body = body


class StreamError(DashboardError):
    """Terminal failure of a live interaction subscription."""
