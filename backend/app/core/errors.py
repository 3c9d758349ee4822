"""Routing error taxonomy.

Each error carries the HTTP status the API layer maps it to, so handlers in
app.main stay a single lookup.
"""
from fastapi import status


class RoutingError(Exception):
    """Base class for all approval-routing failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def code(self) -> str:
        return type(self).__name__


class ValidationError(RoutingError):
    """Submission payload rejected before any state is touched."""


class NotFound(RoutingError):
    status_code = status.HTTP_404_NOT_FOUND


class NotPending(RoutingError):
    """Decision attempted on a request that is already Approved or Rejected."""

    status_code = status.HTTP_409_CONFLICT


class WrongTurn(RoutingError):
    """Actor's role (or SAP scope) does not match the level awaiting action."""

    status_code = status.HTTP_403_FORBIDDEN


class MissingRemarks(RoutingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class RoutingConflict(RoutingError):
    """Lost a race or timed out on the row lock. Nothing was applied; retry."""

    status_code = status.HTTP_409_CONFLICT
    retryable = True
