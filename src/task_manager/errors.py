"""
Error taxonomy shared by the lifecycle manager, account service and stores.

Each error carries the HTTP status the API surfaces it with; the exception
handlers in main.py render them as {"error": <class name>, "message": <text>}.
"""
from __future__ import annotations


class TaskManagerError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TaskManagerError):
    """A required field is missing or empty; the operation was not attempted."""

    status_code = 422


class NotFoundError(TaskManagerError):
    """
    The referenced record does not exist or is not owned by the caller.

    The two cases are deliberately indistinguishable.
    """

    status_code = 404


class TaskArchivedError(TaskManagerError):
    """An edit or completion toggle was attempted on an archived task."""

    status_code = 409


class ConflictError(TaskManagerError):
    status_code = 409


class AuthError(TaskManagerError):
    """Missing, invalid or expired credential."""

    status_code = 401


class NotificationFailure(TaskManagerError):
    """The email transport failed. Callers log it and carry on."""

    status_code = 502


class StoreFailure(TaskManagerError):
    """The persistence layer failed. Not retried at this layer."""

    status_code = 500
