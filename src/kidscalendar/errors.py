# src/kidscalendar/errors.py

"""Exception hierarchy for the kidscalendar package."""

from __future__ import annotations

from dataclasses import dataclass


class KidsCalendarError(Exception):
    """Base class for all kidscalendar specific errors."""


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One field-level problem found at the edit boundary (index is 1-based for table rows)."""

    index: int
    field: str
    message: str

    def __str__(self) -> str:
        if self.index:
            return f"row {self.index} {self.field}: {self.message}"
        return f"{self.field}: {self.message}"


class TaskValidationError(KidsCalendarError):
    """Raised when user-entered task data is rejected before any mutation."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = list(issues)
        super().__init__("; ".join(str(i) for i in self.issues) or "invalid task data")


class InvalidTransitionError(KidsCalendarError):
    """Raised when a task lifecycle transition is not allowed from the current status."""


class InsufficientStarsError(KidsCalendarError):
    """Raised when a redemption would push a child's star balance below zero."""


class EntityNotFoundError(KidsCalendarError):
    """Raised when a child, task or reward lookup in local state fails."""


class RowMappingError(KidsCalendarError):
    """Raised when a remote row cannot be translated into a domain record."""


class RemoteError(KidsCalendarError):
    """Base class for failures reported by the remote store."""

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class TransientRemoteError(RemoteError):
    """Network failure or timeout; safe to retry."""


class RemoteAuthError(RemoteError):
    """The remote store refused the call (authorization or row-level policy)."""


class RemoteDuplicateError(RemoteError):
    """A primary-key uniqueness violation: the row is already present."""
