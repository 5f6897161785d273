"""Domain exception hierarchy for the complaint service layer.

These exceptions describe business-rule violations and are independent
of FastAPI; ``src.main`` maps each class to an HTTP response.

┌───────────────────────────┬──────┐
│ Exception                 │ HTTP │
├───────────────────────────┼──────┤
│ ValidationError           │ 400  │
│ AccessDenied              │ 403  │
│ NotFound                  │ 404  │
│ Conflict                  │ 409  │
│ PersistenceError          │ 500  │
│ NotificationDeliveryError │  --  │  (logged, never surfaced)
└───────────────────────────┴──────┘
"""

from __future__ import annotations


class CampusError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str = "The request could not be completed.") -> None:
        self.message = message
        super().__init__(self.message)


class NotFound(CampusError):
    """A referenced complaint, user or notification does not exist."""

    def __init__(self, message: str = "The requested resource was not found.") -> None:
        super().__init__(message)


class AccessDenied(CampusError):
    """The visibility rules reject the operation.

    The message is deliberately generic so that a denial reveals nothing
    about the complaint being protected.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class ValidationError(CampusError):
    """Malformed input: bad enum value, out-of-range rating, duplicate feedback."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class Conflict(CampusError):
    """The stored complaint changed since the caller last read it."""

    def __init__(
        self,
        message: str | None = None,
        *,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ) -> None:
        if message is None:
            message = (
                f"Complaint was modified concurrently "
                f"(expected version {expected_version}, found {actual_version})."
            )
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class PersistenceError(CampusError):
    """The backing store failed.  Surfaced as a generic server error."""


class NotificationDeliveryError(CampusError):
    """A best-effort notification could not be stored or delivered."""

    def __init__(self, message: str, *, recipient_id: str | None = None) -> None:
        super().__init__(message)
        self.recipient_id = recipient_id
