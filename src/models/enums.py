from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    __slots__ = ()

    STUDENT = "student"
    STAFF = "staff"
    ADMIN = "admin"


class ComplaintCategory(StrEnum):
    __slots__ = ()

    HOSTEL = "hostel"
    CLASSROOM = "classroom"
    WASHROOMS = "washrooms"
    SECURITY = "security"
    PARKING = "parking"
    CAMPUS = "campus"
    ACADEMICS = "academics"
    CANTEEN = "canteen"
    FOOD_COURT = "food-court"
    TRANSPORTATION = "transportation"
    LIBRARY = "library"
    OTHERS = "others"


class ComplaintPriority(StrEnum):
    __slots__ = ()

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ComplaintStatus(StrEnum):
    """Complaint lifecycle states.  Any state may follow any other."""

    __slots__ = ()

    PENDING = "pending"
    PROGRESSED = "progressed"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_resolution(self) -> bool:
        return self in (ComplaintStatus.RESOLVED, ComplaintStatus.COMPLETED)


class NotificationType(StrEnum):
    __slots__ = ()

    STATUS_UPDATE = "status_update"
    ASSIGNMENT = "assignment"
    NEW_COMMENT = "new_comment"
    RESOLUTION = "resolution"


class AccessMode(StrEnum):
    __slots__ = ()

    READ = "read"
    WRITE = "write"


class DeliveryChannel(StrEnum):
    __slots__ = ()

    EMAIL = "email"
    SMS = "sms"


class DeliveryState(StrEnum):
    """Outcome of a single outbound e-mail or SMS attempt."""

    __slots__ = ()

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    MOCK = "mock"
