"""Complaint models.

A complaint is submitted by a student or staff member, triaged by staff
and admins, and optionally rated by its owner once handled.  The
``school``/``department`` pair is a snapshot of the creator's scope taken
at creation time; access decisions always use this snapshot, never the
owner's current profile.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from src.models.enums import ComplaintCategory, ComplaintPriority, ComplaintStatus

MAX_PHOTOS = 5


class ComplaintFeedback(BaseModel):
    """Owner's rating of how a complaint was handled.  Write-once."""

    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Complaint(BaseModel):
    """A single campus complaint and its triage state."""

    model_config = {"frozen": False}

    id: str = Field(default_factory=lambda: uuid4().hex)
    title: str
    description: str
    category: ComplaintCategory = ComplaintCategory.OTHERS
    subcategory: str = ""
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    status: ComplaintStatus = ComplaintStatus.PENDING
    owner_id: str
    department: str = ""
    school: str
    assigned_to: str | None = None

    # Already-stored media paths (upload handling lives outside this service)
    photos: list[str] = Field(default_factory=list, max_length=MAX_PHOTOS)
    video: list[str] = Field(default_factory=list, max_length=1)
    voice: list[str] = Field(default_factory=list, max_length=1)

    admin_notes: str = ""
    resolution_notes: str = ""
    feedback: ComplaintFeedback | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    resolved_at: datetime | None = None
    version: int = 0

    @property
    def has_feedback(self) -> bool:
        return self.feedback is not None

    def touch(self) -> None:
        """Stamp a save: ``updated_at``, first-time ``resolved_at`` and ``version``.

        ``resolved_at`` is written only the first time the complaint is
        saved in the ``resolved`` state; later round-trips through other
        states leave the original stamp in place.
        """
        now = datetime.now(UTC)
        self.updated_at = now
        if self.status == ComplaintStatus.RESOLVED and self.resolved_at is None:
            self.resolved_at = now
        self.version += 1


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ComplaintCreateRequest(BaseModel):
    """Body for submitting a new complaint."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    category: ComplaintCategory = ComplaintCategory.OTHERS
    subcategory: str = Field(default="", max_length=200)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    photos: list[str] = Field(default_factory=list, max_length=MAX_PHOTOS)
    video: list[str] = Field(default_factory=list, max_length=1)
    voice: list[str] = Field(default_factory=list, max_length=1)


class StatusUpdateRequest(BaseModel):
    """Body for a status change by staff or an admin."""

    status: ComplaintStatus
    admin_notes: str | None = Field(default=None, max_length=5000)
    expected_version: int | None = Field(
        default=None,
        description="Reject the update with 409 unless the stored version matches.",
    )


class AssignRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1)


class ComplaintUpdateRequest(BaseModel):
    """Partial update.  Only the fields actually sent are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1, max_length=5000)
    category: ComplaintCategory | None = None
    subcategory: str | None = Field(default=None, max_length=200)
    priority: ComplaintPriority | None = None
    status: ComplaintStatus | None = None
    admin_notes: str | None = Field(default=None, max_length=5000)
    resolution_notes: str | None = Field(default=None, max_length=5000)
    assigned_to: str | None = None

    def changes(self) -> dict[str, object]:
        """Return the explicitly supplied fields.

        ``assigned_to`` may be sent as ``null`` to clear the assignment;
        every other field ignores ``null``.
        """
        supplied = self.model_dump(include=self.model_fields_set)
        return {
            name: value
            for name, value in supplied.items()
            if value is not None or name == "assigned_to"
        }


class FeedbackRequest(BaseModel):
    rating: int
    comment: str = Field(default="", max_length=2000)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ComplaintStats(BaseModel):
    """Complaint counts per status for the admin dashboard."""

    total: int = 0
    pending: int = 0
    progressed: int = 0
    in_progress: int = 0
    resolved: int = 0
    completed: int = 0
    rejected: int = 0
