"""Complaint lifecycle service.

Every complaint operation exposed over HTTP lives here:

* create / list / get / update / delete complaints,
* status changes and assignment (with notification fanout),
* owner feedback and admin statistics,
* the caller's in-app notification inbox.

Access is always decided by :class:`~src.services.visibility.VisibilityResolver`
before anything is written.  Notification work runs after the complaint
has been saved and can never undo or fail that save.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.models.complaint import (
    AssignRequest,
    Complaint,
    ComplaintCreateRequest,
    ComplaintFeedback,
    ComplaintStats,
    ComplaintUpdateRequest,
    FeedbackRequest,
    StatusUpdateRequest,
)
from src.models.enums import AccessMode, ComplaintCategory, ComplaintStatus, Role
from src.models.identity import Identity
from src.models.notification import Notification
from src.services.errors import AccessDenied, Conflict, NotFound, ValidationError
from src.services.fanout import FanoutPlan, NotificationDispatcher, NotificationFanout
from src.services.repository import CampusRepository
from src.services.visibility import VisibilityResolver, normalize

logger = structlog.get_logger(__name__)

_ASSIGNABLE_ROLES = frozenset({Role.STAFF, Role.ADMIN})


class ComplaintService:
    """Application service for campus complaints.

    Usage::

        service = ComplaintService(repository, dispatcher)
        complaint = await service.create_complaint(identity, body)
    """

    __slots__ = ("_dispatcher", "_fanout", "_repository", "_resolver")

    def __init__(
        self,
        repository: CampusRepository,
        dispatcher: NotificationDispatcher,
        resolver: VisibilityResolver | None = None,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher
        self._resolver = resolver or VisibilityResolver()
        self._fanout = NotificationFanout()

    @property
    def resolver(self) -> VisibilityResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Complaints
    # ------------------------------------------------------------------

    async def create_complaint(self, identity: Identity, body: ComplaintCreateRequest) -> Complaint:
        """File a new complaint scoped to the creator's school and department."""
        if identity.role not in (Role.STUDENT, Role.STAFF):
            raise AccessDenied("Access denied. Only students and staff can submit complaints.")
        if not normalize(identity.school):
            raise ValidationError(
                "Your profile has no school; it is required to submit a complaint.",
                field="school",
            )

        complaint = Complaint(
            title=body.title.strip(),
            description=body.description.strip(),
            category=body.category,
            subcategory=body.subcategory,
            priority=body.priority,
            owner_id=identity.id,
            school=identity.school,
            department=identity.department,
            photos=list(body.photos),
            video=list(body.video),
            voice=list(body.voice),
        )
        await self._repository.save_complaint(complaint)
        logger.info(
            "complaints.created",
            complaint_id=complaint.id,
            owner_id=identity.id,
            category=complaint.category,
            priority=complaint.priority,
        )

        await self._notify_creation(complaint)
        return complaint

    async def list_complaints(
        self,
        identity: Identity,
        status: str | None = None,
        category: str | None = None,
    ) -> list[Complaint]:
        """Complaints *identity* may see, optionally filtered, newest first."""
        status_filter = _parse_enum(ComplaintStatus, status, "status")
        category_filter = _parse_enum(ComplaintCategory, category, "category")

        predicate = self._resolver.scope_query(identity).where(
            status=status_filter,
            category=category_filter,
        )
        return await self._repository.find_complaints(predicate)

    async def get_complaint(self, identity: Identity, complaint_id: str) -> Complaint:
        complaint = await self._load(complaint_id)
        self._resolver.require(identity, complaint, AccessMode.READ)
        return complaint

    async def update_status(
        self,
        identity: Identity,
        complaint_id: str,
        body: StatusUpdateRequest,
    ) -> Complaint:
        """Change the status (and optionally the admin notes) of a complaint.

        The owner is notified only when the status actually changed.
        """
        complaint = await self._load(complaint_id)
        fields = {"status"} if body.admin_notes is None else {"status", "admin_notes"}
        self._resolver.require(identity, complaint, AccessMode.WRITE, fields)
        _check_version(complaint, body.expected_version)

        previous = complaint.status
        complaint.status = body.status
        if body.admin_notes is not None:
            complaint.admin_notes = body.admin_notes
        await self._repository.save_complaint(complaint)

        logger.info(
            "complaints.status_updated",
            complaint_id=complaint.id,
            updated_by=identity.id,
            previous_status=previous,
            status=complaint.status,
        )
        await self._notify_status_change(complaint, previous)
        return complaint

    async def assign_complaint(
        self,
        identity: Identity,
        complaint_id: str,
        body: AssignRequest,
    ) -> Complaint:
        """Assign a complaint to a staff member or admin (admins only)."""
        _require_admin(identity)
        complaint = await self._load(complaint_id)
        self._resolver.require(identity, complaint, AccessMode.WRITE, {"assigned_to"})

        assignee = await self._repository.find_user_by_id(body.assigned_to)
        if assignee is None:
            raise NotFound("Assignee not found")
        if assignee.role not in _ASSIGNABLE_ROLES:
            raise ValidationError("Complaints can only be assigned to staff or admins.", field="assigned_to")

        complaint.assigned_to = assignee.id
        await self._repository.save_complaint(complaint)
        logger.info(
            "complaints.assigned",
            complaint_id=complaint.id,
            assigned_to=assignee.id,
            assigned_by=identity.id,
        )

        await self._dispatch(self._fanout.plan_assignment(complaint))
        return complaint

    async def update_complaint(
        self,
        identity: Identity,
        complaint_id: str,
        body: ComplaintUpdateRequest,
    ) -> Complaint:
        """Apply a partial update.

        Every supplied field must be writable by *identity*; otherwise the
        whole update is rejected and nothing is saved.
        """
        complaint = await self._load(complaint_id)
        changes = body.changes()
        self._resolver.require(identity, complaint, AccessMode.WRITE, changes)

        if changes.get("assigned_to") is not None:
            assignee = await self._repository.find_user_by_id(str(changes["assigned_to"]))
            if assignee is None:
                raise NotFound("Assignee not found")
            if assignee.role not in _ASSIGNABLE_ROLES:
                raise ValidationError(
                    "Complaints can only be assigned to staff or admins.",
                    field="assigned_to",
                )

        previous = complaint.status
        for name, value in changes.items():
            setattr(complaint, name, value)
        await self._repository.save_complaint(complaint)

        logger.info(
            "complaints.updated",
            complaint_id=complaint.id,
            updated_by=identity.id,
            fields=sorted(changes),
        )
        if "status" in changes:
            await self._notify_status_change(complaint, previous)
        return complaint

    async def delete_complaint(self, identity: Identity, complaint_id: str) -> None:
        _require_admin(identity)
        complaint = await self._load(complaint_id)
        await self._repository.delete_complaint(complaint.id)
        logger.info("complaints.deleted", complaint_id=complaint.id, deleted_by=identity.id)

    async def submit_feedback(
        self,
        identity: Identity,
        complaint_id: str,
        body: FeedbackRequest,
    ) -> Complaint:
        """Record the owner's rating.  Feedback can be submitted only once."""
        complaint = await self._load(complaint_id)
        self._resolver.require(identity, complaint, AccessMode.WRITE, {"feedback"})

        if not 1 <= body.rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", field="rating")
        if complaint.has_feedback:
            raise ValidationError("Feedback has already been submitted for this complaint", field="feedback")

        complaint.feedback = ComplaintFeedback(rating=body.rating, comment=body.comment.strip())
        await self._repository.save_complaint(complaint)
        logger.info("complaints.feedback_submitted", complaint_id=complaint.id, rating=body.rating)
        return complaint

    async def stats_summary(self, identity: Identity) -> ComplaintStats:
        """Counts per status across every complaint (admins only)."""
        _require_admin(identity)
        counts = await self._repository.count_complaints_by_status()
        return ComplaintStats(
            total=sum(counts.values()),
            pending=counts[ComplaintStatus.PENDING],
            progressed=counts[ComplaintStatus.PROGRESSED],
            in_progress=counts[ComplaintStatus.IN_PROGRESS],
            resolved=counts[ComplaintStatus.RESOLVED],
            completed=counts[ComplaintStatus.COMPLETED],
            rejected=counts[ComplaintStatus.REJECTED],
        )

    # ------------------------------------------------------------------
    # Notification inbox
    # ------------------------------------------------------------------

    async def list_notifications(self, identity: Identity, limit: int = 50) -> list[Notification]:
        return await self._repository.find_notifications_by_user(identity.id, limit=limit)

    async def mark_notification_read(self, identity: Identity, notification_id: str) -> Notification:
        notification = await self._repository.find_notification_by_id(notification_id)
        if notification is None:
            raise NotFound("Notification not found")
        if notification.recipient_id != identity.id:
            raise AccessDenied()
        updated = await self._repository.mark_notification_read(notification_id)
        return updated or notification

    async def mark_all_notifications_read(self, identity: Identity) -> int:
        count = await self._repository.mark_all_notifications_read(identity.id)
        logger.info("notifications.marked_all_read", user_id=identity.id, count=count)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(self, complaint_id: str) -> Complaint:
        complaint = await self._repository.find_complaint_by_id(complaint_id)
        if complaint is None:
            raise NotFound("Complaint not found")
        return complaint

    async def _notify_creation(self, complaint: Complaint) -> None:
        try:
            creator = await self._repository.find_user_by_id(complaint.owner_id)
            admins = await self._repository.find_users_by_role(Role.ADMIN)
            staff = await self._repository.find_users_by_school_dept(complaint.school, complaint.department)
        except Exception as exc:
            logger.error("complaints.fanout_lookup_failed", complaint_id=complaint.id, error=str(exc))
            return
        await self._dispatch(self._fanout.plan_creation(complaint, creator, admins, staff))

    async def _notify_status_change(self, complaint: Complaint, previous: ComplaintStatus) -> None:
        if complaint.status == previous:
            return
        try:
            owner = await self._repository.find_user_by_id(complaint.owner_id)
        except Exception as exc:
            logger.error("complaints.fanout_lookup_failed", complaint_id=complaint.id, error=str(exc))
            owner = None
        await self._dispatch(self._fanout.plan_status_change(complaint, owner, previous))

    async def _dispatch(self, plan: FanoutPlan) -> None:
        try:
            await self._dispatcher.dispatch(plan)
        except Exception as exc:
            logger.error(
                "complaints.fanout_failed",
                lifecycle_event=plan.event,
                complaint_id=plan.complaint_id,
                error=str(exc),
            )


def _parse_enum(enum_type: Any, value: str | None, field: str) -> Any:
    if value is None or value == "":
        return None
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValidationError(f"Invalid {field} '{value}'. Allowed: {allowed}.", field=field) from None


def _require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        raise AccessDenied("Access denied. Admin privileges required.")


def _check_version(complaint: Complaint, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != complaint.version:
        raise Conflict(expected_version=expected_version, actual_version=complaint.version)
