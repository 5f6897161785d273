"""Notification fanout for complaint lifecycle events.

When a complaint is created, changes status, or is assigned, this
module works out who must hear about it and what they are told, then
delivers it:

1. :class:`NotificationFanout` turns an event into a :class:`FanoutPlan`:
   in-app :class:`~src.models.notification.Notification` records plus
   outbound e-mail/SMS messages.  Planning is pure; it touches no I/O.
2. :class:`NotificationDispatcher` stores the in-app records and hands
   the outbound messages to a :class:`~src.services.notifier.Notifier`
   as a bounded-concurrency batch.  Every recipient is isolated: one
   failed or slow send never stops the others, and nothing raised here
   reaches the request that triggered the event.

Notification types:
    * ``status_update`` -- complaint created, or its status changed.
    * ``assignment``    -- an admin assigned the complaint to a staff member.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from html import escape
from typing import TYPE_CHECKING, Final

import structlog

from src.middleware.privacy import sanitize_pii
from src.models.complaint import Complaint
from src.models.enums import (
    ComplaintStatus,
    DeliveryChannel,
    DeliveryState,
    NotificationType,
)
from src.models.identity import UserAccount
from src.models.notification import DeliveryOutcome, Notification, OutboundMessage
from src.services.errors import NotificationDeliveryError

if TYPE_CHECKING:
    from src.services.notifier import Notifier
    from src.services.repository import CampusRepository

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------

_NOTE_BOX: Final[str] = (
    '<p style="margin-top: 20px; padding: 15px; background: #f0f0f0; border-radius: 5px;">'
    "<strong>Note:</strong> This is a notification only. {hint}"
    "</p>"
)

_SUBJECTS: Final[dict[str, str]] = {
    "staff_new": "Notification: New Complaint Received",
    "creator_new": "Notification: Complaint Submitted",
    "resolved": "Notification: Complaint Resolved",
    "status": "Notification: Complaint Status Updated",
}


def format_timestamp(moment: datetime) -> str:
    """``October 19, 2026 at 02:30 PM`` (UTC)."""
    moment = moment.astimezone(UTC)
    return f"{moment:%B} {moment.day}, {moment.year} at {moment:%I:%M %p}"


def _html(heading: str, intro: str, rows: list[tuple[str, str]], hint: str) -> str:
    lines = [f"<h2>{heading}</h2>", f"<p>{intro}</p>"]
    lines.extend(f"<p><strong>{label}:</strong> {escape(value)}</p>" for label, value in rows)
    lines.append(_NOTE_BOX.format(hint=hint))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FanoutPlan:
    """Everything one lifecycle event must produce."""

    event: str
    complaint_id: str
    notifications: list[Notification] = field(default_factory=list)
    messages: list[OutboundMessage] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.notifications and not self.messages


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class NotificationFanout:
    """Compute recipients and copy for complaint lifecycle events."""

    __slots__ = ()

    def plan_creation(
        self,
        complaint: Complaint,
        creator: UserAccount | None,
        admins: list[UserAccount],
        staff: list[UserAccount],
        *,
        now: datetime | None = None,
    ) -> FanoutPlan:
        """Fanout for a newly created complaint.

        * every admin: in-app entry only;
        * staff of the complaint's school and department: in-app entry,
          e-mail and SMS (informational);
        * the creator: e-mail and SMS confirmation, no in-app entry.
        """
        when = format_timestamp(now or complaint.created_at)
        origin = f"{complaint.school} - {complaint.department}"
        plan = FanoutPlan(event="created", complaint_id=complaint.id)

        for admin in admins:
            plan.notifications.append(
                Notification(
                    recipient_id=admin.id,
                    complaint_id=complaint.id,
                    message=f'New complaint "{complaint.title}" has been submitted from {origin}',
                    type=NotificationType.STATUS_UPDATE,
                )
            )

        staff_html = _html(
            "Notification: New Complaint",
            "A new complaint has been submitted in your department.",
            [
                ("Title", complaint.title),
                ("School", complaint.school),
                ("Department", complaint.department),
                ("Category", str(complaint.category)),
                ("Priority", str(complaint.priority)),
                ("Submitted on", when),
            ],
            "Please check your dashboard to view and manage this complaint.",
        )
        staff_sms = (
            f'Notification: New complaint "{complaint.title}" from {origin}. '
            "Check your dashboard for details."
        )
        for member in staff:
            plan.notifications.append(
                Notification(
                    recipient_id=member.id,
                    complaint_id=complaint.id,
                    message=(
                        f'New complaint "{complaint.title}" from {origin} submitted on {when}. '
                        f"Category: {complaint.category}"
                    ),
                    type=NotificationType.STATUS_UPDATE,
                )
            )
            self._add_contact_messages(plan, member, _SUBJECTS["staff_new"], staff_html, staff_sms)

        if creator is not None:
            creator_html = _html(
                "Notification: Complaint Submitted Successfully",
                "Your complaint has been received and will be reviewed by the faculty.",
                [
                    ("Title", complaint.title),
                    ("Category", str(complaint.category)),
                    ("Priority", str(complaint.priority)),
                    ("Submitted on", when),
                    ("Status", "Pending"),
                ],
                "Please check your dashboard to track the status of your complaint.",
            )
            creator_sms = (
                f'Notification: Your complaint "{complaint.title}" has been submitted. '
                "Check your dashboard for status updates."
            )
            self._add_contact_messages(plan, creator, _SUBJECTS["creator_new"], creator_html, creator_sms)

        return plan

    def plan_status_change(
        self,
        complaint: Complaint,
        owner: UserAccount | None,
        previous_status: ComplaintStatus,
        *,
        now: datetime | None = None,
    ) -> FanoutPlan:
        """Fanout for a status change; empty when the status did not change.

        The owner always gets the in-app entry (even if their account no
        longer exists); e-mail and SMS go out for whichever contact
        details the owner has.
        """
        plan = FanoutPlan(event="status_changed", complaint_id=complaint.id)
        if complaint.status == previous_status:
            return plan

        when = format_timestamp(now or complaint.updated_at)
        status = str(complaint.status)
        notes = complaint.admin_notes.strip()
        note_row = [("Admin Note", notes)] if notes else []

        if complaint.status.is_resolution:
            message = f'Your complaint "{complaint.title}" has been resolved on {when}.'
            if notes:
                message += f" Admin Note: {notes}"
            subject = _SUBJECTS["resolved"]
            html_body = _html(
                "Notification: Your Complaint Has Been Resolved",
                "Your complaint has been successfully resolved.",
                [("Title", complaint.title), ("Status", status), ("Resolved on", when), *note_row],
                "Please check your dashboard to view full details and provide feedback.",
            )
            sms = (
                f'Notification: Your complaint "{complaint.title}" has been resolved. '
                "Check your dashboard for details and to provide feedback."
            )
        else:
            message = f'Your complaint "{complaint.title}" status has been updated to {status} on {when}.'
            subject = _SUBJECTS["status"]
            html_body = _html(
                "Notification: Complaint Status Updated",
                "Your complaint status has been updated.",
                [("Title", complaint.title), ("New Status", status), ("Updated on", when), *note_row],
                "Please check your dashboard to view full details and updates.",
            )
            sms = (
                f'Notification: Your complaint "{complaint.title}" status updated to {status}. '
                "Check your dashboard for details."
            )

        plan.notifications.append(
            Notification(
                recipient_id=complaint.owner_id,
                complaint_id=complaint.id,
                message=message,
                type=NotificationType.STATUS_UPDATE,
            )
        )
        if owner is not None:
            self._add_contact_messages(plan, owner, subject, html_body, sms)
        return plan

    def plan_assignment(self, complaint: Complaint) -> FanoutPlan:
        """One in-app ``assignment`` entry for the owner; no e-mail or SMS."""
        plan = FanoutPlan(event="assigned", complaint_id=complaint.id)
        plan.notifications.append(
            Notification(
                recipient_id=complaint.owner_id,
                complaint_id=complaint.id,
                message=f'Your complaint "{complaint.title}" has been assigned',
                type=NotificationType.ASSIGNMENT,
            )
        )
        return plan

    @staticmethod
    def _add_contact_messages(
        plan: FanoutPlan,
        user: UserAccount,
        subject: str,
        html_body: str,
        sms_text: str,
    ) -> None:
        if user.email:
            plan.messages.append(
                OutboundMessage(
                    recipient_id=user.id,
                    channel=DeliveryChannel.EMAIL,
                    address=user.email,
                    subject=subject,
                    body=html_body,
                )
            )
        if user.phone:
            plan.messages.append(
                OutboundMessage(
                    recipient_id=user.id,
                    channel=DeliveryChannel.SMS,
                    address=user.phone,
                    body=sms_text,
                )
            )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Deliver a :class:`FanoutPlan` without ever failing the caller.

    In-app notifications are stored before :meth:`dispatch` returns.
    Outbound messages are sent through the notifier with at most
    ``concurrency`` sends in flight and a per-send timeout.  With
    ``background=True`` they run as detached tasks after the caller has
    moved on; :meth:`drain` waits for them (shutdown, tests).
    """

    __slots__ = ("_background", "_notifier", "_repository", "_semaphore", "_tasks", "_timeout")

    def __init__(
        self,
        repository: CampusRepository,
        notifier: Notifier,
        *,
        concurrency: int = 8,
        timeout_seconds: float = 10.0,
        background: bool = True,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._semaphore = asyncio.Semaphore(concurrency)
        self._timeout = timeout_seconds
        self._background = background
        self._tasks: set[asyncio.Task[list[DeliveryOutcome]]] = set()

    @property
    def pending(self) -> int:
        """Number of background delivery batches still running."""
        return len(self._tasks)

    async def dispatch(self, plan: FanoutPlan) -> list[DeliveryOutcome]:
        """Store the plan's notifications and deliver its messages.

        Returns the delivery outcomes when running inline, or an empty
        list when delivery was handed to a background task.
        """
        if plan.is_empty:
            return []

        await self._store_notifications(plan)

        if not plan.messages:
            return []

        if self._background:
            task = asyncio.create_task(self._deliver_all(plan), name=f"fanout:{plan.event}:{plan.complaint_id}")
            self._tasks.add(task)
            task.add_done_callback(self._on_batch_done)
            return []
        return await self._deliver_all(plan)

    async def drain(self) -> None:
        """Wait for every background delivery batch to finish.

        Batch failures are logged by the task's done-callback, so the
        gathered exceptions are not inspected here.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_batch_done(self, task: asyncio.Task[list[DeliveryOutcome]]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("fanout.batch_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            error = NotificationDeliveryError("Background delivery batch failed")
            error.__cause__ = exc
            logger.error("fanout.batch_failed", task=task.get_name(), error=str(exc), exc_info=error)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _store_notifications(self, plan: FanoutPlan) -> None:
        results = await asyncio.gather(
            *(self._repository.save_notification(n) for n in plan.notifications),
            return_exceptions=True,
        )
        for notification, result in zip(plan.notifications, results, strict=True):
            if isinstance(result, BaseException):
                error = NotificationDeliveryError(
                    "In-app notification could not be stored",
                    recipient_id=notification.recipient_id,
                )
                error.__cause__ = result
                logger.error(
                    "fanout.notification_store_failed",
                    lifecycle_event=plan.event,
                    complaint_id=plan.complaint_id,
                    recipient_id=error.recipient_id,
                    error=str(result),
                    exc_info=error,
                )

    async def _deliver_all(self, plan: FanoutPlan) -> list[DeliveryOutcome]:
        outcomes = list(await asyncio.gather(*(self._deliver_one(plan, m) for m in plan.messages)))
        failed = sum(1 for o in outcomes if o.status == DeliveryState.FAILED)
        logger.info(
            "fanout.delivered",
            lifecycle_event=plan.event,
            complaint_id=plan.complaint_id,
            attempted=len(outcomes),
            failed=failed,
        )
        return outcomes

    async def _deliver_one(self, plan: FanoutPlan, message: OutboundMessage) -> DeliveryOutcome:
        async with self._semaphore:
            try:
                if message.channel == DeliveryChannel.EMAIL:
                    send = self._notifier.send_email(message.address, message.subject, message.body)
                else:
                    send = self._notifier.send_sms(message.address, message.body)
                return await asyncio.wait_for(send, timeout=self._timeout)
            except TimeoutError:
                error_message = f"Delivery timed out after {self._timeout:g}s"
            except Exception as exc:
                error_message = str(exc) or exc.__class__.__name__

        logger.warning(
            "fanout.delivery_failed",
            lifecycle_event=plan.event,
            complaint_id=plan.complaint_id,
            recipient_id=message.recipient_id,
            channel=message.channel,
            error=error_message,
        )
        return DeliveryOutcome(
            channel=message.channel,
            to=sanitize_pii(message.address),
            status=DeliveryState.FAILED,
            error_message=error_message,
        )
