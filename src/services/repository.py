"""Persistence contract for complaints, users and notifications.

:class:`CampusRepository` is the only component that talks to the
:class:`~src.services.store.DocumentStore`.  Listing queries are
evaluated with :class:`~src.services.visibility.QueryPredicate`, so the
store itself only needs key/value access.
"""

from __future__ import annotations

from collections import Counter

import structlog

from src.models.complaint import Complaint
from src.models.enums import Role
from src.models.identity import UserAccount
from src.models.notification import Notification
from src.services.store import DocumentStore
from src.services.visibility import QueryPredicate, normalize

logger = structlog.get_logger(__name__)

COMPLAINTS = "complaints"
USERS = "users"
NOTIFICATIONS = "notifications"


class CampusRepository:
    """Async repository over a :class:`DocumentStore`."""

    __slots__ = ("_store",)

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    # ------------------------------------------------------------------
    # Complaints
    # ------------------------------------------------------------------

    async def find_complaint_by_id(self, complaint_id: str) -> Complaint | None:
        document = await self._store.get(COMPLAINTS, complaint_id)
        return Complaint.model_validate(document) if document is not None else None

    async def find_complaints(self, predicate: QueryPredicate) -> list[Complaint]:
        """Return complaints matching *predicate*, newest first."""
        complaints = [
            Complaint.model_validate(document)
            for document in await self._store.all(COMPLAINTS)
            if predicate.matches(document)
        ]
        complaints.sort(key=lambda c: c.created_at, reverse=True)
        return complaints

    async def save_complaint(self, complaint: Complaint) -> Complaint:
        """Stamp and persist *complaint* (see :meth:`Complaint.touch`)."""
        complaint.touch()
        await self._store.put(COMPLAINTS, complaint.id, complaint.model_dump(mode="json"))
        logger.debug("repository.complaint_saved", complaint_id=complaint.id, version=complaint.version)
        return complaint

    async def delete_complaint(self, complaint_id: str) -> bool:
        return await self._store.delete(COMPLAINTS, complaint_id)

    async def count_complaints_by_status(self) -> Counter[str]:
        return Counter(str(document.get("status", "")) for document in await self._store.all(COMPLAINTS))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def find_user_by_id(self, user_id: str) -> UserAccount | None:
        document = await self._store.get(USERS, user_id)
        return UserAccount.model_validate(document) if document is not None else None

    async def save_user(self, user: UserAccount) -> UserAccount:
        await self._store.put(USERS, user.id, user.model_dump(mode="json"))
        return user

    async def find_users_by_role(self, role: Role) -> list[UserAccount]:
        return [
            UserAccount.model_validate(document)
            for document in await self._store.all(USERS)
            if document.get("role") == role
        ]

    async def find_users_by_school_dept(
        self,
        school: str,
        department: str,
        *,
        role: Role = Role.STAFF,
    ) -> list[UserAccount]:
        """Users of *role* whose (school, department) equals the given pair.

        The pair is compared on trimmed, case-folded values, the same way
        the visibility rules compare organisational names.
        """
        wanted = (normalize(school), normalize(department))
        return [
            UserAccount.model_validate(document)
            for document in await self._store.all(USERS)
            if document.get("role") == role
            and (normalize(document.get("school")), normalize(document.get("department"))) == wanted
        ]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def save_notification(self, notification: Notification) -> Notification:
        await self._store.put(NOTIFICATIONS, notification.id, notification.model_dump(mode="json"))
        return notification

    async def find_notification_by_id(self, notification_id: str) -> Notification | None:
        document = await self._store.get(NOTIFICATIONS, notification_id)
        return Notification.model_validate(document) if document is not None else None

    async def find_notifications_by_user(self, user_id: str, *, limit: int | None = 50) -> list[Notification]:
        """Notifications addressed to *user_id*, newest first."""
        notifications = [
            Notification.model_validate(document)
            for document in await self._store.all(NOTIFICATIONS)
            if document.get("recipient_id") == user_id
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit] if limit is not None else notifications

    async def mark_notification_read(self, notification_id: str) -> Notification | None:
        notification = await self.find_notification_by_id(notification_id)
        if notification is None:
            return None
        if not notification.read:
            notification.read = True
            await self.save_notification(notification)
        return notification

    async def mark_all_notifications_read(self, user_id: str) -> int:
        unread = [
            n for n in await self.find_notifications_by_user(user_id, limit=None) if not n.read
        ]
        for notification in unread:
            notification.read = True
            await self.save_notification(notification)
        return len(unread)
