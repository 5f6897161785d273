"""Tests for the complaint lifecycle service.

Uses the in-memory store and a recording notifier with inline delivery.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.models.complaint import (
    AssignRequest,
    Complaint,
    ComplaintCreateRequest,
    ComplaintUpdateRequest,
    FeedbackRequest,
    StatusUpdateRequest,
)
from src.models.enums import ComplaintCategory, ComplaintStatus, NotificationType, Role
from src.models.identity import Identity, UserAccount
from src.services.complaints import ComplaintService
from src.services.errors import AccessDenied, Conflict, NotFound, ValidationError
from src.services.fanout import NotificationDispatcher
from src.services.repository import CampusRepository
from tests.conftest import RecordingNotifier


async def _file(service: ComplaintService, user: UserAccount, **overrides: object) -> Complaint:
    body = {"title": "Broken fan", "description": "Fan in room 204 does not work", "category": "hostel"}
    body.update(overrides)
    return await service.create_complaint(user.identity, ComplaintCreateRequest(**body))


async def _all_notifications(repository: CampusRepository) -> list[str]:
    documents = await repository.store.all("notifications")
    return sorted(d["recipient_id"] for d in documents)


# -----------------------------------------------------------------------
# Creation
# -----------------------------------------------------------------------


class TestCreateComplaint:
    async def test_snapshot_of_creator_scope(self, service: ComplaintService, student: UserAccount) -> None:
        complaint = await _file(service, student)
        assert complaint.owner_id == "stu-1"
        assert (complaint.school, complaint.department) == ("SOMS", "BBA")
        assert complaint.status == ComplaintStatus.PENDING
        assert complaint.version == 1

    async def test_fanout_recipients(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
        notifier: RecordingNotifier,
        student: UserAccount,
    ) -> None:
        """One notification per admin and per staff member of SOMS/BBA, all status_update."""
        await _file(service, student)

        documents = await seeded_repository.store.all("notifications")
        assert sorted(d["recipient_id"] for d in documents) == ["adm-1", "adm-2", "stf-1"]
        assert {d["type"] for d in documents} == {NotificationType.STATUS_UPDATE}

        assert sorted(a for a, _, _ in notifier.emails) == ["asha.rao@example.edu", "meera@example.edu"]
        assert sorted(p for p, _ in notifier.sms) == ["9123456780", "9876543210"]

    async def test_staff_match_ignores_case_and_whitespace(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
    ) -> None:
        creator = UserAccount(id="stu-3", first_name="Dev", role=Role.STUDENT, school=" soms", department="bba ")
        await seeded_repository.save_user(creator)
        await _file(service, creator)
        assert "stf-1" in await _all_notifications(seeded_repository)

    async def test_admin_cannot_file(self, service: ComplaintService, admin: UserAccount) -> None:
        with pytest.raises(AccessDenied):
            await _file(service, admin)

    async def test_creator_without_school_rejected(self, service: ComplaintService) -> None:
        identity = Identity(id="stu-x", role=Role.STUDENT, school="  ")
        with pytest.raises(ValidationError) as excinfo:
            await service.create_complaint(
                identity,
                ComplaintCreateRequest(title="t", description="d"),
            )
        assert excinfo.value.field == "school"

    async def test_failing_notifier_never_fails_creation(
        self,
        seeded_repository: CampusRepository,
        student: UserAccount,
    ) -> None:
        dispatcher = NotificationDispatcher(
            seeded_repository,
            RecordingNotifier(fail_email=True, fail_sms=True),
            background=False,
        )
        service = ComplaintService(seeded_repository, dispatcher)
        complaint = await _file(service, student)
        assert await seeded_repository.find_complaint_by_id(complaint.id) is not None

    async def test_reachable_recipients_get_messages_and_creation_succeeds(
        self,
        service: ComplaintService,
        notifier: RecordingNotifier,
        student: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        assert complaint.id, "creation returns the stored complaint"
        assert notifier.emails and notifier.sms, "creator and staff have contact details"

    async def test_dispatcher_crash_is_contained(
        self,
        seeded_repository: CampusRepository,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        dispatcher = AsyncMock(spec=NotificationDispatcher)
        dispatcher.dispatch.side_effect = RuntimeError("dispatcher exploded")
        service = ComplaintService(seeded_repository, dispatcher)

        complaint = await _file(service, student)
        updated = await service.update_status(
            admin.identity,
            complaint.id,
            StatusUpdateRequest(status="resolved"),
        )

        assert updated.status == ComplaintStatus.RESOLVED
        assert dispatcher.dispatch.await_count == 2


# -----------------------------------------------------------------------
# Listing and reading
# -----------------------------------------------------------------------


class TestListAndGet:
    async def test_student_lists_own_only(
        self,
        service: ComplaintService,
        student: UserAccount,
        other_student: UserAccount,
    ) -> None:
        mine = await _file(service, student)
        await _file(service, other_student)
        listed = await service.list_complaints(student.identity)
        assert [c.id for c in listed] == [mine.id]

    async def test_staff_listing_is_scoped_and_filtered(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
        student: UserAccount,
        staff_bba: UserAccount,
    ) -> None:
        hostel = await _file(service, student, category="hostel")
        await _file(service, student, category="library")
        mba_student = UserAccount(id="stu-4", first_name="Ira", school="SOMS", department="MBA")
        await seeded_repository.save_user(mba_student)
        await _file(service, mba_student, category="hostel")

        listed = await service.list_complaints(staff_bba.identity, category="hostel")
        assert [c.id for c in listed] == [hostel.id]

        all_visible = await service.list_complaints(staff_bba.identity)
        assert len(all_visible) == 2
        assert all_visible[0].created_at >= all_visible[1].created_at, "newest first"

    async def test_invalid_filter(self, service: ComplaintService, admin: UserAccount) -> None:
        with pytest.raises(ValidationError) as excinfo:
            await service.list_complaints(admin.identity, status="archived")
        assert excinfo.value.field == "status"

    async def test_get_missing_is_not_found(self, service: ComplaintService, admin: UserAccount) -> None:
        with pytest.raises(NotFound):
            await service.get_complaint(admin.identity, "nope")

    async def test_get_other_students_complaint_denied(
        self,
        service: ComplaintService,
        student: UserAccount,
        other_student: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied):
            await service.get_complaint(other_student.identity, complaint.id)

    async def test_school_wide_staff_reads_any_department(
        self,
        service: ComplaintService,
        student: UserAccount,
        staff_school_wide: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        fetched = await service.get_complaint(staff_school_wide.identity, complaint.id)
        assert fetched.id == complaint.id


# -----------------------------------------------------------------------
# Status updates
# -----------------------------------------------------------------------


class TestUpdateStatus:
    async def test_no_op_update_creates_no_notifications(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
        student: UserAccount,
        staff_bba: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        before = await _all_notifications(seeded_repository)

        await service.update_status(staff_bba.identity, complaint.id, StatusUpdateRequest(status="pending"))

        assert await _all_notifications(seeded_repository) == before

    async def test_resolution_notifies_owner(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
        notifier: RecordingNotifier,
        student: UserAccount,
        staff_bba: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        notifier.emails.clear()
        notifier.sms.clear()

        updated = await service.update_status(
            staff_bba.identity,
            complaint.id,
            StatusUpdateRequest(status="resolved", admin_notes="Fan replaced"),
        )

        assert updated.resolved_at is not None
        owner_notes = await seeded_repository.find_notifications_by_user("stu-1")
        assert len(owner_notes) == 1
        assert "has been resolved" in owner_notes[0].message
        assert "Admin Note: Fan replaced" in owner_notes[0].message
        assert [a for a, _, _ in notifier.emails] == ["asha.rao@example.edu"]
        assert [p for p, _ in notifier.sms] == ["9876543210"]

    async def test_resolution_notifies_even_when_channels_fail(
        self,
        seeded_repository: CampusRepository,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        notifier = RecordingNotifier(fail_email=True, fail_sms=True)
        service = ComplaintService(
            seeded_repository,
            NotificationDispatcher(seeded_repository, notifier, background=False),
        )
        complaint = await _file(service, student)
        notifier.emails.clear()
        notifier.sms.clear()

        await service.update_status(admin.identity, complaint.id, StatusUpdateRequest(status="resolved"))

        assert len(await seeded_repository.find_notifications_by_user("stu-1")) == 1
        assert len(notifier.emails) == 1 and len(notifier.sms) == 1, "both channels attempted"

    async def test_resolved_at_is_stamped_once(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        first = await service.update_status(admin.identity, complaint.id, StatusUpdateRequest(status="resolved"))
        stamped = first.resolved_at

        await service.update_status(admin.identity, complaint.id, StatusUpdateRequest(status="pending"))
        again = await service.update_status(admin.identity, complaint.id, StatusUpdateRequest(status="resolved"))

        assert again.resolved_at == stamped

    async def test_staff_out_of_scope_denied(
        self,
        service: ComplaintService,
        student: UserAccount,
        staff_other_dept: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied, match="school and department"):
            await service.update_status(
                staff_other_dept.identity,
                complaint.id,
                StatusUpdateRequest(status="resolved"),
            )

    async def test_owner_student_cannot_change_status(
        self,
        service: ComplaintService,
        student: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied):
            await service.update_status(student.identity, complaint.id, StatusUpdateRequest(status="resolved"))

    async def test_version_conflict(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        await service.update_status(
            admin.identity,
            complaint.id,
            StatusUpdateRequest(status="in-progress", expected_version=complaint.version),
        )
        with pytest.raises(Conflict) as excinfo:
            await service.update_status(
                admin.identity,
                complaint.id,
                StatusUpdateRequest(status="resolved", expected_version=complaint.version),
            )
        assert excinfo.value.actual_version == complaint.version + 1


# -----------------------------------------------------------------------
# Assignment and partial updates
# -----------------------------------------------------------------------


class TestAssignAndUpdate:
    async def test_assign_notifies_owner(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
        student: UserAccount,
        staff_other_dept: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        assigned = await service.assign_complaint(admin.identity, complaint.id, AssignRequest(assigned_to="stf-2"))
        assert assigned.assigned_to == "stf-2"

        owner_notes = await seeded_repository.find_notifications_by_user("stu-1")
        assert [n.type for n in owner_notes] == [NotificationType.ASSIGNMENT]

        fetched = await service.get_complaint(staff_other_dept.identity, complaint.id)
        assert fetched.id == complaint.id, "assignment grants access across departments"

    async def test_assign_requires_admin(self, service: ComplaintService, student: UserAccount, staff_bba: UserAccount) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied):
            await service.assign_complaint(staff_bba.identity, complaint.id, AssignRequest(assigned_to="stf-1"))

    async def test_assign_to_student_rejected(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(ValidationError):
            await service.assign_complaint(admin.identity, complaint.id, AssignRequest(assigned_to="stu-2"))
        with pytest.raises(NotFound):
            await service.assign_complaint(admin.identity, complaint.id, AssignRequest(assigned_to="ghost"))

    async def test_staff_cannot_change_title(
        self,
        service: ComplaintService,
        student: UserAccount,
        staff_bba: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied, match="title"):
            await service.update_complaint(
                staff_bba.identity,
                complaint.id,
                ComplaintUpdateRequest(title="Edited", status="in-progress"),
            )
        stored = await service.get_complaint(staff_bba.identity, complaint.id)
        assert stored.title == "Broken fan", "rejected update must not be applied"
        assert stored.status == ComplaintStatus.PENDING

    async def test_admin_update_with_status_change_notifies(
        self,
        service: ComplaintService,
        seeded_repository: CampusRepository,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        updated = await service.update_complaint(
            admin.identity,
            complaint.id,
            ComplaintUpdateRequest(category="library", priority="urgent", status="in-progress"),
        )
        assert updated.category == ComplaintCategory.LIBRARY
        owner_notes = await seeded_repository.find_notifications_by_user("stu-1")
        assert len(owner_notes) == 1 and "in-progress" in owner_notes[0].message

    async def test_delete_is_admin_only(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied):
            await service.delete_complaint(student.identity, complaint.id)
        await service.delete_complaint(admin.identity, complaint.id)
        with pytest.raises(NotFound):
            await service.get_complaint(admin.identity, complaint.id)


# -----------------------------------------------------------------------
# Feedback and stats
# -----------------------------------------------------------------------


class TestFeedbackAndStats:
    async def test_feedback_is_write_once(self, service: ComplaintService, student: UserAccount) -> None:
        complaint = await _file(service, student)
        await service.submit_feedback(student.identity, complaint.id, FeedbackRequest(rating=4, comment="Quick fix"))

        with pytest.raises(ValidationError) as excinfo:
            await service.submit_feedback(student.identity, complaint.id, FeedbackRequest(rating=1))
        assert excinfo.value.field == "feedback"

        stored = await service.get_complaint(student.identity, complaint.id)
        assert stored.feedback is not None and stored.feedback.rating == 4, "first rating is retained"

    @pytest.mark.parametrize("rating", [0, 6, -1])
    async def test_rating_out_of_range(self, service: ComplaintService, student: UserAccount, rating: int) -> None:
        complaint = await _file(service, student)
        with pytest.raises(ValidationError) as excinfo:
            await service.submit_feedback(student.identity, complaint.id, FeedbackRequest(rating=rating))
        assert excinfo.value.field == "rating"

    async def test_only_owner_submits_feedback(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        complaint = await _file(service, student)
        with pytest.raises(AccessDenied):
            await service.submit_feedback(admin.identity, complaint.id, FeedbackRequest(rating=5))

    async def test_stats_counts_each_status(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        first = await _file(service, student)
        second = await _file(service, student)
        await _file(service, student)
        await service.update_status(admin.identity, first.id, StatusUpdateRequest(status="resolved"))
        await service.update_status(admin.identity, second.id, StatusUpdateRequest(status="rejected"))

        stats = await service.stats_summary(admin.identity)
        assert (stats.total, stats.pending, stats.resolved, stats.rejected) == (3, 1, 1, 1)
        assert stats.in_progress == 0

    async def test_stats_admin_only(self, service: ComplaintService, staff_bba: UserAccount) -> None:
        with pytest.raises(AccessDenied):
            await service.stats_summary(staff_bba.identity)


# -----------------------------------------------------------------------
# Notification inbox
# -----------------------------------------------------------------------


class TestNotificationInbox:
    async def test_mark_read_by_recipient_only(
        self,
        service: ComplaintService,
        student: UserAccount,
        staff_bba: UserAccount,
        admin: UserAccount,
    ) -> None:
        await _file(service, student)
        [note] = await service.list_notifications(staff_bba.identity)

        with pytest.raises(AccessDenied):
            await service.mark_notification_read(admin.identity, note.id)

        updated = await service.mark_notification_read(staff_bba.identity, note.id)
        assert updated.read is True

    async def test_mark_missing_notification(self, service: ComplaintService, admin: UserAccount) -> None:
        with pytest.raises(NotFound):
            await service.mark_notification_read(admin.identity, "missing")

    async def test_mark_all_read(
        self,
        service: ComplaintService,
        student: UserAccount,
        admin: UserAccount,
    ) -> None:
        await _file(service, student)
        await _file(service, student)
        assert await service.mark_all_notifications_read(admin.identity) == 2
        assert await service.mark_all_notifications_read(admin.identity) == 0
        assert all(n.read for n in await service.list_notifications(admin.identity))
