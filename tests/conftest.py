"""Shared fixtures: in-memory store, seeded users and a recording notifier.

All tests run WITHOUT network access.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from src.models.enums import DeliveryChannel, DeliveryState, Role
from src.models.identity import UserAccount
from src.models.notification import DeliveryOutcome
from src.services.complaints import ComplaintService
from src.services.fanout import NotificationDispatcher
from src.services.repository import CampusRepository
from src.services.store import DocumentStore, InMemoryStoreBackend


class RecordingNotifier:
    """Notifier double that records every send and reports success."""

    def __init__(self, *, fail_email: bool = False, fail_sms: bool = False) -> None:
        self.emails: list[tuple[str, str, str]] = []
        self.sms: list[tuple[str, str]] = []
        self._fail_email = fail_email
        self._fail_sms = fail_sms

    async def send_email(self, address: str, subject: str, html_body: str) -> DeliveryOutcome:
        self.emails.append((address, subject, html_body))
        if self._fail_email:
            raise RuntimeError("SMTP connection refused")
        return DeliveryOutcome(
            channel=DeliveryChannel.EMAIL,
            to=address,
            status=DeliveryState.SENT,
            provider="recording",
            sent_at=datetime.now(UTC),
        )

    async def send_sms(self, phone: str, text: str) -> DeliveryOutcome:
        self.sms.append((phone, text))
        if self._fail_sms:
            return DeliveryOutcome(
                channel=DeliveryChannel.SMS,
                to=phone,
                status=DeliveryState.FAILED,
                provider="recording",
                error_message="gateway down",
            )
        return DeliveryOutcome(
            channel=DeliveryChannel.SMS,
            to=phone,
            status=DeliveryState.MOCK,
            provider="recording",
        )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture
def student() -> UserAccount:
    return UserAccount(
        id="stu-1",
        first_name="Asha",
        last_name="Rao",
        email="asha.rao@example.edu",
        phone="9876543210",
        role=Role.STUDENT,
        school="SOMS",
        department="BBA",
        student_id="SOMS-2023-041",
    )


@pytest.fixture
def other_student() -> UserAccount:
    return UserAccount(
        id="stu-2",
        first_name="Karan",
        email="karan@example.edu",
        role=Role.STUDENT,
        school="SOMS",
        department="BBA",
    )


@pytest.fixture
def staff_bba() -> UserAccount:
    return UserAccount(
        id="stf-1",
        first_name="Meera",
        email="meera@example.edu",
        phone="9123456780",
        role=Role.STAFF,
        school="SOMS",
        department="BBA",
    )


@pytest.fixture
def staff_other_dept() -> UserAccount:
    return UserAccount(
        id="stf-2",
        first_name="Vikram",
        email="vikram@example.edu",
        role=Role.STAFF,
        school="SOMS",
        department="MBA",
    )


@pytest.fixture
def staff_school_wide() -> UserAccount:
    return UserAccount(id="stf-3", first_name="Nisha", role=Role.STAFF, school="SOMS", department="")


@pytest.fixture
def admin() -> UserAccount:
    return UserAccount(id="adm-1", first_name="Ravi", email="ravi@example.edu", role=Role.ADMIN)


@pytest.fixture
def second_admin() -> UserAccount:
    return UserAccount(id="adm-2", first_name="Leela", role=Role.ADMIN)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> DocumentStore:
    return DocumentStore(InMemoryStoreBackend())


@pytest.fixture
def repository(store: DocumentStore) -> CampusRepository:
    return CampusRepository(store)


@pytest.fixture
async def seeded_repository(
    repository: CampusRepository,
    student: UserAccount,
    other_student: UserAccount,
    staff_bba: UserAccount,
    staff_other_dept: UserAccount,
    staff_school_wide: UserAccount,
    admin: UserAccount,
    second_admin: UserAccount,
) -> CampusRepository:
    for user in (student, other_student, staff_bba, staff_other_dept, staff_school_wide, admin, second_admin):
        await repository.save_user(user)
    return repository


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(seeded_repository: CampusRepository, notifier: RecordingNotifier) -> NotificationDispatcher:
    return NotificationDispatcher(seeded_repository, notifier, concurrency=4, timeout_seconds=1.0, background=False)


@pytest.fixture
def service(seeded_repository: CampusRepository, dispatcher: NotificationDispatcher) -> ComplaintService:
    return ComplaintService(seeded_repository, dispatcher)
