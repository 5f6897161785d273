"""Identity and user-account models.

An :class:`Identity` is the authenticated actor attached to a request:
its role plus the organisational scope (school, department) that bounds
what a staff member may see.  A :class:`UserAccount` is the stored user
record; it adds the contact details that notification fanout needs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from src.models.enums import Role


class Identity(BaseModel):
    """Authenticated actor with role and organisational scope.

    Admins carry no school/department scoping, so both are cleared for
    the ``admin`` role.  Staff may legitimately have an empty department,
    which widens their visibility to the whole school.
    """

    model_config = {"frozen": True}

    id: str
    role: Role
    school: str = ""
    department: str = ""

    @model_validator(mode="before")
    @classmethod
    def _admin_is_unscoped(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("role") == Role.ADMIN:
            return {**data, "school": "", "department": ""}
        return data

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role == Role.STAFF

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT


class UserAccount(BaseModel):
    """A stored user record (students, staff and admins)."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    first_name: str
    last_name: str = ""
    email: str | None = None
    phone: str | None = None  # 10-digit Indian mobile number
    role: Role = Role.STUDENT
    school: str = ""
    department: str = ""
    student_id: str | None = None
    course_year: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def identity(self) -> Identity:
        return Identity(
            id=self.id,
            role=self.role,
            school=self.school,
            department=self.department,
        )
