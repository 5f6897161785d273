"""Visibility resolution for complaints.

Decides, for an authenticated :class:`~src.models.identity.Identity`,
which complaints it may read or change and which fields it may write.
Every complaint operation goes through :class:`VisibilityResolver`; no
route or service repeats the role checks on its own.

Rules
-----
* **admin**: full access to every complaint.
* **student**: only complaints they own; the only writable field is
  ``feedback``.
* **staff**: complaints from their own school, restricted to their own
  department unless the complaint is assigned to them.  A staff member
  with an empty department sees the whole school (admin-seeded staff
  may legitimately lack a department).  Staff may write ``status`` and
  ``admin_notes`` only.

School and department names are free text entered by users, so every
comparison is made on trimmed, case-folded values.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any, Final

import structlog

from src.models.complaint import Complaint
from src.models.enums import AccessMode, Role
from src.models.identity import Identity
from src.services.errors import AccessDenied

logger = structlog.get_logger(__name__)


ADMIN_WRITABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "title",
        "description",
        "category",
        "subcategory",
        "priority",
        "status",
        "admin_notes",
        "resolution_notes",
        "assigned_to",
    }
)
STAFF_WRITABLE_FIELDS: Final[frozenset[str]] = frozenset({"status", "admin_notes"})
OWNER_WRITABLE_FIELDS: Final[frozenset[str]] = frozenset({"feedback"})


def normalize(value: object) -> str:
    """Trim and case-fold *value* for comparison; ``None`` becomes ``""``."""
    if value is None:
        return ""
    return str(value).strip().casefold()


# ---------------------------------------------------------------------------
# Listing predicate
# ---------------------------------------------------------------------------

Term = tuple[str, str]


@dataclass(frozen=True, slots=True)
class QueryPredicate:
    """Equality filter over complaint fields.

    A document matches when every ``all_of`` term holds and, if
    ``any_of`` is non-empty, at least one of its conjunctions holds.
    An empty predicate matches everything.
    """

    all_of: tuple[Term, ...] = ()
    any_of: tuple[tuple[Term, ...], ...] = ()

    @property
    def unrestricted(self) -> bool:
        return not self.all_of and not self.any_of

    def where(self, **terms: object) -> QueryPredicate:
        """Return a copy narrowed by extra equality terms (``None`` values are ignored)."""
        extra = tuple((name, str(value)) for name, value in terms.items() if value is not None)
        return replace(self, all_of=self.all_of + extra)

    def matches(self, document: Complaint | Mapping[str, Any]) -> bool:
        if not all(_term_holds(document, term) for term in self.all_of):
            return False
        if not self.any_of:
            return True
        return any(
            all(_term_holds(document, term) for term in clause)
            for clause in self.any_of
        )


def _term_holds(document: Complaint | Mapping[str, Any], term: Term) -> bool:
    name, expected = term
    if isinstance(document, Mapping):
        actual = document.get(name)
    else:
        actual = getattr(document, name, None)
    if actual is None:
        return False
    return normalize(actual) == normalize(expected)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class VisibilityResolver:
    """Single decision point for complaint read/write access."""

    __slots__ = ()

    def can_access(
        self,
        identity: Identity,
        complaint: Complaint,
        mode: AccessMode = AccessMode.READ,
    ) -> bool:
        """Return *True* if *identity* may read (or write) *complaint*.

        Staff access is symmetric: the same rule decides READ and WRITE;
        what staff may change is bounded by :meth:`writable_fields`.
        """
        if identity.role == Role.ADMIN:
            return True
        if identity.role == Role.STUDENT:
            return _is_owner(identity, complaint)
        if identity.role == Role.STAFF:
            return self._staff_in_scope(identity, complaint)
        return False

    def writable_fields(self, identity: Identity, complaint: Complaint) -> frozenset[str]:
        """Fields *identity* may change on *complaint* (empty when it has no access)."""
        if not self.can_access(identity, complaint, AccessMode.WRITE):
            return frozenset()

        fields: frozenset[str] = frozenset()
        if identity.role == Role.ADMIN:
            fields = ADMIN_WRITABLE_FIELDS
        elif identity.role == Role.STAFF:
            fields = STAFF_WRITABLE_FIELDS

        # Feedback belongs to whoever filed the complaint, whatever their role.
        if _is_owner(identity, complaint):
            fields = fields | OWNER_WRITABLE_FIELDS
        return fields

    def require(
        self,
        identity: Identity,
        complaint: Complaint,
        mode: AccessMode = AccessMode.READ,
        fields: Iterable[str] = (),
    ) -> None:
        """Raise :class:`AccessDenied` unless the access (and every field) is allowed."""
        if not self.can_access(identity, complaint, mode):
            logger.info(
                "visibility.denied",
                user_id=identity.id,
                role=identity.role,
                complaint_id=complaint.id,
                mode=mode,
            )
            if identity.role == Role.STAFF and mode == AccessMode.WRITE:
                raise AccessDenied(
                    "Access denied. You can only update complaints from your school and department."
                )
            raise AccessDenied()

        requested = frozenset(fields)
        if not requested:
            return
        forbidden = requested - self.writable_fields(identity, complaint)
        if forbidden:
            logger.info(
                "visibility.fields_denied",
                user_id=identity.id,
                role=identity.role,
                complaint_id=complaint.id,
                fields=sorted(forbidden),
            )
            raise AccessDenied(f"Access denied. You may not change: {', '.join(sorted(forbidden))}.")

    def scope_query(self, identity: Identity) -> QueryPredicate:
        """Predicate selecting the complaints *identity* may list."""
        if identity.role == Role.ADMIN:
            return QueryPredicate()
        if identity.role == Role.STUDENT:
            return QueryPredicate(all_of=(("owner_id", identity.id),))
        if identity.role == Role.STAFF:
            assigned: tuple[Term, ...] = (("assigned_to", identity.id),)
            if normalize(identity.department):
                in_department: tuple[Term, ...] = (
                    ("department", identity.department),
                    ("school", identity.school),
                )
                return QueryPredicate(any_of=(assigned, in_department))
            return QueryPredicate(any_of=(assigned, (("school", identity.school),)))
        # Unknown roles see nothing.
        return QueryPredicate(all_of=(("id", ""),))

    # -- Internal helpers ------------------------------------------------------

    @staticmethod
    def _staff_in_scope(identity: Identity, complaint: Complaint) -> bool:
        same_school = normalize(complaint.school) == normalize(identity.school)
        is_assigned = (
            complaint.assigned_to is not None
            and normalize(complaint.assigned_to) == normalize(identity.id)
        )
        department = normalize(identity.department)
        # No department: the whole school plus anything assigned, even across schools.
        if not department:
            return same_school or is_assigned
        same_department = normalize(complaint.department) == department
        return same_school and (same_department or is_assigned)


def _is_owner(identity: Identity, complaint: Complaint) -> bool:
    return normalize(complaint.owner_id) == normalize(identity.id)
