"""Development seeding of user accounts.

Identity management lives outside this service; in development the user
store is populated from a JSON file (``CAMPUS_SEED_USERS_FILE``) so the
``X-User-Id`` header can name real students, staff and admins.

File format: a JSON array of user objects::

    [
      {"id": "stu-1", "first_name": "Asha", "role": "student",
       "school": "SOMS", "department": "BBA", "email": "asha@example.edu"},
      {"id": "adm-1", "first_name": "Ravi", "role": "admin"}
    ]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from src.models.identity import UserAccount

if TYPE_CHECKING:
    from src.services.repository import CampusRepository

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_users(path: Path) -> list[UserAccount]:
    """Load user accounts from a JSON file.

    Entries that fail validation are logged and skipped.

    Raises
    ------
    FileNotFoundError
        If the JSON file does not exist.
    json.JSONDecodeError
        If the JSON is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Seed users file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        raw_users: list[dict] = json.load(f)

    users: list[UserAccount] = []
    for raw in raw_users:
        try:
            users.append(UserAccount.model_validate(raw))
        except Exception:
            logger.warning("seed.parse_error", user_id=raw.get("id", "unknown"), exc_info=True)

    logger.info("seed.loaded_users", count=len(users), source=str(path))
    return users


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


async def seed_users(repository: CampusRepository, path: Path | None) -> list[UserAccount]:
    """Store every user from *path*; a no-op when *path* is ``None``."""
    if path is None:
        return []

    users = load_users(path)
    for user in users:
        await repository.save_user(user)

    logger.info("seed.complete", users=len(users))
    return users
