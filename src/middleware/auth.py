"""Request identity resolution for complaint endpoints.

Authentication itself happens at the upstream gateway, which forwards
the authenticated user id in the ``X-User-Id`` header.  This module
turns that id into an :class:`~src.models.identity.Identity` by loading
the stored user record, so role and school/department scope always come
from the user store and never from the client.
"""

from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from src.models.identity import Identity
from src.services.complaints import ComplaintService
from src.services.repository import CampusRepository

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


def get_repository(request: Request) -> CampusRepository:
    return request.app.state.repository


def get_complaint_service(request: Request) -> ComplaintService:
    return request.app.state.complaint_service


async def get_identity(
    request: Request,
    user_id: str | None = Security(_user_id_header),
    repository: CampusRepository = Depends(get_repository),
) -> Identity:
    """FastAPI dependency returning the caller's :class:`Identity`.

    Raises 401 when the header is missing or names an unknown user.

    Usage::

        @router.get("/complaints")
        async def list_complaints(identity: Identity = Depends(get_identity)): ...
    """
    client_ip = request.client.host if request.client else "unknown"

    if not user_id or not user_id.strip():
        logger.warning("auth.missing_user_id", path=request.url.path, client_ip=client_ip)
        raise HTTPException(
            status_code=401,
            detail="Missing X-User-Id header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    user = await repository.find_user_by_id(user_id.strip())
    if user is None:
        logger.warning("auth.unknown_user", path=request.url.path, client_ip=client_ip)
        raise HTTPException(
            status_code=401,
            detail="Unknown user.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    structlog.contextvars.bind_contextvars(user_id=user.id, role=str(user.role))
    return user.identity


async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    """Narrow :func:`get_identity` to admins; 403 for everyone else."""
    if not identity.is_admin:
        logger.warning("auth.admin_required", user_id=identity.id, role=identity.role)
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return identity
