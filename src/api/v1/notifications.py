"""In-app notification inbox endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.middleware.auth import get_complaint_service, get_identity
from src.models.identity import Identity
from src.models.notification import Notification
from src.services.complaints import ComplaintService

router = APIRouter(prefix="/notifications", tags=["notifications"])


class MarkAllReadResponse(BaseModel):
    message: str
    updated: int


@router.get("", response_model=list[Notification])
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> list[Notification]:
    """The caller's notifications, newest first."""
    return await service.list_notifications(identity, limit=limit)


@router.put("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> MarkAllReadResponse:
    updated = await service.mark_all_notifications_read(identity)
    return MarkAllReadResponse(message="All notifications marked as read", updated=updated)


@router.put("/{notification_id}/read", response_model=Notification)
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> Notification:
    return await service.mark_notification_read(identity, notification_id)
