"""Complaint endpoints for the campus complaints API v1.

Students and staff file complaints; staff triage the ones in their
school and department; admins see, assign and manage everything.  All
access decisions are made by the complaint service, which raises domain
errors that ``src.main`` maps to HTTP responses.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.middleware.auth import get_complaint_service, get_identity, require_admin
from src.models.complaint import (
    AssignRequest,
    Complaint,
    ComplaintCreateRequest,
    ComplaintStats,
    ComplaintUpdateRequest,
    FeedbackRequest,
    StatusUpdateRequest,
)
from src.models.identity import Identity
from src.services.complaints import ComplaintService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.post("", response_model=Complaint, status_code=201)
async def create_complaint(
    body: ComplaintCreateRequest,
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    """Submit a new complaint.

    The complaint is scoped to the caller's school and department.
    Admins, staff of that department and the caller are notified.
    """
    return await service.create_complaint(identity, body)


@router.get("", response_model=list[Complaint])
async def list_complaints(
    status: str | None = Query(default=None, description="Filter by status"),
    category: str | None = Query(default=None, description="Filter by category"),
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> list[Complaint]:
    """List the complaints visible to the caller, newest first."""
    return await service.list_complaints(identity, status=status, category=category)


# Declared before ``/{complaint_id}`` so "stats" is not taken for an id.
@router.get("/stats/summary", response_model=ComplaintStats)
async def complaint_stats(
    identity: Identity = Depends(require_admin),
    service: ComplaintService = Depends(get_complaint_service),
) -> ComplaintStats:
    """Complaint counts per status (admin only)."""
    return await service.stats_summary(identity)


# ---------------------------------------------------------------------------
# Single complaint
# ---------------------------------------------------------------------------


@router.get("/{complaint_id}", response_model=Complaint)
async def get_complaint(
    complaint_id: str,
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    return await service.get_complaint(identity, complaint_id)


@router.put("/{complaint_id}/status", response_model=Complaint)
async def update_complaint_status(
    complaint_id: str,
    body: StatusUpdateRequest,
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    """Change a complaint's status; the owner is notified when it changes."""
    return await service.update_status(identity, complaint_id, body)


@router.put("/{complaint_id}/assign", response_model=Complaint)
async def assign_complaint(
    complaint_id: str,
    body: AssignRequest,
    identity: Identity = Depends(require_admin),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    return await service.assign_complaint(identity, complaint_id, body)


@router.put("/{complaint_id}", response_model=Complaint)
async def update_complaint(
    complaint_id: str,
    body: ComplaintUpdateRequest,
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    """Partially update a complaint.

    Staff may change ``status`` and ``admin_notes``; admins may change
    any field.  Sending a field you may not change rejects the request.
    """
    return await service.update_complaint(identity, complaint_id, body)


@router.delete("/{complaint_id}", response_model=MessageResponse)
async def delete_complaint(
    complaint_id: str,
    identity: Identity = Depends(require_admin),
    service: ComplaintService = Depends(get_complaint_service),
) -> MessageResponse:
    await service.delete_complaint(identity, complaint_id)
    return MessageResponse(message="Complaint deleted successfully")


@router.post("/{complaint_id}/feedback", response_model=Complaint)
async def submit_feedback(
    complaint_id: str,
    body: FeedbackRequest,
    identity: Identity = Depends(get_identity),
    service: ComplaintService = Depends(get_complaint_service),
) -> Complaint:
    """Rate how a complaint was handled (owner only, once)."""
    return await service.submit_feedback(identity, complaint_id, body)
