"""In-app notification records and outbound delivery models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from src.models.enums import DeliveryChannel, DeliveryState, NotificationType


class Notification(BaseModel):
    """An in-app notification shown on a user's dashboard.

    Created as a side effect of complaint lifecycle events.  Only the
    ``read`` flag ever changes afterwards, and only by the recipient.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    recipient_id: str
    complaint_id: str
    message: str
    type: NotificationType = NotificationType.STATUS_UPDATE
    read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class OutboundMessage(BaseModel):
    """One e-mail or SMS to be handed to the notifier."""

    recipient_id: str
    channel: DeliveryChannel
    address: str  # e-mail address or phone number
    subject: str = ""
    body: str


class DeliveryOutcome(BaseModel):
    """Result of a single send attempt.

    Notifier implementations report failures through this model instead
    of raising, so a fanout batch always runs to completion.
    """

    channel: DeliveryChannel
    to: str  # masked address
    status: DeliveryState
    provider: str = ""
    provider_message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status in (DeliveryState.SENT, DeliveryState.MOCK)
