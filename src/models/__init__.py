from src.models.complaint import (
    AssignRequest,
    Complaint,
    ComplaintCreateRequest,
    ComplaintFeedback,
    ComplaintStats,
    ComplaintUpdateRequest,
    FeedbackRequest,
    StatusUpdateRequest,
)
from src.models.enums import (
    AccessMode,
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
    DeliveryChannel,
    DeliveryState,
    NotificationType,
    Role,
)
from src.models.identity import Identity, UserAccount
from src.models.notification import DeliveryOutcome, Notification, OutboundMessage

__all__ = [
    "AccessMode",
    "AssignRequest",
    "Complaint",
    "ComplaintCategory",
    "ComplaintCreateRequest",
    "ComplaintFeedback",
    "ComplaintPriority",
    "ComplaintStats",
    "ComplaintStatus",
    "ComplaintUpdateRequest",
    "DeliveryChannel",
    "DeliveryOutcome",
    "DeliveryState",
    "FeedbackRequest",
    "Identity",
    "Notification",
    "NotificationType",
    "OutboundMessage",
    "Role",
    "StatusUpdateRequest",
    "UserAccount",
]
