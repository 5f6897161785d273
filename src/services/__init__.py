"""Campus complaints service layer: visibility, persistence, fanout, delivery."""

from __future__ import annotations

from src.services.complaints import ComplaintService
from src.services.errors import (
    AccessDenied,
    CampusError,
    Conflict,
    NotFound,
    NotificationDeliveryError,
    PersistenceError,
    ValidationError,
)
from src.services.fanout import FanoutPlan, NotificationDispatcher, NotificationFanout
from src.services.notifier import CampusNotifier, Notifier, SMTPEmailSender
from src.services.repository import CampusRepository
from src.services.store import DocumentStore, InMemoryStoreBackend, RedisStoreBackend
from src.services.visibility import QueryPredicate, VisibilityResolver

__all__ = [
    "AccessDenied",
    "CampusError",
    "CampusNotifier",
    "CampusRepository",
    "ComplaintService",
    "Conflict",
    "DocumentStore",
    "FanoutPlan",
    "InMemoryStoreBackend",
    "NotFound",
    "NotificationDeliveryError",
    "NotificationDispatcher",
    "NotificationFanout",
    "Notifier",
    "PersistenceError",
    "QueryPredicate",
    "RedisStoreBackend",
    "SMTPEmailSender",
    "ValidationError",
    "VisibilityResolver",
]
