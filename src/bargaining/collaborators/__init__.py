"""Collaborator contracts and post-commit side-effect dispatch."""

from bargaining.collaborators.contracts import (
    CatalogReference,
    CatalogService,
    ChatBridge,
    NotificationEvent,
    NotificationGateway,
    NotificationType,
)
from bargaining.collaborators.dispatch import (
    LoggingNotificationGateway,
    SideEffectDispatcher,
    proposal_notification,
    response_notification,
)

__all__ = [
    "CatalogReference",
    "CatalogService",
    "ChatBridge",
    "LoggingNotificationGateway",
    "NotificationEvent",
    "NotificationGateway",
    "NotificationType",
    "SideEffectDispatcher",
    "proposal_notification",
    "response_notification",
]
