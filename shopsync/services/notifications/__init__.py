"""Operator notification services."""

from shopsync.services.notifications.dispatcher import (
    NotificationDispatcher,
    NotificationService,
    OrderItemSummary,
)
from shopsync.services.notifications.email import (
    EmailDeliveryError,
    EmailNotifier,
    EmailResult,
)
from shopsync.services.notifications.telegram import TelegramNotifier

__all__ = [
    "NotificationDispatcher",
    "NotificationService",
    "OrderItemSummary",
    "EmailDeliveryError",
    "EmailNotifier",
    "EmailResult",
    "TelegramNotifier",
]
