"""
Alert Delivery Module
Alert classification, bounded per-profile storage and notification sinks.
"""
from .alert_store import AlertStore
from .alerter import NOTIFICATION_TITLE, AlertBuilder
from .channels import (
    CallbackNotificationSink,
    LogNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
)
from .models import AlertPriority, AlertType, MatchAlert, NotificationPayload

__all__ = [
    # Alerting
    "AlertBuilder",
    "AlertStore",
    "NOTIFICATION_TITLE",
    # Sinks
    "CallbackNotificationSink",
    "LogNotificationSink",
    "NotificationSink",
    "WebhookNotificationSink",
    # Models
    "AlertPriority",
    "AlertType",
    "MatchAlert",
    "NotificationPayload",
]
