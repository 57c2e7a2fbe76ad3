"""Event notification bridge."""

from .bridge import EventBridge, NotificationCallback, QueueSubscription, Subscription
from .models import EventKind, Notification
from .reporter import TaskReporter

__all__ = [
    "EventBridge",
    "EventKind",
    "Notification",
    "NotificationCallback",
    "QueueSubscription",
    "Subscription",
    "TaskReporter",
]
