"""Notification outbox for collaboration events."""

from .dispatcher import NotificationDispatcher, NotificationType

__all__ = ["NotificationDispatcher", "NotificationType"]
