"""Notification adapters - Customer email delivery."""

from .console import ConsoleNotificationSender

__all__ = ["ConsoleNotificationSender"]
