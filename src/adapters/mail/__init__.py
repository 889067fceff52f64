"""Notification adapters - Console and HTTP mail service implementations."""

from .console import ConsoleNotificationSender
from .http import HttpNotificationSender

__all__ = ["ConsoleNotificationSender", "HttpNotificationSender"]
