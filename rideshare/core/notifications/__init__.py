# rideshare/core/notifications/__init__.py
from rideshare.core.notifications.service import NotificationService

__all__ = ["NotificationService"]
