from .contact_repository import ContactRepository
from .notification_repository import NotificationRepository

__all__ = ["ContactRepository", "NotificationRepository"]
