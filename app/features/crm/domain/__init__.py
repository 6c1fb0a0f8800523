"""
Domain subpackage for CRM contacts.
"""

from .models import EMAIL_PATTERN, Contact, ContactStatus, FollowupUpdate, NotificationType

__all__ = ["EMAIL_PATTERN", "Contact", "ContactStatus", "FollowupUpdate", "NotificationType"]
