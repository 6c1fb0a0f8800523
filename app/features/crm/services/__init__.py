"""
Service layer for CRM contacts.
"""

from .followup_service import FollowupService, compute_followup, followup_service, local_date
from .reminder_service import ReminderService, reminder_service

__all__ = [
    "FollowupService",
    "ReminderService",
    "compute_followup",
    "followup_service",
    "local_date",
    "reminder_service",
]
