"""
CRM contacts feature package: contact persistence, follow-up scheduling
and due reminders.
"""

from .api.router import router as crm_router  # noqa: F401
from .services.followup_service import FollowupService, followup_service  # noqa: F401
from .services.reminder_service import ReminderService, reminder_service  # noqa: F401
