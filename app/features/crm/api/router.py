"""
CRM routes triggered by the scheduler.
"""

from fastapi import APIRouter, Depends

from app.features.crm.services.reminder_service import reminder_service
from app.security.cron_secret import require_cron_secret

router = APIRouter(prefix="/reminders", tags=["reminders"], dependencies=[Depends(require_cron_secret)])


@router.api_route("/run", methods=["GET", "POST"])
async def run_reminders() -> dict:
    """Create followup_due notifications for today's follow-ups."""
    return await reminder_service.run()
