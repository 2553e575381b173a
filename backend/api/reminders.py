from fastapi import APIRouter, Depends

from api.dependencies import get_scheduler
from services.notifications import ReminderScheduler
from utils.auth import CurrentUser, get_current_user_dependency

router = APIRouter(prefix="/api/reminders", tags=["reminders"])


@router.get("")
async def pending_reminders(
    current_user: CurrentUser = Depends(get_current_user_dependency),
    scheduler: ReminderScheduler = Depends(get_scheduler),
):
    """Reminders still waiting to fire for the caller, soonest first"""
    return [reminder.to_dict() for reminder in scheduler.pending_for_user(current_user.id)]
