"""
Pill Service Layer
Medication CRUD, dose logging and adherence stats on the Supabase pills tables
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

import pytz

from config.settings import get_settings
from config.supabase import SupabaseClient, SupabaseError
from models.pill import AdherenceStats, Pill, PillCreate, PillLog, PillStatusResult, ScheduleEntry
from services.notifications import ReminderScheduler
from services.timing import (
    classify_dose,
    compute_adherence_stats,
    format_log_message,
    is_due_on,
    nearest_scheduled_time,
    sort_by_time,
)
from utils.auth import CurrentUser
from utils.errors import NotAuthenticatedError, PillAlreadyTakenError, PillNotFoundError, PillTrackerError

logger = logging.getLogger(__name__)

PILLS_TABLE = "pills"
LOGS_TABLE = "pill_logs"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PillService:
    """
    Pill operations for one authenticated user.

    Every read and write is filtered by the caller's user id as well as
    running under their Supabase session.
    """

    def __init__(
        self,
        client: SupabaseClient,
        user: Optional[CurrentUser],
        scheduler: ReminderScheduler,
        timing_window: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = get_settings()
        self.client = client
        self.user = user
        self.scheduler = scheduler
        self.timing_window = timing_window or settings.timing_window
        tz = pytz.timezone(settings.reminder_timezone)
        self.clock = clock or (lambda: datetime.now(tz))

    def _require_user(self) -> CurrentUser:
        if self.user is None or not self.user.id:
            raise NotAuthenticatedError()
        return self.user

    async def _get_pill(self, pill_id: str) -> Pill:
        user = self._require_user()
        rows = await self.client.query(
            PILLS_TABLE, "GET", filters={"id": pill_id, "user_id": user.id}, access_token=user.access_token
        )
        if not rows:
            raise PillNotFoundError(pill_id)
        return Pill.from_row(rows[0])

    async def get_user_pills(self) -> List[Pill]:
        """All pills of the current user, newest first"""
        user = self._require_user()
        logger.info(f"Fetching pills for user {user.id}")
        try:
            rows = await self.client.query(
                PILLS_TABLE,
                "GET",
                filters={"user_id": user.id},
                order=("created_at", "desc"),
                access_token=user.access_token,
            )
        except SupabaseError as e:
            logger.error(f"Error fetching pills: {e.message}")
            raise

        logger.info(f"Pills fetched successfully: {len(rows)}")
        return [Pill.from_row(row) for row in rows]

    async def add_pill(self, pill_data: PillCreate) -> Pill:
        user = self._require_user()
        logger.info(f"Adding new pill: {pill_data.name}")

        now = self.clock()
        new_pill = {
            "id": str(uuid.uuid4()),
            "user_id": user.id,
            "name": pill_data.name,
            "time": pill_data.times[0],
            "times": pill_data.times,
            "interval_days": pill_data.interval_days,
            "taken": False,
            "created_at": now.astimezone(timezone.utc).isoformat(),
        }

        try:
            rows = await self.client.query(PILLS_TABLE, "POST", data=new_pill, access_token=user.access_token)
        except SupabaseError as e:
            logger.error(f"Error adding pill: {e.message}")
            raise

        pill = Pill.from_row(rows[0] if rows else new_pill)
        self.scheduler.schedule_pill(pill, now=now)
        logger.info(f"Pill added successfully: {pill.name}")
        return pill

    async def update_pill_status(
        self, pill_id: str, taken: bool, scheduled_time: Optional[str] = None
    ) -> PillStatusResult:
        """Mark a pill taken (appending a dose log) or not taken"""
        user = self._require_user()
        pill = await self._get_pill(pill_id)
        logger.info(f"Updating pill status: {pill_id} taken={taken}")

        now = self.clock()
        if taken:
            if pill.taken:
                raise PillAlreadyTakenError(pill.name)
            if scheduled_time and scheduled_time not in pill.times:
                raise PillTrackerError(f"{scheduled_time} is not a reminder time of {pill.name}")
            update = {"taken": True, "taken_at": now.isoformat(), "updated_at": utc_now_iso()}
        else:
            update = {"taken": False, "taken_at": None, "updated_at": utc_now_iso()}

        try:
            rows = await self.client.query(
                PILLS_TABLE,
                "PATCH",
                data=update,
                filters={"id": pill_id, "user_id": user.id},
                access_token=user.access_token,
            )
        except SupabaseError as e:
            logger.error(f"Error updating pill status: {e.message}")
            raise

        updated = Pill.from_row(rows[0]) if rows else pill.model_copy(update=update)

        log = None
        if taken:
            try:
                log = await self._append_log(updated, scheduled_time or nearest_scheduled_time(pill.times, now), now)
            except SupabaseError:
                # A taken pill must have its dose log
                await self._restore_status(pill)
                raise

        logger.info(f"Pill status updated successfully: {updated.name}")
        return PillStatusResult(pill=updated, log=log)

    async def _restore_status(self, pill: Pill) -> None:
        """Put the taken flag back to what it was before a failed update"""
        user = self._require_user()
        logger.warning(f"Rolling back status of pill {pill.id} after failed log write")
        try:
            await self.client.query(
                PILLS_TABLE,
                "PATCH",
                data={"taken": pill.taken, "taken_at": pill.taken_at, "updated_at": utc_now_iso()},
                filters={"id": pill.id, "user_id": user.id},
                access_token=user.access_token,
            )
        except SupabaseError as e:
            logger.error(f"Error rolling back pill status: {e.message}")

    async def _append_log(self, pill: Pill, scheduled_time: str, taken_at: datetime) -> PillLog:
        user = self._require_user()
        timing = classify_dose(scheduled_time, taken_at, self.timing_window)
        entry = PillLog(
            id=str(uuid.uuid4()),
            pill_id=pill.id,
            user_id=user.id,
            pill_name=pill.name,
            status=timing.status,
            minutes_difference=timing.minutes_difference,
            scheduled_time=timing.scheduled_time,
            taken_at=taken_at.isoformat(),
            message=format_log_message(pill.name, timing),
            created_at=utc_now_iso(),
        )

        try:
            rows = await self.client.query(
                LOGS_TABLE, "POST", data=entry.model_dump(), access_token=user.access_token
            )
        except SupabaseError as e:
            logger.error(f"Error writing pill log: {e.message}")
            raise

        logger.info(entry.message)
        return PillLog(**rows[0]) if rows else entry

    async def delete_pill(self, pill_id: str) -> bool:
        """Delete a pill with its history and cancel its reminders"""
        user = self._require_user()
        await self._get_pill(pill_id)
        logger.info(f"Deleting pill: {pill_id}")

        try:
            await self.client.query(
                LOGS_TABLE, "DELETE", filters={"pill_id": pill_id, "user_id": user.id}, access_token=user.access_token
            )
            await self.client.query(
                PILLS_TABLE, "DELETE", filters={"id": pill_id, "user_id": user.id}, access_token=user.access_token
            )
        except SupabaseError as e:
            logger.error(f"Error deleting pill: {e.message}")
            raise

        self.scheduler.cancel_pill(pill_id)
        logger.info("Pill deleted successfully")
        return True

    async def reset_daily_pills(self) -> List[Pill]:
        """Mark every pill of the user as not taken and re-arm the reminders"""
        user = self._require_user()
        logger.info("Resetting daily pills...")

        try:
            rows = await self.client.query(
                PILLS_TABLE,
                "PATCH",
                data={"taken": False, "taken_at": None, "updated_at": utc_now_iso()},
                filters={"user_id": user.id},
                access_token=user.access_token,
            )
        except SupabaseError as e:
            logger.error(f"Error resetting daily pills: {e.message}")
            raise

        pills = [Pill.from_row(row) for row in rows]
        now = self.clock()
        for pill in pills:
            self.scheduler.schedule_pill(pill, now=now)

        logger.info(f"Daily pills reset successfully: {len(pills)}")
        return pills

    async def get_today_schedule(self) -> List[ScheduleEntry]:
        """Today's doses, one entry per reminder time, ordered by time"""
        pills = await self.get_user_pills()
        now = self.clock()

        entries = [
            ScheduleEntry(pill_id=pill.id, name=pill.name, time=time_of_day, taken=pill.taken)
            for pill in pills
            if is_due_on(pill.created_at, pill.interval_days, now.date(), now.tzinfo)
            for time_of_day in pill.times
        ]

        logger.info(f"Today's schedule loaded: {len(entries)}")
        return sort_by_time(entries)

    async def get_pill_logs(self, pill_id: str, limit: Optional[int] = None) -> List[PillLog]:
        user = self._require_user()
        await self._get_pill(pill_id)
        try:
            rows = await self.client.query(
                LOGS_TABLE,
                "GET",
                filters={"pill_id": pill_id, "user_id": user.id},
                order=("taken_at", "desc"),
                limit=limit,
                access_token=user.access_token,
            )
        except SupabaseError as e:
            logger.error(f"Error fetching pill logs: {e.message}")
            raise
        return [PillLog(**row) for row in rows]

    async def get_adherence_stats(self) -> AdherenceStats:
        user = self._require_user()
        pills = await self.get_user_pills()
        try:
            logs = await self.client.query(
                LOGS_TABLE, "GET", filters={"user_id": user.id}, access_token=user.access_token
            )
        except SupabaseError as e:
            logger.error(f"Error fetching adherence logs: {e.message}")
            raise

        stats = compute_adherence_stats(pills, logs)
        logger.info(f"Adherence stats: {stats.model_dump()}")
        return stats


async def schedule_all_pills(client: SupabaseClient, scheduler: ReminderScheduler) -> int:
    """Rebuild the reminder table from every stored pill (service client only)"""
    rows = await client.query(PILLS_TABLE, "GET")
    for row in rows:
        scheduler.schedule_pill(Pill.from_row(row))
    logger.info(f"Reminders restored for {len(rows)} pills")
    return len(rows)
