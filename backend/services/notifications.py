"""
Reminder Scheduler
Keeps the pending pill reminders and hands them to a dispatcher when due.

Every reminder time of a pill gets two entries: the primary one at the next
due occurrence of that time of day, and a backup one day later in case the
primary is missed. Identifiers are deterministic so scheduling a pill again
replaces its entries and deleting a pill cancels both.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

import pytz

from config.settings import get_settings
from models.pill import Pill, parse_time_of_day
from services.timing import is_due_on

logger = logging.getLogger(__name__)


@dataclass
class ScheduledReminder:
    """
    A single pending reminder.

    Attributes:
        identifier: pill-<id>-<index> or pill-<id>-<index>-backup
        pill_id: Pill the reminder belongs to
        user_id: Owner of the pill
        pill_name: Name shown in the reminder
        time: Reminder time of day ("HH:MM")
        index: Position of the time in the pill's reminder times
        fire_at: When the reminder is due (timezone aware)
        interval_days: Days between occurrences
        backup: True for the day-after duplicate
    """
    identifier: str
    pill_id: str
    user_id: str
    pill_name: str
    time: str
    index: int
    fire_at: datetime
    interval_days: int = 1
    backup: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "identifier": self.identifier,
            "pill_id": self.pill_id,
            "pill_name": self.pill_name,
            "time": self.time,
            "fire_at": self.fire_at.isoformat(),
            "backup": self.backup,
        }


Dispatcher = Callable[[ScheduledReminder], Awaitable[None]]


async def log_reminder(reminder: ScheduledReminder) -> None:
    """Default dispatcher: write the reminder to the log"""
    kind = "backup reminder" if reminder.backup else "reminder"
    logger.info(f"💊 Time to take {reminder.pill_name} ({reminder.time}) - {kind} for user {reminder.user_id}")


def reminder_identifier(pill_id: str, index: int, backup: bool = False) -> str:
    identifier = f"pill-{pill_id}-{index}"
    return f"{identifier}-backup" if backup else identifier


class ReminderScheduler:
    """In-process table of pending reminders"""

    def __init__(self, timezone: str = "UTC", dispatcher: Optional[Dispatcher] = None):
        self.tz = pytz.timezone(timezone)
        self.dispatcher = dispatcher or log_reminder
        self._entries: Dict[str, ScheduledReminder] = {}

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def _localize(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            return self.tz.localize(moment)
        return moment.astimezone(self.tz)

    def _at(self, day: date, time_of_day: str) -> datetime:
        return self.tz.localize(datetime.combine(day, parse_time_of_day(time_of_day)))

    def next_occurrence(self, time_of_day: str, after: datetime) -> datetime:
        """First instant strictly after `after` that falls on the given time of day"""
        after = self._localize(after)
        candidate = self._at(after.date(), time_of_day)
        if candidate <= after:
            candidate = self._at(after.date() + timedelta(days=1), time_of_day)
        return candidate

    def _arm(self, pill_id: str, user_id: str, pill_name: str, index: int, time_of_day: str,
             interval_days: int, occurrence: datetime) -> List[ScheduledReminder]:
        primary = ScheduledReminder(
            identifier=reminder_identifier(pill_id, index),
            pill_id=pill_id,
            user_id=user_id,
            pill_name=pill_name,
            time=time_of_day,
            index=index,
            fire_at=occurrence,
            interval_days=interval_days,
        )
        backup = ScheduledReminder(
            identifier=reminder_identifier(pill_id, index, backup=True),
            pill_id=pill_id,
            user_id=user_id,
            pill_name=pill_name,
            time=time_of_day,
            index=index,
            fire_at=self._at(occurrence.date() + timedelta(days=1), time_of_day),
            interval_days=interval_days,
            backup=True,
        )
        self._entries[primary.identifier] = primary
        self._entries[backup.identifier] = backup
        return [primary, backup]

    def schedule_pill(self, pill: Pill, now: Optional[datetime] = None) -> List[ScheduledReminder]:
        """(Re)schedule the primary and backup reminders for every time of a pill

        The primary lands on the first upcoming day the pill is due, counting
        `interval_days` from its creation day.
        """
        now = self._localize(now) if now else self.now()
        self.cancel_pill(pill.id)

        scheduled = []
        for index, time_of_day in enumerate(pill.times or ([pill.time] if pill.time else [])):
            occurrence = self.next_occurrence(time_of_day, now)
            while not is_due_on(pill.created_at, pill.interval_days, occurrence.date(), self.tz):
                occurrence = self._at(occurrence.date() + timedelta(days=1), time_of_day)
            scheduled.extend(
                self._arm(pill.id, pill.user_id, pill.name, index, time_of_day, pill.interval_days, occurrence)
            )

        logger.info(f"Scheduled {len(scheduled)} reminders for pill {pill.name} ({pill.id})")
        return scheduled

    def cancel_pill(self, pill_id: str) -> int:
        """Drop every pending reminder of a pill, returning how many were removed"""
        identifiers = [key for key, entry in self._entries.items() if entry.pill_id == pill_id]
        for identifier in identifiers:
            del self._entries[identifier]
        if identifiers:
            logger.info(f"Cancelled {len(identifiers)} reminders for pill {pill_id}")
        return len(identifiers)

    def get(self, identifier: str) -> Optional[ScheduledReminder]:
        return self._entries.get(identifier)

    def pending(self) -> List[ScheduledReminder]:
        return sorted(self._entries.values(), key=lambda entry: (entry.fire_at, entry.identifier))

    def pending_for_user(self, user_id: str) -> List[ScheduledReminder]:
        return [entry for entry in self.pending() if entry.user_id == user_id]

    def clear(self) -> None:
        self._entries.clear()

    def due(self, now: Optional[datetime] = None) -> List[ScheduledReminder]:
        """Remove and return the reminders due at `now`.

        A fired backup re-arms its pair at the next occurrence that keeps the
        pill's day interval, so reminders continue without being rescheduled.
        """
        now = self._localize(now) if now else self.now()
        fired = [entry for entry in self.pending() if entry.fire_at <= now]

        for entry in fired:
            self._entries.pop(entry.identifier, None)

        for entry in fired:
            if not entry.backup:
                continue
            occurrence_day = entry.fire_at.date() - timedelta(days=1)
            occurrence = self._at(occurrence_day, entry.time)
            while occurrence <= now:
                occurrence_day += timedelta(days=entry.interval_days)
                occurrence = self._at(occurrence_day, entry.time)
            self._arm(entry.pill_id, entry.user_id, entry.pill_name, entry.index, entry.time,
                      entry.interval_days, occurrence)

        return fired

    async def dispatch_due(self, now: Optional[datetime] = None) -> List[ScheduledReminder]:
        fired = self.due(now)
        for reminder in fired:
            try:
                await self.dispatcher(reminder)
            except Exception as e:
                logger.error(f"Reminder dispatch failed for {reminder.identifier}: {e}", exc_info=True)
        return fired

    async def run(self, poll_seconds: float) -> None:
        """Poll for due reminders until cancelled"""
        logger.info(f"Reminder loop started (every {poll_seconds}s, {self.tz.zone})")
        while True:
            await self.dispatch_due()
            await asyncio.sleep(poll_seconds)


_scheduler: Optional[ReminderScheduler] = None


def get_reminder_scheduler() -> ReminderScheduler:
    """Get reminder scheduler singleton"""
    global _scheduler
    if _scheduler is None:
        _scheduler = ReminderScheduler(timezone=get_settings().reminder_timezone)
    return _scheduler
