"""
Adherence Timing
Classifies when a dose was taken relative to its scheduled time and
aggregates adherence statistics.

Two windows are supported and neither replaces the other:

* asymmetric: "timely" from 5 minutes early up to 15 minutes late
  (both bounds exclusive), "too_early" at 5 minutes early or more,
  otherwise "late". Computed in seconds.
* symmetric: "on_time" within 10 minutes either side (inclusive),
  "early" beyond 10 minutes early, "late" beyond 10 minutes late.
  Computed in whole minutes, rounded half up.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, tzinfo
from typing import Any, Iterable, List, Optional, Sequence

from models.pill import AdherenceStats, parse_time_of_day

ASYMMETRIC_EARLY_SECONDS = -300
ASYMMETRIC_LATE_SECONDS = 900
SYMMETRIC_TOLERANCE_MINUTES = 10

ON_TIME = "on_time"
EARLY = "early"
LATE = "late"
TIMELY = "timely"
TOO_EARLY = "too_early"

# Asymmetric statuses folded onto the symmetric names for stats
_STATUS_BUCKETS = {
    ON_TIME: ON_TIME,
    TIMELY: ON_TIME,
    EARLY: EARLY,
    TOO_EARLY: EARLY,
    LATE: LATE,
}

_LOG_WORDS = {
    ON_TIME: "on time",
    TIMELY: "timely",
    EARLY: "early",
    TOO_EARLY: "too early",
    LATE: "LATE",
}


@dataclass
class DoseTiming:
    """
    Result of classifying one dose.

    Attributes:
        status: One of on_time/early/late or timely/too_early/late
        minutes_difference: Signed minutes between taking and schedule (negative = early)
        scheduled_time: The "HH:MM" the dose was due
        taken_at: When the dose was taken
    """
    status: str
    minutes_difference: int
    scheduled_time: str
    taken_at: datetime


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def scheduled_instant(taken_at: datetime, at: dt_time) -> datetime:
    """The scheduled time-of-day on the same calendar day (and zone) as taken_at"""
    naive = datetime.combine(taken_at.date(), at)
    tz = taken_at.tzinfo
    if tz is None:
        return naive
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def classify_asymmetric(now: datetime, scheduled: datetime) -> str:
    diff = (now - scheduled).total_seconds()
    if ASYMMETRIC_EARLY_SECONDS < diff < ASYMMETRIC_LATE_SECONDS:
        return TIMELY
    if diff <= ASYMMETRIC_EARLY_SECONDS:
        return TOO_EARLY
    return LATE


def minutes_difference(scheduled_time: str, taken_at: datetime) -> int:
    scheduled = scheduled_instant(taken_at, parse_time_of_day(scheduled_time))
    return _round_half_up((taken_at - scheduled).total_seconds() / 60)


def classify_symmetric(scheduled_time: str, taken_at: datetime) -> str:
    diff = minutes_difference(scheduled_time, taken_at)
    if diff > SYMMETRIC_TOLERANCE_MINUTES:
        return LATE
    if diff < -SYMMETRIC_TOLERANCE_MINUTES:
        return EARLY
    return ON_TIME


def classify_dose(scheduled_time: str, taken_at: datetime, window: str = "symmetric") -> DoseTiming:
    """Classify a dose with the configured window"""
    if window == "asymmetric":
        scheduled = scheduled_instant(taken_at, parse_time_of_day(scheduled_time))
        status = classify_asymmetric(taken_at, scheduled)
    elif window == "symmetric":
        status = classify_symmetric(scheduled_time, taken_at)
    else:
        raise ValueError(f"Unknown timing window: {window}")

    return DoseTiming(
        status=status,
        minutes_difference=minutes_difference(scheduled_time, taken_at),
        scheduled_time=scheduled_time,
        taken_at=taken_at,
    )


def format_log_message(pill_name: str, timing: DoseTiming) -> str:
    word = _LOG_WORDS.get(timing.status, timing.status)
    return f"Pill {pill_name} taken {word} at {timing.taken_at.strftime('%Y-%m-%d %H:%M:%S')}"


def nearest_scheduled_time(times: Sequence[str], taken_at: datetime) -> str:
    """Pick the reminder time closest to taken_at on its day (earlier wins ties)"""
    if not times:
        raise ValueError("Pill has no reminder times")
    return min(
        sorted(times),
        key=lambda t: abs((taken_at - scheduled_instant(taken_at, parse_time_of_day(t))).total_seconds()),
    )


def is_due_on(created_at: Optional[str], interval_days: int, day: date, tz: Optional[tzinfo] = None) -> bool:
    """Whether a pill repeating every `interval_days` since creation is due on `day`

    `day` is a calendar day in `tz`; the creation instant is moved into the
    same zone before taking its date.
    """
    if interval_days <= 1 or not created_at:
        return True
    created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    if tz is not None and created.tzinfo is not None:
        created = created.astimezone(tz)
    return (day - created.date()).days % interval_days == 0


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def sort_by_time(items: Iterable[Any]) -> List[Any]:
    """Stable sort by "time" string; a missing time sorts as midnight"""
    return sorted(items, key=lambda item: _field(item, "time") or "00:00")


def compute_adherence_stats(pills: Sequence[Any], logs: Iterable[Any] = ()) -> AdherenceStats:
    total = len(pills)
    taken = sum(1 for pill in pills if _field(pill, "taken", False))
    rate = _round_half_up(taken / total * 100) if total > 0 else 0

    counts = {ON_TIME: 0, EARLY: 0, LATE: 0}
    for log in logs:
        bucket = _STATUS_BUCKETS.get(_field(log, "status"))
        if bucket:
            counts[bucket] += 1

    return AdherenceStats(
        total=total,
        taken=taken,
        missed=total - taken,
        adherence_rate=rate,
        on_time=counts[ON_TIME],
        early=counts[EARLY],
        late=counts[LATE],
    )
