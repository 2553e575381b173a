import re
from datetime import time as dt_time
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, field_validator, model_validator

# Pill: a medication with one or more daily reminder times

TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})$")
MIN_NAME_LENGTH = 2


def parse_time_of_day(value: str) -> dt_time:
    """Parse an "HH:MM" string, raising ValueError for anything else"""
    match = TIME_OF_DAY.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return dt_time(hour, minute)


def normalize_time(value: str) -> str:
    return parse_time_of_day(value).strftime("%H:%M")


class PillCreate(BaseModel):
    name: str
    times: List[str] = Field(..., min_length=1)
    interval_days: int = Field(1, ge=1)

    @model_validator(mode="before")
    @classmethod
    def single_time(cls, data: Any) -> Any:
        # Clients that only know one reminder time send "time"
        if isinstance(data, dict) and "times" not in data and data.get("time"):
            data = {**data, "times": [data["time"]]}
        return data

    @field_validator("name")
    @classmethod
    def name_length(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Pill name is required")
        if len(value) < MIN_NAME_LENGTH:
            raise ValueError(f"Pill name must be at least {MIN_NAME_LENGTH} characters")
        return value

    @field_validator("times")
    @classmethod
    def valid_times(cls, value: List[str]) -> List[str]:
        return sorted({normalize_time(t) for t in value})


class PillStatusUpdate(BaseModel):
    taken: bool
    scheduled_time: Optional[str] = None

    @field_validator("scheduled_time")
    @classmethod
    def valid_time(cls, value: Optional[str]) -> Optional[str]:
        return normalize_time(value) if value is not None else None


class Pill(BaseModel):
    id: str
    user_id: str
    name: str
    time: Optional[str] = None
    times: List[str] = Field(default_factory=list)
    interval_days: int = 1
    taken: bool = False
    taken_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Pill":
        """Build a pill from a pills table row, tolerating single-time rows"""
        data = dict(row)
        times = data.get("times") or ([data["time"]] if data.get("time") else [])
        data["times"] = times
        data["time"] = data.get("time") or (times[0] if times else None)
        data["interval_days"] = data.get("interval_days") or 1
        data["taken"] = bool(data.get("taken"))
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields})


class PillLog(BaseModel):
    id: Optional[str] = None
    pill_id: str
    user_id: str
    pill_name: Optional[str] = None
    status: str
    minutes_difference: int
    scheduled_time: str
    taken_at: str
    message: Optional[str] = None
    created_at: Optional[str] = None


class PillStatusResult(BaseModel):
    pill: Pill
    log: Optional[PillLog] = None


class ScheduleEntry(BaseModel):
    pill_id: str
    name: str
    time: str
    taken: bool


class AdherenceStats(BaseModel):
    total: int
    taken: int
    missed: int
    adherence_rate: int
    on_time: int = 0
    early: int = 0
    late: int = 0
