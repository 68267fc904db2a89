from __future__ import annotations

from functools import lru_cache
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@lru_cache(maxsize=4096)
def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    hours = value // 60
    minutes = value % 60
    return f"{hours:02d}:{minutes:02d}"


class TimeSlot(BaseModel):
    """A bounded interval on one weekday. Day 0 is Monday."""

    model_config = ConfigDict(frozen=True)

    day: int = Field(ge=0, le=6)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def validate_time(cls, value: str) -> str:
        if isinstance(value, str) and re.match(r"^\d:[0-5]\d$", value.strip()):
            value = f"0{value.strip()}"
        if not isinstance(value, str) or not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_time_order(self) -> "TimeSlot":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)

    def __str__(self) -> str:
        return f"{DAY_NAMES[self.day]} {self.start_time}-{self.end_time}"


class WeeklyGrid(BaseModel):
    day_count: int = Field(default=6, ge=1, le=7)
    day_start: str = "08:00"
    day_end: str = "17:00"
    slot_minutes: int = Field(default=60, ge=30, le=180)
    lunch_start: str | None = "13:00"
    lunch_end: str | None = "14:00"

    @field_validator("day_start", "day_end", "lunch_start", "lunch_end")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is not None and not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_bounds(self) -> "WeeklyGrid":
        start = parse_time_to_minutes(self.day_start)
        end = parse_time_to_minutes(self.day_end)
        if end - start < self.slot_minutes:
            raise ValueError("day_end must leave room for at least one slot after day_start")
        if (self.lunch_start is None) != (self.lunch_end is None):
            raise ValueError("lunch_start and lunch_end must be given together")
        if self.lunch_start is not None and self.lunch_end is not None:
            if parse_time_to_minutes(self.lunch_end) <= parse_time_to_minutes(self.lunch_start):
                raise ValueError("lunch_end must be after lunch_start")
        return self
