from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from timetable_engine.schemas.conflict import Severity


class RuleKind(str, Enum):
    teacher_overlap = "teacher_overlap"
    room_overlap = "room_overlap"
    class_overlap = "class_overlap"
    teacher_availability = "teacher_availability"
    weekly_hours = "weekly_hours"
    travel_time = "travel_time"
    subject_distribution = "subject_distribution"
    schedule_compactness = "schedule_compactness"
    room_suitability = "room_suitability"
    room_capacity = "room_capacity"
    teacher_daily_load = "teacher_daily_load"
    teacher_weekly_load = "teacher_weekly_load"
    class_daily_load = "class_daily_load"
    subject_continuity = "subject_continuity"
    teacher_preferences = "teacher_preferences"


ConstraintKind = Literal["hard", "soft"]


class ConstraintDefinition(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    kind: ConstraintKind
    rule: RuleKind
    # Used for reporting order only; evaluation never short-circuits on it.
    priority: int = Field(default=50, ge=0, le=1000)
    description: str = ""
    is_active: bool = True


class ConstraintViolation(BaseModel):
    constraint_id: str
    description: str
    severity: Severity
    affected_entries: list[str] = Field(default_factory=list)


class ConstraintResult(BaseModel):
    is_valid: bool
    violations: list[ConstraintViolation] = Field(default_factory=list)
    penalty: float = Field(default=0.0, ge=0.0)
