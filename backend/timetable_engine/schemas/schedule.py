from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
import uuid

from pydantic import BaseModel, ConfigDict, Field

from timetable_engine.schemas.conflict import Conflict
from timetable_engine.schemas.time_slot import TimeSlot


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleEntry(BaseModel):
    # Frozen so candidates can share entries without aliasing bugs; edits go through model_copy.
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1, max_length=64)
    teacher_id: str = Field(min_length=1, max_length=36)
    class_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    room_id: str = Field(min_length=1, max_length=36)
    time_slot: TimeSlot
    type: Literal["regular", "substitution", "support"] = "regular"


class Schedule(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(default="Generated Schedule", min_length=1, max_length=200)
    entries: list[ScheduleEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)
    is_active: bool = False
    fitness_score: float | None = None
    conflicts: list[Conflict] = Field(default_factory=list)


class ScheduleMetrics(BaseModel):
    total_conflicts: int = Field(ge=0)
    hard_constraint_violations: int = Field(ge=0)
    soft_constraint_violations: int = Field(ge=0)
    teacher_satisfaction: float = Field(ge=0.0, le=1.0)
    room_utilization: float = Field(ge=0.0, le=1.0)
    travel_optimization: float = Field(ge=0.0, le=1.0)
    overall_score: float = Field(ge=0.0)
