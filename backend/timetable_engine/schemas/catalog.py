from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from timetable_engine.schemas.time_slot import TIME_PATTERN, TimeSlot, parse_time_to_minutes


class RoomType(str, Enum):
    classroom = "classroom"
    lab = "lab"
    gym = "gym"
    library = "library"
    special = "special"


class TeacherPreferences(BaseModel):
    preferred_time_slots: list[TimeSlot] = Field(default_factory=list)
    avoided_time_slots: list[TimeSlot] = Field(default_factory=list)
    preferred_classes: list[str] = Field(default_factory=list)
    max_consecutive_hours: int = Field(default=4, ge=1, le=12)
    preferred_days: list[int] = Field(default_factory=list, max_length=7)

    @field_validator("preferred_days")
    @classmethod
    def validate_days(cls, value: list[int]) -> list[int]:
        invalid = [day for day in value if day < 0 or day > 6]
        if invalid:
            raise ValueError(f"Invalid preferred day(s): {', '.join(str(day) for day in invalid)}")
        return sorted(set(value))


class Teacher(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr | None = None
    subjects: list[str] = Field(default_factory=list)
    # An empty list means the teacher can be placed at any time.
    availability: list[TimeSlot] = Field(default_factory=list)
    preferences: TeacherPreferences = Field(default_factory=TeacherPreferences)
    travel_time: dict[str, int] = Field(default_factory=dict)
    max_hours_per_day: int = Field(default=6, ge=1, le=12)
    total_weekly_hours: int = Field(default=18, ge=1, le=60)

    @field_validator("travel_time")
    @classmethod
    def validate_travel_time(cls, value: dict[str, int]) -> dict[str, int]:
        negative = [site for site, minutes in value.items() if minutes < 0]
        if negative:
            raise ValueError(f"Travel time cannot be negative for site(s): {', '.join(negative)}")
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ClassSchedulePolicy(BaseModel):
    type: Literal["normal", "extended"] = "normal"
    afternoon_sessions: bool = False
    # Daily lunch break, applied to every teaching day.
    lunch_start: str | None = None
    lunch_end: str | None = None
    max_hours_per_day: int = Field(default=6, ge=1, le=12)

    @field_validator("lunch_start", "lunch_end")
    @classmethod
    def validate_lunch_time(cls, value: str | None) -> str | None:
        if value is not None and not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_lunch_bounds(self) -> "ClassSchedulePolicy":
        if (self.lunch_start is None) != (self.lunch_end is None):
            raise ValueError("lunch_start and lunch_end must be given together")
        if self.lunch_start is not None and self.lunch_end is not None:
            if parse_time_to_minutes(self.lunch_end) <= parse_time_to_minutes(self.lunch_start):
                raise ValueError("lunch_end must be after lunch_start")
        return self


class SchoolClass(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=100)
    section: str = Field(default="A", min_length=1, max_length=20)
    year: int = Field(default=1, ge=1, le=8)
    students_count: int = Field(default=20, ge=1, le=60)
    site_id: str | None = Field(default=None, max_length=36)
    schedule: ClassSchedulePolicy = Field(default_factory=ClassSchedulePolicy)
    special_needs: list[str] = Field(default_factory=list)


class Subject(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    code: str = Field(min_length=1, max_length=50)
    weekly_hours: dict[str, int] = Field(default_factory=dict)
    requires_special_room: bool = False
    special_room_type: RoomType | None = None
    can_be_split: bool = True
    requires_continuity: bool = False

    @field_validator("weekly_hours")
    @classmethod
    def validate_weekly_hours(cls, value: dict[str, int]) -> dict[str, int]:
        invalid = [class_id for class_id, hours in value.items() if hours < 0 or hours > 10]
        if invalid:
            raise ValueError(f"Weekly hours must be between 0 and 10 for class(es): {', '.join(invalid)}")
        return value

    @model_validator(mode="after")
    def validate_special_room(self) -> "Subject":
        if self.requires_special_room and self.special_room_type is None:
            raise ValueError("special_room_type is required when requires_special_room is set")
        return self


class Room(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=100)
    type: RoomType = RoomType.classroom
    capacity: int = Field(default=30, ge=1, le=1000)
    equipment: list[str] = Field(default_factory=list)
    site_id: str | None = Field(default=None, max_length=36)


class Site(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    address: str | None = Field(default=None, max_length=500)
    travel_time_to_other_sites: dict[str, int] = Field(default_factory=dict)


class Catalog(BaseModel):
    """Everything one optimization run reads. Never mutated by the engine."""

    teachers: list[Teacher] = Field(default_factory=list)
    classes: list[SchoolClass] = Field(default_factory=list)
    subjects: list[Subject] = Field(default_factory=list)
    rooms: list[Room] = Field(default_factory=list)
    sites: list[Site] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self) -> "Catalog":
        for label, items in (
            ("teacher", self.teachers),
            ("class", self.classes),
            ("subject", self.subjects),
            ("room", self.rooms),
            ("site", self.sites),
        ):
            duplicates = sorted(item_id for item_id, count in Counter(item.id for item in items).items() if count > 1)
            if duplicates:
                raise ValueError(f"Duplicate {label} id(s): {', '.join(duplicates)}")

        subject_ids = {subject.id for subject in self.subjects}
        class_ids = {item.id for item in self.classes}
        errors: list[str] = []
        for teacher in self.teachers:
            unknown = [subject_id for subject_id in teacher.subjects if subject_id not in subject_ids]
            if unknown:
                errors.append(f"teacher {teacher.id} references unknown subject(s) {', '.join(unknown)}")
            unknown = [class_id for class_id in teacher.preferences.preferred_classes if class_id not in class_ids]
            if unknown:
                errors.append(f"teacher {teacher.id} prefers unknown class(es) {', '.join(unknown)}")
        for subject in self.subjects:
            unknown = [class_id for class_id in subject.weekly_hours if class_id not in class_ids]
            if unknown:
                errors.append(f"subject {subject.id} assigns hours to unknown class(es) {', '.join(unknown)}")

        if self.sites:
            site_ids = {site.id for site in self.sites}
            for item in [*self.classes, *self.rooms]:
                if item.site_id is not None and item.site_id not in site_ids:
                    errors.append(f"{item.id} references unknown site {item.site_id}")

        if errors:
            raise ValueError("; ".join(errors))
        return self
