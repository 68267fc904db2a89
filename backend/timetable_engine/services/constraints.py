from __future__ import annotations

from collections import defaultdict
from typing import Callable
import logging

from timetable_engine.schemas.constraints import (
    ConstraintDefinition,
    ConstraintResult,
    ConstraintViolation,
    RuleKind,
)
from timetable_engine.schemas.schedule import Schedule
from timetable_engine.schemas.time_slot import TimeSlot
from timetable_engine.services import analysis
from timetable_engine.services.catalog_index import CatalogIndex, room_suits_subject
from timetable_engine.services.conflict_service import ConflictDetector
from timetable_engine.services.time_model import gap_minutes, overlaps

logger = logging.getLogger(__name__)

OVERLAP_PENALTY = 100.0
AVAILABILITY_PENALTY = 100.0
WEEKLY_HOURS_PENALTY = 100.0
TRAVEL_PENALTY = 30.0
DISTRIBUTION_PENALTY = 20.0
COMPACTNESS_PENALTY = 10.0
LOAD_PENALTY = 15.0
PREFERENCE_PENALTY = 5.0

# (rule, kind, priority, name, description, active by default)
_BUILTINS: tuple[tuple[RuleKind, str, int, str, str, bool], ...] = (
    (RuleKind.teacher_overlap, "hard", 100, "No teacher double-booking", "A teacher cannot be in two places at once", True),
    (RuleKind.room_overlap, "hard", 100, "No room double-booking", "A room cannot host two lessons at once", True),
    (RuleKind.class_overlap, "hard", 100, "No class double-booking", "A class cannot attend two lessons at once", True),
    (RuleKind.teacher_availability, "hard", 90, "Teacher availability", "Lessons must fall inside the teacher's availability windows", True),
    (RuleKind.weekly_hours, "hard", 85, "Weekly hours", "Every class receives exactly its weekly hours per subject", True),
    (RuleKind.travel_time, "soft", 70, "Travel time between sites", "Teachers need enough time to reach the next site", True),
    (RuleKind.subject_distribution, "soft", 60, "Even subject distribution", "Weekly hours of a subject should not all land on one day", True),
    (RuleKind.schedule_compactness, "soft", 50, "Schedule compactness", "Avoid gaps longer than an hour in a class day", True),
    (RuleKind.room_suitability, "hard", 80, "Room suitability", "Special-room subjects need a room of the right type", False),
    (RuleKind.room_capacity, "hard", 75, "Room capacity", "The room must seat the whole class", False),
    (RuleKind.teacher_daily_load, "soft", 45, "Teacher daily load", "Respect each teacher's maximum hours per day", False),
    (RuleKind.teacher_weekly_load, "soft", 45, "Teacher weekly load", "Respect each teacher's total weekly hours", False),
    (RuleKind.class_daily_load, "soft", 40, "Class daily load", "Respect the class day length and lunch break", False),
    (RuleKind.subject_continuity, "soft", 35, "Subject continuity", "Continuity subjects are taught back to back", False),
    (RuleKind.teacher_preferences, "soft", 30, "Teacher preferences", "Preferred days and maximum consecutive hours", False),
)


def default_constraints() -> list[ConstraintDefinition]:
    return [
        ConstraintDefinition(
            id=rule.value,
            name=name,
            kind=kind,
            rule=rule,
            priority=priority,
            description=description,
            is_active=active,
        )
        for rule, kind, priority, name, description, active in _BUILTINS
    ]


class ConstraintEvaluator:
    def __init__(self, index: CatalogIndex, constraints: list[ConstraintDefinition] | None = None) -> None:
        self.index = index
        self.constraints = constraints if constraints is not None else default_constraints()
        self.detector = ConflictDetector(index)
        self._rules: dict[RuleKind, Callable[[ConstraintDefinition, Schedule], ConstraintResult]] = {
            RuleKind.teacher_overlap: self._teacher_overlap,
            RuleKind.room_overlap: self._room_overlap,
            RuleKind.class_overlap: self._class_overlap,
            RuleKind.teacher_availability: self._teacher_availability,
            RuleKind.weekly_hours: self._weekly_hours,
            RuleKind.travel_time: self._travel_time,
            RuleKind.subject_distribution: self._subject_distribution,
            RuleKind.schedule_compactness: self._schedule_compactness,
            RuleKind.room_suitability: self._room_suitability,
            RuleKind.room_capacity: self._room_capacity,
            RuleKind.teacher_daily_load: self._teacher_daily_load,
            RuleKind.teacher_weekly_load: self._teacher_weekly_load,
            RuleKind.class_daily_load: self._class_daily_load,
            RuleKind.subject_continuity: self._subject_continuity,
            RuleKind.teacher_preferences: self._teacher_preferences,
        }

    def active_constraints(self) -> list[ConstraintDefinition]:
        return sorted(
            (constraint for constraint in self.constraints if constraint.is_active),
            key=lambda item: -item.priority,
        )

    def evaluate(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        return self._rules[constraint.rule](constraint, schedule)

    def validate(self, schedule: Schedule) -> ConstraintResult:
        self.index.ensure_schedule_references(schedule)
        violations: list[ConstraintViolation] = []
        penalty = 0.0
        is_valid = True
        for constraint in self.active_constraints():
            result = self.evaluate(constraint, schedule)
            violations.extend(result.violations)
            penalty += result.penalty
            if constraint.kind == "hard" and not result.is_valid:
                is_valid = False
        logger.debug("Validated schedule=%s valid=%s violations=%d penalty=%.1f", schedule.id, is_valid, len(violations), penalty)
        return ConstraintResult(is_valid=is_valid, violations=violations, penalty=penalty)

    def count_violations(self, schedule: Schedule) -> tuple[int, int]:
        """Return (hard, soft) violation counts over the active rule set."""
        self.index.ensure_schedule_references(schedule)
        hard = soft = 0
        for constraint in self.active_constraints():
            count = len(self.evaluate(constraint, schedule).violations)
            if constraint.kind == "hard":
                hard += count
            else:
                soft += count
        return hard, soft

    @staticmethod
    def _result(violations: list[ConstraintViolation], penalty: float) -> ConstraintResult:
        return ConstraintResult(is_valid=not violations, violations=violations, penalty=penalty)

    @staticmethod
    def _violation(constraint: ConstraintDefinition, description: str, entry_ids: list[str]) -> ConstraintViolation:
        return ConstraintViolation(
            constraint_id=constraint.id,
            description=description,
            severity="high" if constraint.kind == "hard" else "medium",
            affected_entries=entry_ids,
        )

    def _overlap_axis(self, constraint: ConstraintDefinition, schedule: Schedule, axis: str) -> ConstraintResult:
        violations = [
            self._violation(constraint, conflict.description, list(conflict.affected_entries))
            for conflict in self.detector.detect_axis(schedule, axis)
        ]
        return self._result(violations, OVERLAP_PENALTY * len(violations))

    def _teacher_overlap(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        return self._overlap_axis(constraint, schedule, "teacher")

    def _room_overlap(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        return self._overlap_axis(constraint, schedule, "room")

    def _class_overlap(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        return self._overlap_axis(constraint, schedule, "class")

    def _teacher_availability(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = [
            self._violation(
                constraint,
                f"Teacher {self.index.teachers[entry.teacher_id].full_name} is not available on {entry.time_slot}",
                [entry.id],
            )
            for entry in analysis.unavailable_entries(self.index, schedule)
        ]
        return self._result(violations, AVAILABILITY_PENALTY * len(violations))

    def _weekly_hours(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        deviations = analysis.weekly_hour_deviations(self.index, schedule)
        violations = [
            self._violation(
                constraint,
                f"Class {item.class_id} has {item.scheduled} of {item.required} weekly hours of {item.subject_id}",
                list(item.entry_ids),
            )
            for item in deviations
        ]
        penalty = WEEKLY_HOURS_PENALTY * sum(item.amount for item in deviations)
        return self._result(violations, penalty)

    def _travel_time(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        _, shortfalls = analysis.travel_transitions(self.index, schedule)
        violations = [
            self._violation(
                constraint,
                (
                    f"Teacher {item.teacher_id} has {item.available_minutes} minutes to travel "
                    f"but needs {item.required_minutes} before {item.second.time_slot}"
                ),
                [item.first.id, item.second.id],
            )
            for item in shortfalls
        ]
        return self._result(violations, TRAVEL_PENALTY * len(violations))

    def _subject_distribution(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        grouped: dict[tuple[str, str], list] = defaultdict(list)
        for entry in schedule.entries:
            grouped[(entry.class_id, entry.subject_id)].append(entry)

        violations: list[ConstraintViolation] = []
        penalty = 0.0
        for (class_id, subject_id), entries in grouped.items():
            subject = self.index.subjects[subject_id]
            if len(entries) < 2 or not subject.can_be_split:
                continue
            days = {entry.time_slot.day for entry in entries}
            if len(days) == 1:
                violations.append(
                    self._violation(
                        constraint,
                        f"All {len(entries)} weekly hours of {subject.name} for class {class_id} fall on one day",
                        [entry.id for entry in entries],
                    )
                )
                penalty += DISTRIBUTION_PENALTY * (len(entries) - 1)
        return self._result(violations, penalty)

    def _schedule_compactness(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations: list[ConstraintViolation] = []
        for class_id, per_day in analysis.class_day_gaps(schedule).items():
            for pairs in per_day.values():
                for current, following in pairs:
                    violations.append(
                        self._violation(
                            constraint,
                            (
                                f"Class {class_id} waits {gap_minutes(current.time_slot, following.time_slot)} "
                                f"minutes between lessons on {following.time_slot}"
                            ),
                            [current.id, following.id],
                        )
                    )
        return self._result(violations, COMPACTNESS_PENALTY * len(violations))

    def _room_suitability(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        for entry in schedule.entries:
            room = self.index.rooms[entry.room_id]
            subject = self.index.subjects[entry.subject_id]
            if not room_suits_subject(room, subject):
                violations.append(
                    self._violation(constraint, f"{subject.name} cannot be taught in {room.name} ({room.type.value})", [entry.id])
                )
        return self._result(violations, OVERLAP_PENALTY * len(violations))

    def _room_capacity(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        for entry in schedule.entries:
            room = self.index.rooms[entry.room_id]
            school_class = self.index.classes[entry.class_id]
            if room.capacity < school_class.students_count:
                violations.append(
                    self._violation(
                        constraint,
                        f"Room {room.name} capacity ({room.capacity}) < students ({school_class.students_count})",
                        [entry.id],
                    )
                )
        return self._result(violations, OVERLAP_PENALTY * len(violations))

    def _teacher_daily_load(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        penalty = 0.0
        for teacher_id, entries in analysis.entries_by(schedule, "teacher_id").items():
            limit = self.index.teachers[teacher_id].max_hours_per_day
            for day, day_entries in analysis.entries_by_day(entries).items():
                if len(day_entries) > limit:
                    violations.append(
                        self._violation(
                            constraint,
                            f"Teacher {teacher_id} has {len(day_entries)} lessons on day {day} (max {limit})",
                            [entry.id for entry in day_entries],
                        )
                    )
                    penalty += LOAD_PENALTY * (len(day_entries) - limit)
        return self._result(violations, penalty)

    def _teacher_weekly_load(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        penalty = 0.0
        for teacher_id, entries in analysis.entries_by(schedule, "teacher_id").items():
            limit = self.index.teachers[teacher_id].total_weekly_hours
            if len(entries) > limit:
                violations.append(
                    self._violation(
                        constraint,
                        f"Teacher {teacher_id} has {len(entries)} weekly lessons (max {limit})",
                        [entry.id for entry in entries],
                    )
                )
                penalty += LOAD_PENALTY * (len(entries) - limit)
        return self._result(violations, penalty)

    def _class_daily_load(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        penalty = 0.0
        for class_id, entries in analysis.entries_by(schedule, "class_id").items():
            policy = self.index.classes[class_id].schedule
            for day, day_entries in analysis.entries_by_day(entries).items():
                if len(day_entries) > policy.max_hours_per_day:
                    violations.append(
                        self._violation(
                            constraint,
                            f"Class {class_id} has {len(day_entries)} lessons on day {day} (max {policy.max_hours_per_day})",
                            [entry.id for entry in day_entries],
                        )
                    )
                    penalty += LOAD_PENALTY * (len(day_entries) - policy.max_hours_per_day)
            if policy.lunch_start is None or policy.lunch_end is None:
                continue
            for entry in entries:
                lunch = TimeSlot(day=entry.time_slot.day, start_time=policy.lunch_start, end_time=policy.lunch_end)
                if overlaps(entry.time_slot, lunch):
                    violations.append(
                        self._violation(constraint, f"Class {class_id} has a lesson during lunch on {entry.time_slot}", [entry.id])
                    )
                    penalty += LOAD_PENALTY
        return self._result(violations, penalty)

    def _subject_continuity(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        grouped: dict[tuple[str, str], list] = defaultdict(list)
        for entry in schedule.entries:
            if self.index.subjects[entry.subject_id].requires_continuity:
                grouped[(entry.class_id, entry.subject_id)].append(entry)
        for (class_id, subject_id), entries in grouped.items():
            for day_entries in analysis.entries_by_day(entries).values():
                for current, following in zip(day_entries, day_entries[1:]):
                    if gap_minutes(current.time_slot, following.time_slot) > 0:
                        violations.append(
                            self._violation(
                                constraint,
                                f"{subject_id} for class {class_id} is split on {following.time_slot}",
                                [current.id, following.id],
                            )
                        )
        return self._result(violations, LOAD_PENALTY * len(violations))

    def _teacher_preferences(self, constraint: ConstraintDefinition, schedule: Schedule) -> ConstraintResult:
        violations = []
        for teacher_id, entries in analysis.entries_by(schedule, "teacher_id").items():
            preferences = self.index.teachers[teacher_id].preferences
            if preferences.preferred_days:
                off_days = [entry for entry in entries if entry.time_slot.day not in preferences.preferred_days]
                if off_days:
                    violations.append(
                        self._violation(
                            constraint,
                            f"Teacher {teacher_id} teaches {len(off_days)} lesson(s) outside preferred days",
                            [entry.id for entry in off_days],
                        )
                    )
            for day_entries in analysis.entries_by_day(entries).values():
                run = [day_entries[0]]
                for current, following in zip(day_entries, day_entries[1:]):
                    run = run + [following] if gap_minutes(current.time_slot, following.time_slot) <= 0 else [following]
                    if len(run) == preferences.max_consecutive_hours + 1:
                        violations.append(
                            self._violation(
                                constraint,
                                f"Teacher {teacher_id} exceeds {preferences.max_consecutive_hours} consecutive lessons",
                                [entry.id for entry in run],
                            )
                        )
        return self._result(violations, PREFERENCE_PENALTY * len(violations))
