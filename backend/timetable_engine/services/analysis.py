"""Schedule measurements shared by the constraint rules and the fitness function."""
from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass

from timetable_engine.schemas.schedule import Schedule, ScheduleEntry
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.time_model import contains, gap_minutes, overlaps, slot_sort_key

COMPACTNESS_GAP_MINUTES = 60
COMPACTNESS_GAP_PENALTY = 0.2


@dataclass(frozen=True)
class TravelViolation:
    teacher_id: str
    first: ScheduleEntry
    second: ScheduleEntry
    available_minutes: int
    required_minutes: int


@dataclass(frozen=True)
class HourDeviation:
    class_id: str
    subject_id: str
    required: int
    scheduled: int
    entry_ids: tuple[str, ...]

    @property
    def amount(self) -> int:
        return abs(self.required - self.scheduled)


def entries_by_day(entries: list[ScheduleEntry]) -> dict[int, list[ScheduleEntry]]:
    days: dict[int, list[ScheduleEntry]] = defaultdict(list)
    for entry in sorted(entries, key=lambda item: slot_sort_key(item.time_slot)):
        days[entry.time_slot.day].append(entry)
    return days


def entries_by(schedule: Schedule, field: str) -> dict[str, list[ScheduleEntry]]:
    groups: dict[str, list[ScheduleEntry]] = defaultdict(list)
    for entry in schedule.entries:
        groups[getattr(entry, field)].append(entry)
    return groups


def travel_transitions(index: CatalogIndex, schedule: Schedule) -> tuple[int, list[TravelViolation]]:
    """Walk each teacher's day in time order; return (transition count, shortfalls)."""
    transitions = 0
    violations: list[TravelViolation] = []
    for teacher_id, entries in entries_by(schedule, "teacher_id").items():
        for day_entries in entries_by_day(entries).values():
            for current, following in zip(day_entries, day_entries[1:]):
                transitions += 1
                required = index.travel_minutes(teacher_id, current.room_id, following.room_id)
                available = gap_minutes(current.time_slot, following.time_slot)
                if required > 0 and available < required:
                    violations.append(
                        TravelViolation(
                            teacher_id=teacher_id,
                            first=current,
                            second=following,
                            available_minutes=available,
                            required_minutes=required,
                        )
                    )
    return transitions, violations


def class_day_gaps(schedule: Schedule) -> dict[str, dict[int, list[tuple[ScheduleEntry, ScheduleEntry]]]]:
    """Per class and day, the consecutive entry pairs separated by more than an hour."""
    gaps: dict[str, dict[int, list[tuple[ScheduleEntry, ScheduleEntry]]]] = {}
    for class_id, entries in entries_by(schedule, "class_id").items():
        per_day: dict[int, list[tuple[ScheduleEntry, ScheduleEntry]]] = {}
        for day, day_entries in entries_by_day(entries).items():
            per_day[day] = [
                (current, following)
                for current, following in zip(day_entries, day_entries[1:])
                if gap_minutes(current.time_slot, following.time_slot) > COMPACTNESS_GAP_MINUTES
            ]
        gaps[class_id] = per_day
    return gaps


def compactness_score(index: CatalogIndex, schedule: Schedule) -> float:
    if not index.classes:
        return 0.0
    gaps = class_day_gaps(schedule)
    total = 0.0
    for class_id in index.classes:
        per_day = gaps.get(class_id)
        if not per_day:
            continue
        day_scores = [max(0.0, 1.0 - COMPACTNESS_GAP_PENALTY * len(pairs)) for pairs in per_day.values()]
        total += sum(day_scores) / len(day_scores)
    return total / len(index.classes)


def weekly_hour_deviations(index: CatalogIndex, schedule: Schedule) -> list[HourDeviation]:
    scheduled: dict[tuple[str, str], list[str]] = defaultdict(list)
    for entry in schedule.entries:
        scheduled[(entry.class_id, entry.subject_id)].append(entry.id)

    deviations: list[HourDeviation] = []
    for key in [*index.required_hours, *(k for k in scheduled if k not in index.required_hours)]:
        required = index.required_hours.get(key, 0)
        entry_ids = scheduled.get(key, [])
        if len(entry_ids) != required:
            deviations.append(
                HourDeviation(
                    class_id=key[0],
                    subject_id=key[1],
                    required=required,
                    scheduled=len(entry_ids),
                    entry_ids=tuple(entry_ids),
                )
            )
    return deviations


def is_teacher_available(index: CatalogIndex, entry: ScheduleEntry) -> bool:
    windows = index.teachers[entry.teacher_id].availability
    if not windows:
        return True
    return any(contains(window, entry.time_slot) for window in windows)


def unavailable_entries(index: CatalogIndex, schedule: Schedule) -> list[ScheduleEntry]:
    return [entry for entry in schedule.entries if not is_teacher_available(index, entry)]


def teacher_preference_ratio(index: CatalogIndex, schedule: Schedule) -> float:
    """+1 per entry in a preferred slot, -0.5 per entry in an avoided slot, averaged over entries."""
    if not schedule.entries:
        return 0.0
    score = 0.0
    for entry in schedule.entries:
        preferences = index.teachers[entry.teacher_id].preferences
        if any(overlaps(entry.time_slot, slot) for slot in preferences.preferred_time_slots):
            score += 1.0
        if any(overlaps(entry.time_slot, slot) for slot in preferences.avoided_time_slots):
            score -= 0.5
    return score / len(schedule.entries)


def room_utilization_balance(index: CatalogIndex, schedule: Schedule) -> float:
    """1 minus the squared coefficient of variation of per-room usage, floored at 0."""
    usage = Counter({room_id: 0 for room_id in index.rooms})
    usage.update(entry.room_id for entry in schedule.entries)
    counts = list(usage.values())
    if not counts:
        return 0.0
    mean = sum(counts) / len(counts)
    if mean == 0:
        return 1.0
    variance = sum((count - mean) ** 2 for count in counts) / len(counts)
    return max(0.0, 1.0 - variance / (mean * mean))
