from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Literal

from timetable_engine.schemas.conflict import Conflict, ConflictReport
from timetable_engine.schemas.schedule import Schedule, ScheduleEntry
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.time_model import overlaps

Axis = Literal["teacher", "room", "class"]

AXES: tuple[Axis, ...] = ("teacher", "room", "class")

_AXIS_FIELD = {"teacher": "teacher_id", "room": "room_id", "class": "class_id"}
_AXIS_TYPE = {"teacher": "teacher_overlap", "room": "room_overlap", "class": "class_overlap"}


class ConflictDetector:
    """Pairwise double-booking scan over the teacher, room and class axes.

    Groups are bounded by a single resource's weekly load, so the O(n^2)
    pair walk inside a group stays small. Output order and conflict ids
    depend only on the schedule, so repeated calls return equal lists.
    """

    def __init__(self, index: CatalogIndex | None = None):
        self.index = index

    def detect(self, schedule: Schedule) -> List[Conflict]:
        conflicts: List[Conflict] = []
        for axis in AXES:
            conflicts.extend(self.detect_axis(schedule, axis))
        return conflicts

    def detect_axis(self, schedule: Schedule, axis: Axis) -> List[Conflict]:
        conflicts: List[Conflict] = []
        for resource_id, entries in group_by_resource(schedule.entries, axis).items():
            n = len(entries)
            for i in range(n):
                first = entries[i]
                for j in range(i + 1, n):
                    second = entries[j]
                    if overlaps(first.time_slot, second.time_slot):
                        conflicts.append(self._build_conflict(axis, resource_id, first, second))
        return conflicts

    def count(self, schedule: Schedule) -> int:
        return len(self.detect(schedule))

    def report(self, schedule: Schedule) -> ConflictReport:
        return ConflictReport(conflicts=self.detect(schedule))

    def _build_conflict(self, axis: Axis, resource_id: str, first: ScheduleEntry, second: ScheduleEntry) -> Conflict:
        conflict_type = _AXIS_TYPE[axis]
        label = self._resource_label(axis, resource_id)
        return Conflict(
            id=f"{conflict_type}-{first.id}-{second.id}",
            type=conflict_type,
            severity="high",
            description=(
                f"{axis.capitalize()} {label} is double-booked: "
                f"{first.subject_id} ({first.time_slot}) and {second.subject_id} ({second.time_slot})"
            ),
            affected_entries=[first.id, second.id],
            suggested_resolution=suggest_resolution(axis),
        )

    def _resource_label(self, axis: Axis, resource_id: str) -> str:
        if self.index is None:
            return resource_id
        if axis == "teacher" and resource_id in self.index.teachers:
            return self.index.teachers[resource_id].full_name
        if axis == "room" and resource_id in self.index.rooms:
            return self.index.rooms[resource_id].name
        if axis == "class" and resource_id in self.index.classes:
            return self.index.classes[resource_id].name
        return resource_id


def group_by_resource(entries: List[ScheduleEntry], axis: Axis) -> Dict[str, List[ScheduleEntry]]:
    field = _AXIS_FIELD[axis]
    groups: Dict[str, List[ScheduleEntry]] = defaultdict(list)
    for entry in entries:
        groups[getattr(entry, field)].append(entry)
    return groups


def suggest_resolution(axis: Axis) -> str:
    if axis == "room":
        return "Move one lesson to another free room of a compatible type"
    if axis == "teacher":
        return "Move one lesson to a different time slot or assign another qualified teacher"
    return "Move one lesson to a time slot where the class is free"
