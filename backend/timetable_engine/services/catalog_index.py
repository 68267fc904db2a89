from __future__ import annotations

from dataclasses import dataclass
import logging

from timetable_engine.core.exceptions import CatalogValidationError
from timetable_engine.schemas.catalog import Catalog, Room, RoomType, SchoolClass, Subject, Teacher
from timetable_engine.schemas.schedule import Schedule

logger = logging.getLogger(__name__)

GENERAL_ROOM_TYPES = frozenset({RoomType.classroom, RoomType.special})


@dataclass(frozen=True)
class Demand:
    class_id: str
    subject_id: str
    hours: int


def room_suits_subject(room: Room, subject: Subject) -> bool:
    if subject.requires_special_room:
        return room.type == subject.special_room_type
    return room.type in GENERAL_ROOM_TYPES


class CatalogIndex:
    """Lookups derived once per run so the hot paths never scan catalog lists."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog
        self.teachers: dict[str, Teacher] = {teacher.id: teacher for teacher in catalog.teachers}
        self.classes: dict[str, SchoolClass] = {item.id: item for item in catalog.classes}
        self.subjects: dict[str, Subject] = {subject.id: subject for subject in catalog.subjects}
        self.rooms: dict[str, Room] = {room.id: room for room in catalog.rooms}
        self.site_travel: dict[str, dict[str, int]] = {
            site.id: dict(site.travel_time_to_other_sites) for site in catalog.sites
        }

        self.qualified_teachers: dict[str, tuple[str, ...]] = {
            subject_id: tuple(teacher.id for teacher in catalog.teachers if subject_id in teacher.subjects)
            for subject_id in self.subjects
        }
        self.compatible_rooms: dict[str, tuple[str, ...]] = {
            subject.id: tuple(room.id for room in catalog.rooms if room_suits_subject(room, subject))
            for subject in catalog.subjects
        }
        self.demands: list[Demand] = [
            Demand(class_id=item.id, subject_id=subject.id, hours=subject.weekly_hours.get(item.id, 0))
            for item in catalog.classes
            for subject in catalog.subjects
            if subject.weekly_hours.get(item.id, 0) > 0
        ]
        self.required_hours: dict[tuple[str, str], int] = {
            (demand.class_id, demand.subject_id): demand.hours for demand in self.demands
        }

    def room_site(self, room_id: str) -> str | None:
        return self.rooms[room_id].site_id

    def travel_minutes(self, teacher_id: str, from_room_id: str, to_room_id: str) -> int:
        """Minutes a teacher needs between two rooms; zero within one site."""
        origin = self.room_site(from_room_id)
        destination = self.room_site(to_room_id)
        if destination is None or origin == destination:
            return 0
        teacher = self.teachers[teacher_id]
        if destination in teacher.travel_time:
            return teacher.travel_time[destination]
        if origin is not None:
            return self.site_travel.get(origin, {}).get(destination, 0)
        return 0

    def ensure_schedule_references(self, schedule: Schedule) -> None:
        missing: dict[str, list[str]] = {}
        for entry in schedule.entries:
            for label, entity_id, registry in (
                ("teacher", entry.teacher_id, self.teachers),
                ("class", entry.class_id, self.classes),
                ("subject", entry.subject_id, self.subjects),
                ("room", entry.room_id, self.rooms),
            ):
                if entity_id not in registry:
                    missing.setdefault(label, []).append(entity_id)
        if missing:
            raise CatalogValidationError(
                message="Schedule references entities that are not in the catalog",
                details={label: sorted(set(ids)) for label, ids in missing.items()},
            )

    def log_unsatisfiable_demands(self) -> None:
        for demand in self.demands:
            if not self.qualified_teachers.get(demand.subject_id):
                logger.warning(
                    "No qualified teacher for subject=%s class=%s (%s hours unplaceable)",
                    demand.subject_id,
                    demand.class_id,
                    demand.hours,
                )
            elif not self.compatible_rooms.get(demand.subject_id):
                logger.warning(
                    "No compatible room for subject=%s class=%s (%s hours unplaceable)",
                    demand.subject_id,
                    demand.class_id,
                    demand.hours,
                )
