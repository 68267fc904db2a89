import pytest
from fastapi.testclient import TestClient

from timetable_engine.main import app
from timetable_engine.schemas.catalog import Catalog
from timetable_engine.schemas.schedule import ScheduleEntry
from timetable_engine.schemas.time_slot import TimeSlot
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.jobs import clear_job_registry


def weekday_availability(start: str = "08:00", end: str = "17:00") -> list[dict]:
    return [{"day": day, "start_time": start, "end_time": end} for day in range(5)]


def basic_catalog_payload() -> dict:
    """One teacher, one class, one subject needing 2 hours, one room."""
    return {
        "teachers": [
            {
                "id": "T1",
                "first_name": "Ada",
                "last_name": "Moreau",
                "email": "ada.moreau@example.com",
                "subjects": ["S1"],
                "availability": weekday_availability(),
            }
        ],
        "classes": [{"id": "C1", "name": "Grade 1", "students_count": 25}],
        "subjects": [{"id": "S1", "name": "Mathematics", "code": "MATH", "weekly_hours": {"C1": 2}}],
        "rooms": [{"id": "R1", "name": "Room 101", "capacity": 30}],
    }


@pytest.fixture()
def client():
    clear_job_registry()
    with TestClient(app) as test_client:
        yield test_client
    clear_job_registry()


@pytest.fixture()
def catalog_payload() -> dict:
    return basic_catalog_payload()


@pytest.fixture()
def catalog(catalog_payload) -> Catalog:
    return Catalog.model_validate(catalog_payload)


@pytest.fixture()
def two_teacher_catalog() -> Catalog:
    """Two teachers and two rooms on separate sites, two classes sharing a subject."""
    return Catalog.model_validate(
        {
            "teachers": [
                {
                    "id": "T1",
                    "first_name": "Ada",
                    "last_name": "Moreau",
                    "subjects": ["S1", "S2"],
                    "travel_time": {"north": 30},
                    "preferences": {"preferred_time_slots": [{"day": 0, "start_time": "08:00", "end_time": "10:00"}]},
                },
                {"id": "T2", "first_name": "Lin", "last_name": "Okafor", "subjects": ["S1"]},
            ],
            "classes": [
                {"id": "C1", "name": "Grade 1", "students_count": 25},
                {"id": "C2", "name": "Grade 2", "students_count": 40},
            ],
            "subjects": [
                {"id": "S1", "name": "Mathematics", "code": "MATH", "weekly_hours": {"C1": 2, "C2": 2}},
                {
                    "id": "S2",
                    "name": "Chemistry",
                    "code": "CHEM",
                    "weekly_hours": {"C1": 1},
                    "requires_special_room": True,
                    "special_room_type": "lab",
                },
            ],
            "rooms": [
                {"id": "R1", "name": "Room 101", "capacity": 30, "site_id": "south"},
                {"id": "R2", "name": "Lab 1", "type": "lab", "capacity": 30, "site_id": "north"},
            ],
            "sites": [
                {"id": "south", "name": "South Campus", "travel_time_to_other_sites": {"north": 20}},
                {"id": "north", "name": "North Campus", "travel_time_to_other_sites": {"south": 20}},
            ],
        }
    )


@pytest.fixture()
def index(two_teacher_catalog) -> CatalogIndex:
    return CatalogIndex(two_teacher_catalog)


@pytest.fixture()
def make_entry():
    counter = {"value": 0}

    def _make_entry(
        *,
        teacher_id: str = "T1",
        class_id: str = "C1",
        subject_id: str = "S1",
        room_id: str = "R1",
        day: int = 0,
        start: str = "08:00",
        end: str = "09:00",
        entry_id: str | None = None,
    ) -> ScheduleEntry:
        counter["value"] += 1
        return ScheduleEntry(
            id=entry_id or f"e{counter['value']}",
            teacher_id=teacher_id,
            class_id=class_id,
            subject_id=subject_id,
            room_id=room_id,
            time_slot=TimeSlot(day=day, start_time=start, end_time=end),
        )

    return _make_entry
