from timetable_engine.schemas.schedule import Schedule
from timetable_engine.services.conflict_service import ConflictDetector


def conflict_keys(conflicts):
    return {(conflict.type, frozenset(conflict.affected_entries)) for conflict in conflicts}


def test_detect_room_conflict(index, make_entry):
    first = make_entry(teacher_id="T1", class_id="C1", room_id="R1")
    second = make_entry(teacher_id="T2", class_id="C2", room_id="R1", start="08:30", end="09:30")
    conflicts = ConflictDetector(index).detect(Schedule(entries=[first, second]))

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.type == "room_overlap"
    assert conflict.severity == "high"
    assert "Room 101" in conflict.description
    assert set(conflict.affected_entries) == {first.id, second.id}
    assert conflict.suggested_resolution


def test_detect_teacher_and_class_conflicts(index, make_entry):
    first = make_entry(teacher_id="T1", class_id="C1", room_id="R1")
    second = make_entry(teacher_id="T1", class_id="C1", subject_id="S2", room_id="R2")
    conflicts = ConflictDetector(index).detect(Schedule(entries=[first, second]))

    assert {conflict.type for conflict in conflicts} == {"teacher_overlap", "class_overlap"}
    teacher_conflict = next(conflict for conflict in conflicts if conflict.type == "teacher_overlap")
    assert "Ada Moreau" in teacher_conflict.description


def test_back_to_back_lessons_do_not_conflict(index, make_entry):
    schedule = Schedule(entries=[make_entry(), make_entry(start="09:00", end="10:00")])
    assert ConflictDetector(index).detect(schedule) == []


def test_same_time_on_different_days_does_not_conflict(index, make_entry):
    schedule = Schedule(entries=[make_entry(day=0), make_entry(day=1)])
    assert ConflictDetector(index).count(schedule) == 0


def test_triple_booking_reports_every_pair(index, make_entry):
    entries = [make_entry(class_id=class_id, teacher_id=teacher_id) for class_id, teacher_id in (("C1", "T1"), ("C2", "T2"), ("C1", "T2"))]
    conflicts = ConflictDetector(index).detect(Schedule(entries=entries))
    room_conflicts = [conflict for conflict in conflicts if conflict.type == "room_overlap"]
    assert len(room_conflicts) == 3


def test_detection_is_symmetric(index, make_entry):
    first = make_entry(teacher_id="T1", class_id="C1")
    second = make_entry(teacher_id="T1", class_id="C2", room_id="R2", start="08:30", end="09:30")
    detector = ConflictDetector(index)
    forward = detector.detect(Schedule(entries=[first, second]))
    backward = detector.detect(Schedule(entries=[second, first]))
    assert conflict_keys(forward) == conflict_keys(backward)


def test_detection_is_deterministic(index, make_entry):
    schedule = Schedule(entries=[make_entry(), make_entry(teacher_id="T2", class_id="C2")])
    detector = ConflictDetector(index)
    assert detector.detect(schedule) == detector.detect(schedule)


def test_detector_works_without_catalog(make_entry):
    schedule = Schedule(entries=[make_entry(), make_entry(class_id="C2")])
    report = ConflictDetector().report(schedule)
    assert len(report.conflicts) == 2
    assert all("T1" in conflict.description or "R1" in conflict.description for conflict in report.conflicts)
