from __future__ import annotations

from timetable_engine.schemas.time_slot import TimeSlot, WeeklyGrid, minutes_to_time, parse_time_to_minutes

# Re-exported under the name the rest of the engine uses.
to_minutes = parse_time_to_minutes


def overlaps(a: TimeSlot, b: TimeSlot) -> bool:
    # Half-open: a slot ending at 09:00 does not touch one starting at 09:00.
    if a.day != b.day:
        return False
    return a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes


def contains(outer: TimeSlot, inner: TimeSlot) -> bool:
    if outer.day != inner.day:
        return False
    return outer.start_minutes <= inner.start_minutes and inner.end_minutes <= outer.end_minutes


def duration_minutes(slot: TimeSlot) -> int:
    return slot.end_minutes - slot.start_minutes


def gap_minutes(earlier: TimeSlot, later: TimeSlot) -> int:
    return later.start_minutes - earlier.end_minutes


def slot_sort_key(slot: TimeSlot) -> tuple[int, int, int]:
    return slot.day, slot.start_minutes, slot.end_minutes


def generate_weekly_slots(grid: WeeklyGrid | None = None) -> list[TimeSlot]:
    """Build the fixed weekly grid, skipping slots that touch the lunch gap."""
    grid = grid or WeeklyGrid()
    day_start = parse_time_to_minutes(grid.day_start)
    day_end = parse_time_to_minutes(grid.day_end)
    lunch: tuple[int, int] | None = None
    if grid.lunch_start is not None and grid.lunch_end is not None:
        lunch = (parse_time_to_minutes(grid.lunch_start), parse_time_to_minutes(grid.lunch_end))

    slots: list[TimeSlot] = []
    for day in range(grid.day_count):
        start = day_start
        while start + grid.slot_minutes <= day_end:
            end = start + grid.slot_minutes
            if lunch is not None and start < lunch[1] and lunch[0] < end:
                start = lunch[1]
                continue
            slots.append(TimeSlot(day=day, start_time=minutes_to_time(start), end_time=minutes_to_time(end)))
            start = end
    return slots
