import random
from time import perf_counter

from timetable_engine.schemas.catalog import Catalog
from timetable_engine.schemas.generator import OptimizationSettings
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.constraints import ConstraintEvaluator
from timetable_engine.services.evolution_scheduler import GeneticOptimizer, OptimizerState, dedupe_entries
from timetable_engine.services import analysis


def school_catalog() -> Catalog:
    """Three classes, four subjects and three teachers; feasible but not trivially so."""
    return Catalog.model_validate(
        {
            "teachers": [
                {"id": "T1", "first_name": "Ada", "last_name": "Moreau", "subjects": ["MATH", "PHYS"]},
                {"id": "T2", "first_name": "Lin", "last_name": "Okafor", "subjects": ["MATH", "LIT"]},
                {"id": "T3", "first_name": "Ines", "last_name": "Varga", "subjects": ["CHEM", "PHYS"]},
            ],
            "classes": [
                {"id": "C1", "name": "Grade 1"},
                {"id": "C2", "name": "Grade 2"},
                {"id": "C3", "name": "Grade 3"},
            ],
            "subjects": [
                {"id": "MATH", "name": "Mathematics", "code": "MATH", "weekly_hours": {"C1": 4, "C2": 4, "C3": 3}},
                {"id": "LIT", "name": "Literature", "code": "LIT", "weekly_hours": {"C1": 3, "C2": 2, "C3": 3}},
                {"id": "PHYS", "name": "Physics", "code": "PHYS", "weekly_hours": {"C2": 2, "C3": 2}},
                {
                    "id": "CHEM",
                    "name": "Chemistry",
                    "code": "CHEM",
                    "weekly_hours": {"C1": 2, "C3": 2},
                    "requires_special_room": True,
                    "special_room_type": "lab",
                },
            ],
            "rooms": [
                {"id": "R1", "name": "Room 101"},
                {"id": "R2", "name": "Room 102"},
                {"id": "LAB", "name": "Lab 1", "type": "lab"},
            ],
        }
    )


def unreachable_settings(**overrides) -> OptimizationSettings:
    values = {
        "max_generations": 15,
        "population_size": 12,
        "convergence_threshold": 1_000_000,
        "max_runtime": 30,
        "random_seed": 11,
    }
    values.update(overrides)
    return OptimizationSettings(**values)


def test_end_to_end_single_teacher_scenario(catalog):
    settings = OptimizationSettings(
        max_generations=50,
        population_size=20,
        mutation_rate=0.1,
        elitism_rate=0.2,
        convergence_threshold=900,
        max_runtime=5,
        random_seed=7,
    )
    optimizer = GeneticOptimizer(catalog, settings)
    schedule = optimizer.run()

    assert len(schedule.entries) == 2
    assert {(entry.class_id, entry.subject_id) for entry in schedule.entries} == {("C1", "S1")}
    assert schedule.conflicts == []
    assert schedule.fitness_score >= 900
    assert optimizer.termination_reason == "converged"
    assert optimizer.state == OptimizerState.done


def test_infeasible_catalog_returns_best_effort():
    catalog = Catalog.model_validate(
        {
            "teachers": [
                {
                    "id": "T1",
                    "first_name": "Ada",
                    "last_name": "Moreau",
                    "subjects": ["S1"],
                    "availability": [{"day": 0, "start_time": "08:00", "end_time": "10:00"}],
                    "total_weekly_hours": 2,
                }
            ],
            "classes": [{"id": "C1", "name": "Grade 1"}, {"id": "C2", "name": "Grade 2"}],
            "subjects": [{"id": "S1", "name": "Mathematics", "code": "MATH", "weekly_hours": {"C1": 2, "C2": 2}}],
            "rooms": [{"id": "R1", "name": "Room 101"}, {"id": "R2", "name": "Room 102"}],
        }
    )
    optimizer = GeneticOptimizer(catalog, unreachable_settings(max_generations=20, population_size=16))
    schedule = optimizer.run()

    index = CatalogIndex(catalog)
    unmet = analysis.weekly_hour_deviations(index, schedule)
    unavailable = analysis.unavailable_entries(index, schedule)
    assert schedule.conflicts or unmet or unavailable
    assert not ConstraintEvaluator(index).validate(schedule).is_valid
    assert optimizer.termination_reason == "max_generations_reached"


def test_missing_teacher_is_not_an_error(caplog):
    catalog = Catalog.model_validate(
        {
            "classes": [{"id": "C1", "name": "Grade 1"}],
            "subjects": [{"id": "S1", "name": "Art", "code": "ART", "weekly_hours": {"C1": 2}}],
            "rooms": [{"id": "R1", "name": "Room 101"}],
        }
    )
    with caplog.at_level("WARNING"):
        schedule = GeneticOptimizer(catalog, unreachable_settings(max_generations=3)).run()
    assert schedule.entries == []
    assert "No qualified teacher" in caplog.text


def test_best_fitness_never_decreases():
    optimizer = GeneticOptimizer(school_catalog(), unreachable_settings(max_generations=30, population_size=30))
    optimizer.run()

    best = [stats.best_fitness for stats in optimizer.history]
    assert len(best) == 30
    assert all(later >= earlier for earlier, later in zip(best, best[1:]))


def test_runtime_budget_stops_the_run():
    settings = unreachable_settings(max_generations=100_000, population_size=20, max_runtime=1)
    optimizer = GeneticOptimizer(school_catalog(), settings)

    started = perf_counter()
    schedule = optimizer.run()
    elapsed = perf_counter() - started

    assert optimizer.termination_reason == "timed_out"
    assert elapsed < 3
    assert schedule.fitness_score is not None


def test_same_seed_gives_same_schedule():
    first = GeneticOptimizer(school_catalog(), unreachable_settings()).run()
    second = GeneticOptimizer(school_catalog(), unreachable_settings()).run()
    threaded = GeneticOptimizer(school_catalog(), unreachable_settings(evaluation_workers=3)).run()

    assert first.entries == second.entries
    assert first.fitness_score == second.fitness_score
    assert threaded.entries == first.entries


def test_explicit_rng_drives_the_run():
    first = GeneticOptimizer(school_catalog(), unreachable_settings(random_seed=None), rng=random.Random(5)).run()
    second = GeneticOptimizer(school_catalog(), unreachable_settings(random_seed=None), rng=random.Random(5)).run()
    assert first.id == second.id
    assert first.entries == second.entries


def test_progress_reports_are_monotonic_and_finish_at_100():
    seen = []
    GeneticOptimizer(school_catalog(), unreachable_settings(), on_progress=seen.append).run()

    assert seen
    assert all(later > earlier for earlier, later in zip(seen, seen[1:]))
    assert seen[-1] == 100.0


def test_entries_respect_qualifications_and_room_types():
    catalog = school_catalog()
    index = CatalogIndex(catalog)
    schedule = GeneticOptimizer(catalog, unreachable_settings(mutation_rate=1.0)).run()

    assert schedule.entries
    for entry in schedule.entries:
        assert entry.teacher_id in index.qualified_teachers[entry.subject_id]
        assert entry.room_id in index.compatible_rooms[entry.subject_id]
    assert len({entry.id for entry in schedule.entries}) == len(schedule.entries)


def test_history_tracks_every_generation():
    optimizer = GeneticOptimizer(school_catalog(), unreachable_settings(max_generations=5))
    optimizer.run()

    assert [stats.generation for stats in optimizer.history] == [1, 2, 3, 4, 5]
    assert optimizer.generations == 5
    assert all(stats.best_fitness >= stats.average_fitness for stats in optimizer.history)


def test_dedupe_keeps_later_entry_in_first_position(make_entry):
    first = make_entry(class_id="C1", teacher_id="T1")
    other = make_entry(class_id="C2")
    replacement = make_entry(class_id="C1", teacher_id="T2")

    assert dedupe_entries([first, other, replacement]) == [replacement, other]
