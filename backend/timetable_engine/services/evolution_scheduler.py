from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
import logging
import random
from time import perf_counter
import uuid

from timetable_engine.core.exceptions import CatalogValidationError, SchedulerError
from timetable_engine.schemas.catalog import Catalog
from timetable_engine.schemas.generator import (
    FitnessWeights,
    GenerationStats,
    OptimizationSettings,
    TerminationReason,
)
from timetable_engine.schemas.schedule import Schedule, ScheduleEntry, utc_now
from timetable_engine.schemas.time_slot import TimeSlot
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.conflict_service import ConflictDetector
from timetable_engine.services.fitness import FitnessFunction
from timetable_engine.services.progress import ProgressCallback, ProgressTracker
from timetable_engine.services.time_model import generate_weekly_slots, overlaps

logger = logging.getLogger(__name__)


class OptimizerState(str, Enum):
    initializing = "initializing"
    evolving = "evolving"
    converged = "converged"
    timed_out = "timed_out"
    max_generations_reached = "max_generations_reached"
    finalizing = "finalizing"
    done = "done"


@dataclass
class Candidate:
    entries: list[ScheduleEntry]
    fitness: float = 0.0
    scored: bool = False

    def clone(self) -> "Candidate":
        # Entries are frozen, so a fresh list is enough to keep candidates independent.
        return Candidate(entries=list(self.entries), fitness=self.fitness, scored=self.scored)


@dataclass
class _Occupancy:
    teacher: dict[str, list[TimeSlot]] = field(default_factory=lambda: defaultdict(list))
    room: dict[str, list[TimeSlot]] = field(default_factory=lambda: defaultdict(list))
    school_class: dict[str, list[TimeSlot]] = field(default_factory=lambda: defaultdict(list))

    @staticmethod
    def busy(slots: list[TimeSlot], slot: TimeSlot) -> bool:
        return any(overlaps(existing, slot) for existing in slots)

    def record(self, entry: ScheduleEntry) -> None:
        self.teacher[entry.teacher_id].append(entry.time_slot)
        self.room[entry.room_id].append(entry.time_slot)
        self.school_class[entry.class_id].append(entry.time_slot)


class GeneticOptimizer:
    """Population-based timetable search.

    Never raises for an infeasible catalog: the best schedule found is
    returned and its fitness and conflicts tell the caller how far off it is.
    """

    def __init__(
        self,
        catalog: Catalog,
        settings: OptimizationSettings | None = None,
        *,
        rng: random.Random | None = None,
        weights: FitnessWeights | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.catalog = catalog
        self.settings = settings or OptimizationSettings()
        self.random = rng if rng is not None else random.Random(self.settings.random_seed)
        self.index = CatalogIndex(catalog)
        self.fitness = FitnessFunction(self.index, weights)
        self.detector = ConflictDetector(self.index)
        self.progress = ProgressTracker(on_progress)
        self.slots = generate_weekly_slots(self.settings.grid)

        self.state = OptimizerState.initializing
        self.termination_reason: TerminationReason | None = None
        self.history: list[GenerationStats] = []
        self.generations = 0
        self.runtime_ms = 0

    def _new_id(self) -> str:
        return str(uuid.UUID(int=self.random.getrandbits(128), version=4))

    def _score_entries(self, entries: list[ScheduleEntry]) -> float:
        return self.fitness.score(Schedule.model_construct(entries=entries))

    def _random_candidate(self) -> Candidate:
        """Greedy random placement; hours that cannot be placed are left out."""
        entries: list[ScheduleEntry] = []
        occupancy = _Occupancy()
        for demand in self.index.demands:
            teachers = self.index.qualified_teachers.get(demand.subject_id, ())
            rooms = self.index.compatible_rooms.get(demand.subject_id, ())
            if not teachers or not rooms:
                continue
            for _hour in range(demand.hours):
                for _attempt in range(self.settings.max_placement_attempts):
                    teacher_id = self.random.choice(teachers)
                    slot = self.random.choice(self.slots)
                    if occupancy.busy(occupancy.teacher[teacher_id], slot):
                        continue
                    if occupancy.busy(occupancy.school_class[demand.class_id], slot):
                        continue
                    free_rooms = [room_id for room_id in rooms if not occupancy.busy(occupancy.room[room_id], slot)]
                    if not free_rooms:
                        continue
                    entry = ScheduleEntry(
                        id=self._new_id(),
                        teacher_id=teacher_id,
                        class_id=demand.class_id,
                        subject_id=demand.subject_id,
                        room_id=self.random.choice(free_rooms),
                        time_slot=slot,
                    )
                    entries.append(entry)
                    occupancy.record(entry)
                    break
        return Candidate(entries=entries)

    def _select(self, ranked: list[Candidate]) -> Candidate:
        contenders = [self.random.choice(ranked) for _ in range(self.settings.tournament_size)]
        return max(contenders, key=lambda candidate: candidate.fitness)

    def _crossover(self, parent_a: Candidate, parent_b: Candidate) -> list[ScheduleEntry]:
        shortest = min(len(parent_a.entries), len(parent_b.entries))
        cut = self.random.randrange(shortest) if shortest > 0 else 0
        return dedupe_entries(parent_a.entries[:cut] + parent_b.entries[cut:])

    def _mutate(self, entries: list[ScheduleEntry]) -> list[ScheduleEntry]:
        mutated = list(entries)
        for _ in range(self.random.randint(1, 3)):
            if not mutated:
                break
            position = self.random.randrange(len(mutated))
            entry = mutated[position]
            mutation = self.random.randrange(3)
            update: dict = {}
            if mutation == 0:
                update["time_slot"] = self.random.choice(self.slots)
            elif mutation == 1:
                rooms = self.index.compatible_rooms.get(entry.subject_id, ())
                if rooms:
                    update["room_id"] = self.random.choice(rooms)
            else:
                others = [
                    teacher_id
                    for teacher_id in self.index.qualified_teachers.get(entry.subject_id, ())
                    if teacher_id != entry.teacher_id
                ]
                if others:
                    update["teacher_id"] = self.random.choice(others)
            if update:
                update["id"] = self._new_id()
                mutated[position] = entry.model_copy(update=update)
        return mutated

    def _score_population(self, population: list[Candidate], pool: ThreadPoolExecutor | None) -> None:
        pending = [candidate for candidate in population if not candidate.scored]
        if pool is not None:
            scores = list(pool.map(self._score_entries, [candidate.entries for candidate in pending]))
        else:
            scores = [self._score_entries(candidate.entries) for candidate in pending]
        for candidate, score in zip(pending, scores):
            candidate.fitness = score
            candidate.scored = True

    def _next_generation(self, ranked: list[Candidate]) -> list[Candidate]:
        next_population = [candidate.clone() for candidate in ranked[: self.settings.elite_count]]
        while len(next_population) < self.settings.population_size:
            parent_a = self._select(ranked)
            parent_b = self._select(ranked)
            if self.random.random() < self.settings.crossover_rate:
                child = self._crossover(parent_a, parent_b)
            else:
                child = list(parent_a.entries)
            if self.random.random() < self.settings.mutation_rate:
                child = self._mutate(child)
            next_population.append(Candidate(entries=child))
        return next_population

    def _termination_reason(self, best_fitness: float, elapsed: float) -> TerminationReason | None:
        if best_fitness >= self.settings.convergence_threshold:
            return "converged"
        if self.generations >= self.settings.max_generations:
            return "max_generations_reached"
        if elapsed > self.settings.max_runtime:
            return "timed_out"
        return None

    def run(self) -> Schedule:
        start = perf_counter()
        logger.info(
            "Optimizer run classes=%d subjects=%d teachers=%d rooms=%d population=%d generations=%d",
            len(self.catalog.classes),
            len(self.catalog.subjects),
            len(self.catalog.teachers),
            len(self.catalog.rooms),
            self.settings.population_size,
            self.settings.max_generations,
        )
        self.index.log_unsatisfiable_demands()

        self.state = OptimizerState.initializing
        population = [self._random_candidate() for _ in range(self.settings.population_size)]
        best: Candidate | None = None

        self.state = OptimizerState.evolving
        workers = self.settings.evaluation_workers
        pool = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
        try:
            while True:
                self._score_population(population, pool)
                population.sort(key=lambda candidate: candidate.fitness, reverse=True)
                if best is None or population[0].fitness > best.fitness:
                    best = population[0].clone()

                self.generations += 1
                elapsed = perf_counter() - start
                average = sum(candidate.fitness for candidate in population) / len(population)
                self.history.append(
                    GenerationStats(
                        generation=self.generations,
                        best_fitness=population[0].fitness,
                        average_fitness=average,
                        elapsed_seconds=elapsed,
                    )
                )
                logger.debug(
                    "Generation %d best=%.2f avg=%.2f global_best=%.2f",
                    self.generations,
                    population[0].fitness,
                    average,
                    best.fitness,
                )
                self.progress.update_generation(self.generations, self.settings.max_generations)

                reason = self._termination_reason(best.fitness, elapsed)
                if reason is not None:
                    self.termination_reason = reason
                    self.state = OptimizerState(reason)
                    break
                population = self._next_generation(population)
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

        return self._finalize(best, start)

    def _finalize(self, best: Candidate, start: float) -> Schedule:
        self.state = OptimizerState.finalizing
        now = utc_now()
        schedule = Schedule(
            id=self._new_id(),
            name=f"Generated Schedule {now:%Y-%m-%d %H:%M}",
            entries=list(best.entries),
            created_at=now,
            last_modified=now,
            fitness_score=best.fitness,
        )
        try:
            self.index.ensure_schedule_references(schedule)
        except CatalogValidationError as exc:
            raise SchedulerError("Optimizer produced entries outside the catalog", details=exc.details) from exc
        schedule.conflicts = self.detector.detect(schedule)

        self.runtime_ms = int((perf_counter() - start) * 1000)
        self.progress.complete()
        self.state = OptimizerState.done
        logger.info(
            "Optimizer finished reason=%s generations=%d fitness=%.2f conflicts=%d entries=%d runtime_ms=%d",
            self.termination_reason,
            self.generations,
            best.fitness,
            len(schedule.conflicts),
            len(schedule.entries),
            self.runtime_ms,
        )
        return schedule


def dedupe_entries(entries: list[ScheduleEntry]) -> list[ScheduleEntry]:
    """Keep one entry per (class, day, start); a later entry replaces an earlier one in place."""
    by_key: dict[tuple[str, int, str], ScheduleEntry] = {}
    for entry in entries:
        by_key[(entry.class_id, entry.time_slot.day, entry.time_slot.start_time)] = entry
    return list(by_key.values())
