from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from timetable_engine.schemas.catalog import Catalog
from timetable_engine.schemas.constraints import ConstraintDefinition
from timetable_engine.schemas.schedule import Schedule, ScheduleMetrics
from timetable_engine.schemas.time_slot import WeeklyGrid


class FitnessWeights(BaseModel):
    conflict: float = Field(default=50.0, gt=0, le=5000)
    teacher_preference: float = Field(default=100.0, ge=0, le=5000)
    room_balance: float = Field(default=50.0, ge=0, le=5000)
    travel: float = Field(default=30.0, ge=0, le=5000)
    compactness: float = Field(default=25.0, ge=0, le=5000)
    unmet_hours: float = Field(default=50.0, ge=0, le=5000)
    availability: float = Field(default=40.0, ge=0, le=5000)

    @model_validator(mode="after")
    def validate_ordering(self) -> "FitnessWeights":
        if max(self.travel, self.availability, self.unmet_hours) > self.conflict:
            raise ValueError("conflict weight must stay the dominant penalty")
        return self


TerminationReason = Literal["converged", "timed_out", "max_generations_reached"]


class OptimizationSettings(BaseModel):
    max_generations: int = Field(default=100, ge=1, le=1_000_000)
    population_size: int = Field(default=50, ge=2, le=5000)
    mutation_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    crossover_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    elitism_rate: float = Field(default=0.2, ge=0.0, le=1.0)
    convergence_threshold: float = Field(default=950.0, ge=0.0)
    max_runtime: float = Field(default=30.0, gt=0.0, le=86_400.0)
    tournament_size: int = Field(default=3, ge=1, le=50)
    max_placement_attempts: int = Field(default=50, ge=1, le=10_000)
    random_seed: int | None = Field(default=None, ge=0, le=2_000_000_000)
    evaluation_workers: int = Field(default=1, ge=1, le=64)
    grid: WeeklyGrid = Field(default_factory=WeeklyGrid)

    @property
    def elite_count(self) -> int:
        count = int(self.population_size * self.elitism_rate)
        if self.elitism_rate > 0:
            count = max(1, count)
        return min(count, self.population_size)


class GenerationStats(BaseModel):
    generation: int
    best_fitness: float
    average_fitness: float
    elapsed_seconds: float


class OptimizeRequest(BaseModel):
    catalog: Catalog
    settings: OptimizationSettings | None = None
    weights: FitnessWeights | None = None


class OptimizeResponse(BaseModel):
    schedule: Schedule
    metrics: ScheduleMetrics
    runtime_ms: int
    generations: int
    termination_reason: TerminationReason
    settings_used: OptimizationSettings


class ScheduleAnalysisRequest(BaseModel):
    catalog: Catalog
    schedule: Schedule
    constraints: list[ConstraintDefinition] | None = None
    weights: FitnessWeights | None = None


class OptimizationJobCreated(BaseModel):
    job_id: str


class OptimizationJobStatus(BaseModel):
    job_id: str
    status: Literal["pending", "running", "completed", "failed"]
    progress: float = Field(ge=0.0, le=100.0)
    submitted_at: datetime
    finished_at: datetime | None = None
    result: OptimizeResponse | None = None
    error: str | None = None
