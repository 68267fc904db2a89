from functools import partial
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import ValidationError

from timetable_engine.core.config import get_settings
from timetable_engine.core.exceptions import CatalogValidationError, ConfigurationError
from timetable_engine.schemas.catalog import Catalog
from timetable_engine.schemas.conflict import ConflictReport
from timetable_engine.schemas.constraints import ConstraintResult
from timetable_engine.schemas.generator import (
    OptimizationJobCreated,
    OptimizationJobStatus,
    OptimizationSettings,
    OptimizeRequest,
    OptimizeResponse,
    ScheduleAnalysisRequest,
)
from timetable_engine.schemas.schedule import ScheduleMetrics
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.conflict_service import ConflictDetector
from timetable_engine.services.constraints import ConstraintEvaluator
from timetable_engine.services.evolution_scheduler import GeneticOptimizer
from timetable_engine.services.fitness import FitnessFunction
from timetable_engine.services.jobs import OptimizationJobRegistry, get_job_registry
from timetable_engine.services.progress import ProgressCallback

router = APIRouter()
logger = logging.getLogger(__name__)


def default_optimization_settings() -> OptimizationSettings:
    settings = get_settings()
    try:
        return OptimizationSettings(
            max_generations=settings.optimizer_max_generations,
            population_size=settings.optimizer_population_size,
            max_runtime=settings.optimizer_max_runtime_seconds,
            evaluation_workers=settings.optimizer_evaluation_workers,
        )
    except ValidationError as exc:
        raise ConfigurationError(
            f"Optimizer defaults in settings are invalid ({exc.error_count()} error(s))"
        ) from exc


def ensure_catalog_size(catalog: Catalog) -> None:
    limit = get_settings().max_catalog_entities
    total = (
        len(catalog.teachers)
        + len(catalog.classes)
        + len(catalog.subjects)
        + len(catalog.rooms)
        + len(catalog.sites)
    )
    if total > limit:
        raise CatalogValidationError(
            message="Catalog is too large",
            details={"entities": total, "limit": limit},
        )


def analysis_index(payload: ScheduleAnalysisRequest) -> CatalogIndex:
    ensure_catalog_size(payload.catalog)
    index = CatalogIndex(payload.catalog)
    index.ensure_schedule_references(payload.schedule)
    return index


def run_optimization(payload: OptimizeRequest, on_progress: ProgressCallback | None = None) -> OptimizeResponse:
    ensure_catalog_size(payload.catalog)
    options = payload.settings or default_optimization_settings()
    optimizer = GeneticOptimizer(payload.catalog, options, weights=payload.weights, on_progress=on_progress)
    schedule = optimizer.run()
    return OptimizeResponse(
        schedule=schedule,
        metrics=optimizer.fitness.metrics(schedule),
        runtime_ms=optimizer.runtime_ms,
        generations=optimizer.generations,
        termination_reason=optimizer.termination_reason,
        settings_used=options,
    )


@router.post("/schedules/optimize", response_model=OptimizeResponse)
def optimize_schedule(payload: OptimizeRequest) -> OptimizeResponse:
    return run_optimization(payload)


@router.post(
    "/schedules/jobs",
    response_model=OptimizationJobCreated,
    status_code=status.HTTP_202_ACCEPTED,
)
def submit_optimization_job(
    payload: OptimizeRequest,
    background_tasks: BackgroundTasks,
    registry: OptimizationJobRegistry = Depends(get_job_registry),
) -> OptimizationJobCreated:
    ensure_catalog_size(payload.catalog)
    job_id = registry.submit()
    background_tasks.add_task(registry.run, job_id, partial(run_optimization, payload))
    logger.info("Queued optimization job %s", job_id)
    return OptimizationJobCreated(job_id=job_id)


@router.get("/schedules/jobs/{job_id}", response_model=OptimizationJobStatus)
def get_optimization_job(
    job_id: str,
    registry: OptimizationJobRegistry = Depends(get_job_registry),
) -> OptimizationJobStatus:
    return registry.get(job_id)


@router.post("/schedules/conflicts", response_model=ConflictReport)
def detect_schedule_conflicts(payload: ScheduleAnalysisRequest) -> ConflictReport:
    index = analysis_index(payload)
    return ConflictDetector(index).report(payload.schedule)


@router.post("/schedules/validate", response_model=ConstraintResult)
def validate_schedule(payload: ScheduleAnalysisRequest) -> ConstraintResult:
    index = analysis_index(payload)
    return ConstraintEvaluator(index, payload.constraints).validate(payload.schedule)


@router.post("/schedules/metrics", response_model=ScheduleMetrics)
def schedule_metrics(payload: ScheduleAnalysisRequest) -> ScheduleMetrics:
    index = analysis_index(payload)
    evaluator = ConstraintEvaluator(index, payload.constraints)
    return FitnessFunction(index, payload.weights).metrics(payload.schedule, evaluator)
