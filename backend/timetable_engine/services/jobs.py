from __future__ import annotations

from collections import deque
import logging
from threading import Lock
from typing import Callable, Deque
import uuid

from timetable_engine.core.exceptions import AppError, JobNotFoundError
from timetable_engine.schemas.generator import OptimizationJobStatus, OptimizeResponse
from timetable_engine.schemas.schedule import utc_now
from timetable_engine.services.progress import ProgressCallback

logger = logging.getLogger(__name__)

JobRunner = Callable[[ProgressCallback], OptimizeResponse]

DEFAULT_MAX_FINISHED_JOBS = 100


class OptimizationJobRegistry:
    """In-memory store of background optimization runs, safe to poll from other threads.

    Only the most recent ``max_finished_jobs`` completed or failed jobs are
    kept; older results are evicted as new jobs finish.
    """

    def __init__(self, max_finished_jobs: int = DEFAULT_MAX_FINISHED_JOBS) -> None:
        self._jobs: dict[str, OptimizationJobStatus] = {}
        self._finished: Deque[str] = deque()
        self._max_finished = max(1, max_finished_jobs)
        self._lock = Lock()

    def submit(self) -> str:
        job_id = str(uuid.uuid4())
        with self._lock:
            self._jobs[job_id] = OptimizationJobStatus(
                job_id=job_id,
                status="pending",
                progress=0.0,
                submitted_at=utc_now(),
            )
        return job_id

    def _update(self, job_id: str, **changes) -> bool:
        """Apply changes to a job; returns False when the job is gone (cleared or evicted)."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            self._jobs[job_id] = job.model_copy(update=changes)
        return True

    def _finish(self, job_id: str, **changes) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                logger.warning("Optimization job %s was removed before it finished", job_id)
                return
            self._jobs[job_id] = job.model_copy(update={**changes, "finished_at": utc_now()})
            self._finished.append(job_id)
            while len(self._finished) > self._max_finished:
                self._jobs.pop(self._finished.popleft(), None)

    def run(self, job_id: str, runner: JobRunner) -> None:
        if not self._update(job_id, status="running"):
            logger.warning("Optimization job %s was removed before it started", job_id)
            return
        logger.info("Optimization job %s started", job_id)
        try:
            result = runner(lambda value: self._update(job_id, progress=value))
        except AppError as exc:
            logger.warning("Optimization job %s failed: %s", job_id, exc.message)
            self._finish(job_id, status="failed", error=exc.message)
            return
        except Exception as exc:
            logger.exception("Optimization job %s crashed", job_id)
            self._finish(job_id, status="failed", error=str(exc))
            return
        self._finish(job_id, status="completed", progress=100.0, result=result)
        logger.info("Optimization job %s completed", job_id)

    def get(self, job_id: str) -> OptimizationJobStatus:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()
            self._finished.clear()


_registry = OptimizationJobRegistry()


def get_job_registry() -> OptimizationJobRegistry:
    return _registry


def clear_job_registry() -> None:
    _registry.clear()
