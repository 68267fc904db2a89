from __future__ import annotations

from dataclasses import dataclass

from timetable_engine.schemas.generator import FitnessWeights
from timetable_engine.schemas.schedule import Schedule, ScheduleMetrics
from timetable_engine.services import analysis
from timetable_engine.services.catalog_index import CatalogIndex
from timetable_engine.services.conflict_service import ConflictDetector
from timetable_engine.services.constraints import ConstraintEvaluator

BASELINE_SCORE = 1000.0


@dataclass(frozen=True)
class FitnessBreakdown:
    conflicts: int
    preference_ratio: float
    room_balance: float
    travel_violations: int
    travel_transitions: int
    compactness: float
    unmet_hours: int
    availability_violations: int
    score: float


class FitnessFunction:
    """Scores a schedule; higher is better, floor 0.

    Holds no state between calls, so equal schedules always score equally.
    """

    def __init__(self, index: CatalogIndex, weights: FitnessWeights | None = None) -> None:
        self.index = index
        self.weights = weights or FitnessWeights()
        self.detector = ConflictDetector(index)

    def __call__(self, schedule: Schedule) -> float:
        return self.score(schedule)

    def score(self, schedule: Schedule) -> float:
        return self.breakdown(schedule).score

    def breakdown(self, schedule: Schedule) -> FitnessBreakdown:
        weights = self.weights
        conflicts = self.detector.count(schedule)
        preference_ratio = analysis.teacher_preference_ratio(self.index, schedule)
        room_balance = analysis.room_utilization_balance(self.index, schedule)
        transitions, travel_violations = analysis.travel_transitions(self.index, schedule)
        compactness = analysis.compactness_score(self.index, schedule)
        unmet_hours = sum(item.amount for item in analysis.weekly_hour_deviations(self.index, schedule))
        unavailable = len(analysis.unavailable_entries(self.index, schedule))

        score = BASELINE_SCORE
        score -= weights.conflict * conflicts
        score += weights.teacher_preference * preference_ratio
        score += weights.room_balance * room_balance
        score -= weights.travel * len(travel_violations)
        score += weights.compactness * compactness
        score -= weights.unmet_hours * unmet_hours
        score -= weights.availability * unavailable

        return FitnessBreakdown(
            conflicts=conflicts,
            preference_ratio=preference_ratio,
            room_balance=room_balance,
            travel_violations=len(travel_violations),
            travel_transitions=transitions,
            compactness=compactness,
            unmet_hours=unmet_hours,
            availability_violations=unavailable,
            score=max(0.0, score),
        )

    def metrics(self, schedule: Schedule, evaluator: ConstraintEvaluator | None = None) -> ScheduleMetrics:
        self.index.ensure_schedule_references(schedule)
        evaluator = evaluator or ConstraintEvaluator(self.index)
        details = self.breakdown(schedule)
        hard, soft = evaluator.count_violations(schedule)
        if details.travel_transitions:
            travel_optimization = 1.0 - details.travel_violations / details.travel_transitions
        else:
            travel_optimization = 1.0
        return ScheduleMetrics(
            total_conflicts=details.conflicts,
            hard_constraint_violations=hard,
            soft_constraint_violations=soft,
            teacher_satisfaction=min(1.0, max(0.0, details.preference_ratio)),
            room_utilization=min(1.0, max(0.0, details.room_balance)),
            travel_optimization=min(1.0, max(0.0, travel_optimization)),
            overall_score=details.score,
        )
