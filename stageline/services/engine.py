"""
Per-project dependency engine.

One instance per open project, rebuilt explicitly with ``refresh`` after
every mutation. It caches the graph and the critical path so cascade
previews stay cheap between refreshes.
"""

from dataclasses import dataclass
from datetime import date, timedelta

from stageline.logging_config import get_logger
from stageline.schemas.stage import Stage
from stageline.services.cascade import CascadeCalculator, CascadeEffect
from stageline.services.critical_path import critical_path
from stageline.services.graph import StageGraph
from stageline.services.scheduler import recompute_all

logger = get_logger(__name__)

# A stage with more dependents than this holds up too much of the plan
HIGH_DEPENDENCY_THRESHOLD = 3
# Critical-path stages longer than this many days are worth splitting
LONG_CRITICAL_DURATION = 7
# Days loaded below this share of the average count as underutilized
UNDERUTILIZED_RATIO = 0.5
UNDERUTILIZED_WINDOW_DAYS = 7


@dataclass
class Bottleneck:
    stage: Stage
    type: str  # "high_dependency" or "critical_path_duration"
    dependent_count: int = 0
    duration: int = 0


@dataclass
class DailyLoad:
    day: date
    count: int  # Stages active that day


@dataclass
class UnderutilizedPeriod:
    start: date
    end: date
    utilization: float  # Load relative to the average day


@dataclass
class Suggestion:
    type: str
    suggestion: str
    impact: str
    stage: Stage | None = None
    period: UnderutilizedPeriod | None = None


class DependencyEngine:
    """Scheduling state for a single project."""

    def __init__(self, stages: list[Stage] | None = None, deadline: date | None = None):
        self.deadline = deadline
        self.graph = StageGraph()
        self.critical_path: list[Stage] = []
        if stages is not None:
            self.refresh(stages)

    def refresh(self, stages: list[Stage]) -> None:
        """Rebuild the graph and critical path from the latest stages."""
        self.graph = StageGraph(stages)
        self.critical_path = critical_path(stages)
        logger.debug(
            f"Engine refreshed: {len(stages)} stages, "
            f"critical path of {len(self.critical_path)}"
        )

    @property
    def stages(self) -> list[Stage]:
        return self.graph.stages

    def is_on_critical_path(self, stage_id: str) -> bool:
        return any(stage.id == stage_id for stage in self.critical_path)

    def calculate_cascade_effect(
        self,
        stage_id: str,
        new_start: date,
        new_end: date,
        *,
        pull_earlier: bool = False,
    ) -> CascadeEffect:
        calculator = CascadeCalculator(
            self.graph,
            deadline=self.deadline,
            critical_path_ids=[stage.id for stage in self.critical_path],
        )
        return calculator.calculate_cascade_effect(
            stage_id, new_start, new_end, pull_earlier=pull_earlier
        )

    def recompute(self, project_start_date: date, *, keep_completed: bool = False) -> list[Stage]:
        """Full schedule recompute; refreshes the engine with the result."""
        updated = recompute_all(self.stages, project_start_date, keep_completed=keep_completed)
        self.refresh(updated)
        return updated

    def apply_cascade(
        self,
        effect: CascadeEffect,
        new_start: date,
        new_end: date,
    ) -> list[Stage]:
        """
        Apply a valid cascade in memory.

        Returns copies of the edited stage and every shifted stage, and
        refreshes the engine with them. The caller persists the returned
        stages; on a failed write it re-fetches and refreshes again.

        Raises:
            FinalizedStageError / ValidationError / CascadeConflictError:
                the effect has blocking conflicts
        """
        effect.raise_for_conflicts()

        new_windows = {effect.stage_id: (new_start, new_end)}
        for item in effect.affected:
            new_windows[item.stage_id] = (item.new_start, item.new_end)

        changed = []
        stages = []
        for stage in self.stages:
            if stage.id in new_windows:
                start, end = new_windows[stage.id]
                stage = stage.model_copy(update={"start_date": start, "end_date": end}, deep=True)
                changed.append(stage)
            stages.append(stage)

        self.refresh(stages)
        logger.info(f"Applied cascade from {effect.stage_id}: {len(changed)} stage(s) moved")
        return changed

    # -------------------------------------------------------------------------
    # Schedule analysis
    # -------------------------------------------------------------------------

    def identify_bottlenecks(self) -> list[Bottleneck]:
        """Stages many others wait on, and long stages on the critical path."""
        bottlenecks = []
        for stage in self.graph.topological_order():
            dependents = self.graph.get_dependents(stage.id)
            if len(dependents) > HIGH_DEPENDENCY_THRESHOLD:
                bottlenecks.append(Bottleneck(
                    stage=stage,
                    type="high_dependency",
                    dependent_count=len(dependents),
                ))
            if self.is_on_critical_path(stage.id) and stage.duration > LONG_CRITICAL_DURATION:
                bottlenecks.append(Bottleneck(
                    stage=stage,
                    type="critical_path_duration",
                    duration=stage.duration,
                ))
        return bottlenecks

    def calculate_resource_load(self) -> list[DailyLoad]:
        """
        Number of stages active on each day from the first start to the last end.

        Both dates of a stage count as active days. Stages without both
        dates are left out; empty when no stage is scheduled.
        """
        scheduled = [s for s in self.stages if s.start_date and s.end_date]
        if not scheduled:
            return []

        project_start = min(s.start_date for s in scheduled)
        project_end = max(s.end_date for s in scheduled)

        load = []
        day = project_start
        while day <= project_end:
            count = sum(1 for s in scheduled if s.start_date <= day <= s.end_date)
            load.append(DailyLoad(day=day, count=count))
            day += timedelta(days=1)
        return load

    def find_underutilized_periods(self) -> list[UnderutilizedPeriod]:
        """Days loaded at less than half the average, each opening a one-week window."""
        load = self.calculate_resource_load()
        if not load:
            return []
        average = sum(entry.count for entry in load) / len(load)
        if average == 0:
            return []

        return [
            UnderutilizedPeriod(
                start=entry.day,
                end=entry.day + timedelta(days=UNDERUTILIZED_WINDOW_DAYS),
                utilization=entry.count / average,
            )
            for entry in load
            if entry.count < average * UNDERUTILIZED_RATIO
        ]

    def suggest_optimal_schedule(self) -> list[Suggestion]:
        """Suggestions for relieving bottlenecks and filling quiet periods."""
        suggestions = [
            Suggestion(
                type="bottleneck_resolution",
                stage=bottleneck.stage,
                suggestion=(
                    f"Consider parallelizing {bottleneck.stage.label} "
                    f"with other stages or adding resources"
                ),
                impact="high",
            )
            for bottleneck in self.identify_bottlenecks()
        ]
        for period in self.find_underutilized_periods():
            suggestions.append(Suggestion(
                type="resource_optimization",
                period=period,
                suggestion=(
                    f"Move non-critical stages to {period.start:%b} {period.start.day} - "
                    f"{period.end:%b} {period.end.day}"
                ),
                impact="medium",
            ))
        return suggestions
