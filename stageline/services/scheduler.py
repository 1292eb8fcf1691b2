"""
Schedule computation for a whole project.

This is the Critical Path Method forward pass over the stage DAG:
- Stages without dependencies start on the project start date
- Dependent.Start = Max(Dependency.End) + 1 day
- Stage.End = Stage.Start + duration
- Stages are visited in topological order, so each date is computed once
"""

from datetime import date, timedelta

from stageline.exceptions import InternalConsistencyError
from stageline.logging_config import get_logger
from stageline.schemas.stage import Stage
from stageline.services.graph import StageGraph

logger = get_logger(__name__)


def calc_end_date(start: date, duration: int) -> date:
    """End date of a window that starts on ``start`` and lasts ``duration`` days."""
    return start + timedelta(days=duration)


def earliest_start(dependency_ends: list[date]) -> date:
    """Day after the latest dependency ends."""
    return max(dependency_ends) + timedelta(days=1)


def recompute_all(
    stages: list[Stage],
    project_start_date: date,
    *,
    keep_completed: bool = False,
) -> list[Stage]:
    """
    Recompute start/end dates for every stage.

    Args:
        stages: All stages of the project; never mutated
        project_start_date: Start date for stages without dependencies
        keep_completed: Keep recorded dates of completed stages that have
            both dates, and schedule their dependents from them

    Returns:
        Updated copies, in topological order

    Raises:
        CycleError / ValidationError: from building the graph
        InternalConsistencyError: a dependency was not scheduled before its dependent
    """
    graph = StageGraph(stages)

    computed: dict[str, tuple[date, date]] = {}
    updated = []

    for stage in graph.topological_order():
        if keep_completed and stage.is_completed and stage.start_date and stage.end_date:
            computed[stage.id] = (stage.start_date, stage.end_date)
            updated.append(stage.model_copy(deep=True))
            continue

        if not stage.dependencies:
            start = project_start_date
        else:
            dependency_ends = []
            for dep_id in stage.dependencies:
                if dep_id not in computed:
                    logger.critical(
                        f"Topological order reached {stage.id} before its dependency {dep_id}"
                    )
                    raise InternalConsistencyError(
                        f"Dependency {dep_id} of stage {stage.id} has no computed end date",
                        stage_id=stage.id,
                    )
                dependency_ends.append(computed[dep_id][1])
            start = earliest_start(dependency_ends)

        end = calc_end_date(start, stage.duration)
        computed[stage.id] = (start, end)
        updated.append(stage.model_copy(update={"start_date": start, "end_date": end}, deep=True))

    logger.debug(f"Recomputed {len(updated)} stages from {project_start_date}")
    return updated
