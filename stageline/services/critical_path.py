"""
Critical Path Method (CPM) implementation.

Works in day offsets from the project start so the result does not depend
on calendar dates:
- Forward pass: Earliest Start (ES), Earliest Finish (EF = ES + duration)
- Backward pass: Latest Start (LS), Latest Finish (LF)
- Slack/Float: LS - ES
- Critical Path: the longest duration-weighted dependency chain
"""

from dataclasses import dataclass

from stageline.logging_config import get_logger
from stageline.schemas.stage import Stage
from stageline.services.graph import StageGraph

logger = get_logger(__name__)


@dataclass
class StageAnalysis:
    """Analysis results for a single stage."""
    stage_id: str
    name: str
    duration: int
    # Forward pass results
    earliest_start: int
    earliest_finish: int
    # Backward pass results
    latest_start: int
    latest_finish: int
    # Slack
    total_slack: int  # Days of slack (0 = critical)
    is_critical: bool


@dataclass
class ProjectAnalysis:
    """Complete CPM analysis for a project."""
    project_length: int  # Max earliest finish, in days
    stage_analyses: list[StageAnalysis]
    critical_path_stage_ids: list[str]


def _forward_pass(graph: StageGraph) -> tuple[list[Stage], dict[str, int], dict[str, str | None]]:
    """EF for every stage plus the predecessor that set it."""
    order = graph.topological_order()
    finish: dict[str, int] = {}
    predecessor: dict[str, str | None] = {}

    for stage in order:
        best = None
        for dep in graph.get_dependencies(stage.id):
            # Dependencies come sorted by number_index, strict > keeps the lowest on ties
            if best is None or finish[dep.id] > finish[best]:
                best = dep.id
        start = finish[best] if best is not None else 0
        finish[stage.id] = start + stage.duration
        predecessor[stage.id] = best

    return order, finish, predecessor


def critical_path(stages: list[Stage]) -> list[Stage]:
    """
    The chain of stages that determines the earliest project completion.

    Returns stages from first to last; empty when there are no stages.

    Raises:
        CycleError / ValidationError: from building the graph
    """
    graph = StageGraph(stages)
    order, finish, predecessor = _forward_pass(graph)
    if not order:
        return []

    end_id = order[0].id
    for stage in order:
        if finish[stage.id] > finish[end_id]:
            end_id = stage.id

    path = []
    current = end_id
    while current is not None:
        path.append(graph.get_stage(current))
        current = predecessor[current]
    path.reverse()
    return path


def analyze_critical_path(stages: list[Stage]) -> ProjectAnalysis:
    """
    Perform complete CPM analysis.

    Returns slack for every stage; the critical path itself is the chain
    from ``critical_path``.
    """
    graph = StageGraph(stages)
    order, finish, _ = _forward_pass(graph)
    if not order:
        return ProjectAnalysis(project_length=0, stage_analyses=[], critical_path_stage_ids=[])

    project_length = max(finish.values())

    # =========================================================================
    # Backward Pass: Calculate LF and LS
    # =========================================================================
    latest_start: dict[str, int] = {}
    latest_finish: dict[str, int] = {}
    for stage in reversed(order):
        dependents = graph.get_dependents(stage.id)
        if not dependents:
            lf = project_length
        else:
            lf = min(latest_start[d.id] for d in dependents)
        latest_finish[stage.id] = lf
        latest_start[stage.id] = lf - stage.duration

    analyses = []
    for stage in order:
        es = finish[stage.id] - stage.duration
        slack = latest_start[stage.id] - es
        analyses.append(StageAnalysis(
            stage_id=stage.id,
            name=stage.name,
            duration=stage.duration,
            earliest_start=es,
            earliest_finish=finish[stage.id],
            latest_start=latest_start[stage.id],
            latest_finish=latest_finish[stage.id],
            total_slack=slack,
            is_critical=slack == 0,
        ))

    path_ids = [stage.id for stage in critical_path(stages)]
    logger.debug(f"CPM analysis: length={project_length} days, critical path={path_ids}")

    return ProjectAnalysis(
        project_length=project_length,
        stage_analyses=analyses,
        critical_path_stage_ids=path_ids,
    )
