"""
Status derivation.

A stage's effective status is a pure function of its persisted status and
the statuses of its dependencies:
- completed / in_progress are authoritative and returned unchanged
- otherwise the stage is ready (not_started) once every dependency is
  completed, and blocked until then
"""

from dataclasses import dataclass, field
from typing import Iterable

from stageline.schemas.stage import Stage, StageStatus
from stageline.services.graph import StageGraph


AUTHORITATIVE_STATUSES = frozenset({StageStatus.COMPLETED, StageStatus.IN_PROGRESS})


@dataclass
class BlockedStage:
    """A blocked stage and what it is waiting for."""
    stage: Stage
    blocking_stages: list[Stage] = field(default_factory=list)
    reason: str = ""


def derive_status(stage: Stage, dependency_statuses: Iterable[StageStatus]) -> StageStatus:
    """Effective display status of ``stage`` given its dependencies' statuses."""
    if stage.status in AUTHORITATIVE_STATUSES:
        return stage.status
    if all(status == StageStatus.COMPLETED for status in dependency_statuses):
        return StageStatus.NOT_STARTED
    return StageStatus.BLOCKED


def dependency_statuses(graph: StageGraph, stage_id: str) -> list[StageStatus]:
    return [dep.status for dep in graph.get_dependencies(stage_id)]


def derive_all(graph: StageGraph) -> dict[str, StageStatus]:
    """Derived status for every stage in the graph."""
    return {
        stage.id: derive_status(stage, dependency_statuses(graph, stage.id))
        for stage in graph.topological_order()
    }


def blocked_stages(graph: StageGraph) -> list[BlockedStage]:
    """
    Every stage that is blocked, by persisted or derived status, with
    the dependencies it is still waiting on.
    """
    derived = derive_all(graph)
    blocked = []
    for stage in graph.topological_order():
        if stage.status != StageStatus.BLOCKED and derived[stage.id] != StageStatus.BLOCKED:
            continue
        incomplete = [dep for dep in graph.get_dependencies(stage.id) if not dep.is_completed]
        if incomplete:
            reason = "Waiting for: " + ", ".join(dep.label for dep in incomplete)
        else:
            reason = "Dependencies not met"
        blocked.append(BlockedStage(stage=stage, blocking_stages=incomplete, reason=reason))
    return blocked


def pre_assigned_stages(graph: StageGraph) -> list[BlockedStage]:
    """Blocked stages that already have someone assigned."""
    return [entry for entry in blocked_stages(graph) if entry.stage.assigned_to]
