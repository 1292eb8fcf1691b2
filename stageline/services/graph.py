"""
Graph operations using NetworkX.

StageGraph holds every stage of one project and answers the structural
questions the scheduler, cascade calculator and critical path finder ask:
- Validation (unknown dependencies, self-references, cycles)
- Direct dependencies / dependents
- Deterministic topological order (ties by number_index)
"""

import networkx as nx

from stageline.exceptions import CycleError, NotFoundError, ValidationError
from stageline.schemas.stage import Stage


class StageGraph:
    """
    Dependency DAG for a project.

    Edges go from dependency -> dependent, so ``successors`` are the
    stages waiting on a node and ``predecessors`` are what it waits on.
    """

    def __init__(self, stages: list[Stage] | None = None):
        self.graph = nx.DiGraph()
        self._stages: dict[str, Stage] = {}
        if stages is not None:
            self.initialize(stages)

    def initialize(self, stages: list[Stage]) -> None:
        """
        Replace the graph with the given stages.

        Raises:
            ValidationError: duplicate or unknown ids, self-reference,
                negative duration, start after end
            CycleError: the dependency relation has a cycle
        """
        index: dict[str, Stage] = {}
        for stage in stages:
            if stage.id in index:
                raise ValidationError(f"Duplicate stage id {stage.id}")
            index[stage.id] = stage

        graph = nx.DiGraph()
        for stage in stages:
            _validate_stage(stage)
            graph.add_node(stage.id, number_index=stage.number_index)

        for stage in stages:
            for dep_id in stage.dependencies:
                if dep_id == stage.id:
                    raise ValidationError(
                        f"Stage {stage.label} cannot depend on itself",
                        details=[{"loc": ["dependencies"], "msg": dep_id, "type": "self_dependency"}],
                    )
                if dep_id not in index:
                    raise ValidationError(
                        f"Stage {stage.label} references unknown dependency {dep_id}",
                        details=[{"loc": ["dependencies"], "msg": dep_id, "type": "missing_dependency"}],
                    )
                graph.add_edge(dep_id, stage.id)

        try:
            cycle = nx.find_cycle(graph)
        except nx.NetworkXNoCycle:
            cycle = None
        if cycle is not None:
            raise CycleError([edge[0] for edge in cycle])

        self.graph = graph
        self._stages = index

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def __contains__(self, stage_id: str) -> bool:
        return stage_id in self._stages

    def __len__(self) -> int:
        return len(self._stages)

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages.values())

    def get_stage(self, stage_id: str) -> Stage:
        try:
            return self._stages[stage_id]
        except KeyError:
            raise NotFoundError("Stage", stage_id) from None

    def get_dependencies(self, stage_id: str) -> list[Stage]:
        """Stages this one waits on (direct only)."""
        self.get_stage(stage_id)
        return self._sorted(self.graph.predecessors(stage_id))

    def get_dependents(self, stage_id: str) -> list[Stage]:
        """Stages waiting on this one (direct only)."""
        self.get_stage(stage_id)
        return self._sorted(self.graph.successors(stage_id))

    def descendants(self, stage_id: str) -> set[str]:
        """All transitive dependents of a stage."""
        self.get_stage(stage_id)
        return nx.descendants(self.graph, stage_id)

    def dependency_chain(self, stage_id: str) -> list[Stage]:
        """Transitive dependencies in dependency order, ending with the stage itself."""
        self.get_stage(stage_id)
        chain = nx.ancestors(self.graph, stage_id) | {stage_id}
        return [s for s in self.topological_order() if s.id in chain]

    # -------------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------------

    def _sort_key(self, stage_id: str) -> tuple[int, str]:
        return (self._stages[stage_id].number_index, stage_id)

    def _sorted(self, stage_ids) -> list[Stage]:
        return [self._stages[sid] for sid in sorted(stage_ids, key=self._sort_key)]

    def topological_order(self) -> list[Stage]:
        """
        Deterministic topological order.

        For every edge (u, v), u comes first; among ready nodes the
        lowest number_index (then id) wins.
        """
        try:
            order = list(nx.lexicographical_topological_sort(self.graph, key=self._sort_key))
        except nx.NetworkXUnfeasible:
            raise CycleError() from None
        return [self._stages[sid] for sid in order]


def _validate_stage(stage: Stage) -> None:
    if stage.estimated_duration is not None and stage.estimated_duration < 0:
        raise ValidationError(
            f"Stage {stage.label} has negative duration {stage.estimated_duration}",
            details=[{"loc": ["estimated_duration"], "msg": str(stage.estimated_duration), "type": "negative_duration"}],
        )
    if stage.start_date and stage.end_date and stage.start_date > stage.end_date:
        raise ValidationError(
            f"Stage {stage.label} starts after it ends",
            details=[{"loc": ["start_date"], "msg": stage.start_date.isoformat(), "type": "invalid_range"}],
        )
