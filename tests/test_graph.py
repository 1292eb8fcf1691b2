"""
Tests for the stage dependency graph.
"""

from datetime import date

import pytest

from stageline.exceptions import CycleError, NotFoundError, ValidationError
from stageline.services.graph import StageGraph


class TestInitialize:

    def test_two_stage_cycle_rejected(self, stage):
        """A deps=[B], B deps=[A] is a cycle."""
        stages = [stage("A", 1, deps=["B"]), stage("B", 2, deps=["A"])]

        with pytest.raises(CycleError) as exc_info:
            StageGraph(stages)

        assert set(exc_info.value.cycle) == {"A", "B"}

    def test_long_cycle_rejected(self, stage):
        stages = [
            stage("A", 1, deps=["C"]),
            stage("B", 2, deps=["A"]),
            stage("C", 3, deps=["B"]),
            stage("D", 4),
        ]

        with pytest.raises(CycleError):
            StageGraph(stages)

    def test_unknown_dependency_rejected(self, stage):
        with pytest.raises(ValidationError, match="unknown dependency Z"):
            StageGraph([stage("A", 1, deps=["Z"])])

    def test_self_dependency_rejected(self, stage):
        with pytest.raises(ValidationError, match="cannot depend on itself"):
            StageGraph([stage("A", 1, deps=["A"])])

    def test_negative_duration_rejected(self, stage):
        with pytest.raises(ValidationError, match="negative duration"):
            StageGraph([stage("A", 1, duration=-1)])

    def test_start_after_end_rejected(self, stage):
        bad = stage("A", 1, start_date=date(2025, 1, 5), end_date=date(2025, 1, 1))

        with pytest.raises(ValidationError, match="starts after it ends"):
            StageGraph([bad])

    def test_duplicate_id_rejected(self, stage):
        with pytest.raises(ValidationError, match="Duplicate"):
            StageGraph([stage("A", 1), stage("A", 2)])

    def test_failed_initialize_keeps_previous_graph(self, stage):
        graph = StageGraph([stage("A", 1), stage("B", 2, deps=["A"])])

        with pytest.raises(CycleError):
            graph.initialize([stage("X", 1, deps=["Y"]), stage("Y", 2, deps=["X"])])

        assert [s.id for s in graph.topological_order()] == ["A", "B"]


class TestQueries:

    def test_direct_neighbours(self, fan_out_stages):
        graph = StageGraph(fan_out_stages)

        assert [s.id for s in graph.get_dependents("A")] == ["B", "C"]
        assert [s.id for s in graph.get_dependencies("C")] == ["A"]
        assert graph.get_dependencies("A") == []

    def test_unknown_stage(self, fan_out_stages):
        graph = StageGraph(fan_out_stages)

        with pytest.raises(NotFoundError):
            graph.get_dependents("nope")

    def test_descendants_are_transitive(self, stage):
        graph = StageGraph([
            stage("A", 1),
            stage("B", 2, deps=["A"]),
            stage("C", 3, deps=["B"]),
            stage("D", 4),
        ])

        assert graph.descendants("A") == {"B", "C"}
        assert graph.descendants("D") == set()

    def test_dependency_chain(self, stage):
        graph = StageGraph([
            stage("A", 1),
            stage("B", 2, deps=["A"]),
            stage("C", 3, deps=["B"]),
            stage("D", 4),
        ])

        assert [s.id for s in graph.dependency_chain("C")] == ["A", "B", "C"]


class TestTopologicalOrder:

    def test_ties_broken_by_number_index(self, stage):
        # Input order deliberately scrambled
        graph = StageGraph([
            stage("late", 3),
            stage("early", 1),
            stage("middle", 2),
        ])

        assert [s.id for s in graph.topological_order()] == ["early", "middle", "late"]

    def test_dependencies_come_first(self, stage):
        # Higher number_index stage is a dependency of a lower one
        graph = StageGraph([
            stage("A", 1, deps=["B"]),
            stage("B", 5),
            stage("C", 2),
        ])

        order = [s.id for s in graph.topological_order()]

        assert order.index("B") < order.index("A")
        assert order == ["C", "B", "A"]

    def test_order_is_deterministic(self, stage):
        stages = [stage(f"S{i}", i % 3, deps=[f"S{i - 1}"] if i % 2 else []) for i in range(10)]

        first = [s.id for s in StageGraph(stages).topological_order()]
        second = [s.id for s in StageGraph(list(reversed(stages))).topological_order()]

        assert first == second
