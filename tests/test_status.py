"""
Tests for status derivation.
"""

import pytest

from stageline.schemas import StageStatus
from stageline.services.graph import StageGraph
from stageline.services.status import blocked_stages, derive_status, pre_assigned_stages

COMPLETED = StageStatus.COMPLETED
IN_PROGRESS = StageStatus.IN_PROGRESS
BLOCKED = StageStatus.BLOCKED
NOT_STARTED = StageStatus.NOT_STARTED


class TestDeriveStatus:

    def test_blocked_while_any_dependency_incomplete(self, stage):
        """D deps=[A (completed), C (in progress)] is blocked."""
        d = stage("D", 4, deps=["A", "C"])

        assert derive_status(d, [COMPLETED, IN_PROGRESS]) == BLOCKED

    def test_ready_when_all_dependencies_completed(self, stage):
        d = stage("D", 4, deps=["A", "C"])

        assert derive_status(d, [COMPLETED, COMPLETED]) == NOT_STARTED

    def test_ready_without_dependencies(self, stage):
        assert derive_status(stage("A", 1), []) == NOT_STARTED

    def test_persisted_blocked_is_rederived(self, stage):
        x = stage("X", 1, deps=["A"], status=BLOCKED)

        assert derive_status(x, [COMPLETED]) == NOT_STARTED

    @pytest.mark.parametrize("persisted", [COMPLETED, IN_PROGRESS])
    def test_authoritative_statuses_unchanged(self, stage, persisted):
        s = stage("S", 1, deps=["A"], status=persisted)

        assert derive_status(s, [NOT_STARTED]) == persisted

    def test_pure(self, stage):
        d = stage("D", 4, deps=["A"], status=BLOCKED)
        before = d.model_dump()

        first = derive_status(d, [COMPLETED])
        second = derive_status(d, [COMPLETED])

        assert first == second
        assert d.model_dump() == before


class TestBlockedStages:

    def test_reasons_name_incomplete_dependencies(self, stage):
        graph = StageGraph([
            stage("A", 1, name="Contract", status=COMPLETED),
            stage("B", 2, name="Kickoff", status=IN_PROGRESS),
            stage("C", 3, name="Research", deps=["A", "B"]),
            stage("D", 4, name="Memo", deps=["A"]),
        ])

        blocked = blocked_stages(graph)

        assert [entry.stage.id for entry in blocked] == ["C"]
        assert [s.id for s in blocked[0].blocking_stages] == ["B"]
        assert blocked[0].reason == "Waiting for: Kickoff"

    def test_pre_assigned_filters_assignees(self, stage):
        graph = StageGraph([
            stage("A", 1),
            stage("B", 2, deps=["A"], assigned_to="dana"),
            stage("C", 3, deps=["A"]),
        ])

        assert [entry.stage.id for entry in pre_assigned_stages(graph)] == ["B"]
