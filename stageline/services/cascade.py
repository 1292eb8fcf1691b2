"""
Cascade calculation for manual date edits.

Given a proposed new window for one stage, work out how every downstream
stage has to move, without persisting anything. Dependents are visited in
topological order so a stage with several dependencies sees all of their
new end dates before its own start is decided:

    Dependent.Start = Max(Dependency.End) + 1 day

Completed stages are constraints: they are never moved, and a cascade
that would have to move one is reported as a critical conflict.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterable

from stageline.exceptions import (
    CascadeConflictError,
    FinalizedStageError,
    ValidationError,
)
from stageline.logging_config import get_logger
from stageline.schemas.stage import Stage
from stageline.services.graph import StageGraph
from stageline.services.scheduler import calc_end_date, earliest_start

logger = get_logger(__name__)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}

# Conflicts at or above this severity make a cascade invalid
BLOCKING_SEVERITIES = frozenset({Severity.HIGH, Severity.CRITICAL})


@dataclass
class AffectedStage:
    """A downstream stage that has to move."""
    stage_id: str
    stage_name: str
    original_start: date
    original_end: date | None
    new_start: date
    new_end: date
    adjustment: int  # Days; positive = later, negative = earlier
    reason: str


@dataclass
class Conflict:
    """Something that stands in the way of applying a cascade."""
    stage_id: str
    severity: Severity
    type: str
    reason: str
    error_code: str | None = None
    dependency_id: str | None = None
    resource: str | None = None
    stage_ids: list[str] = field(default_factory=list)

    @property
    def is_blocking(self) -> bool:
        return self.severity in BLOCKING_SEVERITIES

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_id": self.stage_id,
            "severity": self.severity.value,
            "type": self.type,
            "reason": self.reason,
            "error_code": self.error_code,
            "dependency_id": self.dependency_id,
            "resource": self.resource,
            "stage_ids": list(self.stage_ids),
        }


@dataclass
class ImpactSummary:
    total_affected: int
    critical_path_impact: bool
    max_delay: int
    conflict_count: int
    severity: Severity
    message: str


@dataclass
class CascadeEffect:
    """Complete result of a cascade calculation."""
    stage_id: str
    valid: bool
    affected: list[AffectedStage]
    conflicts: list[Conflict]
    summary: ImpactSummary

    def raise_for_conflicts(self) -> None:
        """Raise the error matching the worst blocking conflict, if any."""
        finalized = [c for c in self.conflicts if c.type == "finalized_stage"]
        if finalized:
            exc = FinalizedStageError(finalized[0].stage_id)
            exc.details = [c.to_dict() for c in self.conflicts]
            raise exc
        for conflict in self.conflicts:
            if conflict.type == "invalid_range":
                raise ValidationError(conflict.reason, details=[conflict.to_dict()])
        if not self.valid:
            raise CascadeConflictError(
                self.summary.message,
                conflicts=[c.to_dict() for c in self.conflicts],
            )


class CascadeCalculator:
    """
    Computes cascade effects over a StageGraph snapshot.

    Args:
        graph: The project's validated dependency graph
        deadline: Optional project deadline; shifted ends past it are critical
        critical_path_ids: Stage ids on the critical path, for the summary
    """

    def __init__(
        self,
        graph: StageGraph,
        deadline: date | None = None,
        critical_path_ids: Iterable[str] = (),
    ):
        self.graph = graph
        self.deadline = deadline
        self.critical_path_ids = set(critical_path_ids)

    def calculate_cascade_effect(
        self,
        stage_id: str,
        new_start: date,
        new_end: date,
        *,
        pull_earlier: bool = False,
    ) -> CascadeEffect:
        """
        Calculate the ripple effect of moving ``stage_id`` to [new_start, new_end].

        By default dependents only move later, and only when the new
        upstream dates leave them starting too early. With ``pull_earlier``
        every dependent snaps to the earliest start its dependencies allow,
        which also pulls the schedule in when an edit shrinks.

        Raises:
            NotFoundError: unknown stage id
        """
        stage = self.graph.get_stage(stage_id)

        # A completed target is rejected whatever window is proposed
        if stage.is_completed:
            return self._rejected(stage, Conflict(
                stage_id=stage.id,
                severity=Severity.CRITICAL,
                type="finalized_stage",
                reason=f"{stage.label} is completed; its dates cannot be changed",
                error_code=FinalizedStageError.error_code,
            ))

        if new_start > new_end:
            return self._rejected(stage, Conflict(
                stage_id=stage.id,
                severity=Severity.CRITICAL,
                type="invalid_range",
                reason=f"{stage.label} cannot start ({new_start}) after it ends ({new_end})",
                error_code=ValidationError.error_code,
            ))

        conflicts = self._check_dependency_violations(stage, new_start)
        windows: dict[str, tuple[date, date]] = {stage.id: (new_start, new_end)}
        affected: list[AffectedStage] = []

        descendants = self.graph.descendants(stage.id)
        for dependent in self.graph.topological_order():
            if dependent.id not in descendants:
                continue

            shift = self._required_shift(dependent, windows, pull_earlier)
            if shift is None:
                continue
            required_start, driver = shift

            if dependent.is_completed:
                if required_start > dependent.start_date:
                    days = (required_start - dependent.start_date).days
                    conflicts.append(Conflict(
                        stage_id=dependent.id,
                        severity=Severity.CRITICAL,
                        type="finalized_stage",
                        reason=f"{dependent.label} is completed and would have to move {days} day(s)",
                        error_code=FinalizedStageError.error_code,
                    ))
                continue

            adjustment = (required_start - dependent.start_date).days
            shifted_end = calc_end_date(required_start, dependent.duration)
            windows[dependent.id] = (required_start, shifted_end)
            affected.append(AffectedStage(
                stage_id=dependent.id,
                stage_name=dependent.name,
                original_start=dependent.start_date,
                original_end=dependent.end_date,
                new_start=required_start,
                new_end=shifted_end,
                adjustment=adjustment,
                reason=f"Cascaded from {driver.label}",
            ))

        conflicts.extend(self._check_deadline_violations(stage, windows))
        conflicts.extend(self._detect_resource_conflicts(stage, affected, windows))

        valid = not any(c.is_blocking for c in conflicts)
        if not valid:
            logger.info(
                f"Cascade from {stage.id} rejected: {len(conflicts)} conflict(s), "
                f"{len(affected)} stage(s) affected"
            )
        return CascadeEffect(
            stage_id=stage.id,
            valid=valid,
            affected=affected,
            conflicts=conflicts,
            summary=self._summarize(stage, affected, conflicts),
        )

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def _window(self, stage: Stage, windows: dict[str, tuple[date, date]]) -> tuple[date | None, date | None]:
        return windows.get(stage.id, (stage.start_date, stage.end_date))

    def _required_shift(
        self,
        dependent: Stage,
        windows: dict[str, tuple[date, date]],
        pull_earlier: bool,
    ) -> tuple[date, Stage] | None:
        """Earliest allowed start and the dependency that sets it, or None to stay put."""
        if dependent.start_date is None:
            logger.debug(f"Stage {dependent.id} has no start date yet; not cascading into it")
            return None

        driver = None
        latest_end = None
        for dep in self.graph.get_dependencies(dependent.id):
            dep_end = self._window(dep, windows)[1]
            if dep_end is not None and (latest_end is None or dep_end > latest_end):
                latest_end = dep_end
                driver = dep
        if latest_end is None:
            return None

        required_start = earliest_start([latest_end])
        if required_start > dependent.start_date:
            return required_start, driver
        if pull_earlier and required_start < dependent.start_date:
            return required_start, driver
        return None

    # -------------------------------------------------------------------------
    # Conflict checks
    # -------------------------------------------------------------------------

    def _check_dependency_violations(self, stage: Stage, new_start: date) -> list[Conflict]:
        """The edited stage itself must still start after each dependency ends."""
        violations = []
        for dep in self.graph.get_dependencies(stage.id):
            if dep.end_date is None:
                continue
            required_start = dep.end_date + timedelta(days=1)
            if new_start < required_start:
                violations.append(Conflict(
                    stage_id=stage.id,
                    severity=Severity.HIGH,
                    type="dependency_violation",
                    reason=f"Cannot start before {dep.label} completes ({required_start.isoformat()})",
                    dependency_id=dep.id,
                ))
        return violations

    def _check_deadline_violations(
        self,
        stage: Stage,
        windows: dict[str, tuple[date, date]],
    ) -> list[Conflict]:
        if self.deadline is None:
            return []
        violations = []
        for stage_id, (_, end) in windows.items():
            if end > self.deadline:
                moved = self.graph.get_stage(stage_id)
                violations.append(Conflict(
                    stage_id=stage_id,
                    severity=Severity.CRITICAL,
                    type="deadline_violation",
                    reason=f"{moved.label} would exceed project deadline ({self.deadline.isoformat()})",
                ))
        return violations

    def _detect_resource_conflicts(
        self,
        stage: Stage,
        affected: list[AffectedStage],
        windows: dict[str, tuple[date, date]],
    ) -> list[Conflict]:
        """Moved stages that double-book their assignee."""
        conflicts = []
        seen: set[frozenset[str]] = set()
        moved_ids = [stage.id] + [a.stage_id for a in affected]

        for moved_id in moved_ids:
            moved = self.graph.get_stage(moved_id)
            if not moved.assigned_to:
                continue
            start, end = windows[moved_id]
            for other in self.graph.topological_order():
                if other.id == moved_id or other.assigned_to != moved.assigned_to:
                    continue
                pair = frozenset((moved_id, other.id))
                if pair in seen:
                    continue
                other_start, other_end = self._window(other, windows)
                if other_start is None or other_end is None:
                    continue
                # End dates are inclusive: sharing a boundary day is an overlap
                if start <= other_end and end >= other_start:
                    seen.add(pair)
                    conflicts.append(Conflict(
                        stage_id=moved_id,
                        severity=Severity.MEDIUM,
                        type="resource_conflict",
                        reason=(
                            f"{moved.assigned_to} is double-booked between "
                            f'"{moved.label}" and "{other.label}"'
                        ),
                        resource=moved.assigned_to,
                        stage_ids=[moved_id, other.id],
                    ))
        return conflicts

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def _rejected(self, stage: Stage, conflict: Conflict) -> CascadeEffect:
        return CascadeEffect(
            stage_id=stage.id,
            valid=False,
            affected=[],
            conflicts=[conflict],
            summary=self._summarize(stage, [], [conflict]),
        )

    def _summarize(
        self,
        stage: Stage,
        affected: list[AffectedStage],
        conflicts: list[Conflict],
    ) -> ImpactSummary:
        severity = max((c.severity for c in conflicts), key=SEVERITY_RANK.get, default=Severity.LOW)
        max_delay = max((a.adjustment for a in affected), default=0)
        touched = {stage.id} | {a.stage_id for a in affected}

        if conflicts:
            message = (
                f"This change would cause {len(conflicts)} conflict(s) "
                f"and affect {len(affected)} other stage(s)."
            )
        elif affected:
            message = (
                f"This change would cascade to {len(affected)} stage(s), "
                f"potentially delaying the project by {max(max_delay, 0)} day(s)."
            )
        else:
            message = "This change can be made without affecting other stages."

        return ImpactSummary(
            total_affected=len(affected),
            critical_path_impact=bool(touched & self.critical_path_ids),
            max_delay=max_delay,
            conflict_count=len(conflicts),
            severity=severity,
            message=message,
        )
