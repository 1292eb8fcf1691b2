"""
Dependency watcher.

Polls a project's stages on an interval, re-derives every stage's status
and emits discrete events when something changes between ticks:
- status_auto_updated: the persisted status no longer matches the derived one
- stage_unblocked: a blocked stage's dependencies are now all completed
- stage_blocked: a ready stage lost a completed dependency
- pre_assigned_stage_ready: an unblocked stage already has an assignee

The watcher only reports; writing statuses back is up to the subscriber.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from stageline.config import get_settings
from stageline.logging_config import get_logger
from stageline.schemas.stage import Stage, StageStatus
from stageline.services.graph import StageGraph
from stageline.services.status import derive_all

logger = get_logger(__name__)


StageFetcher = Callable[[str], Awaitable[list[Stage]]]
Subscriber = Callable[["WatcherEvent"], Any]


class WatcherState(str, Enum):
    STOPPED = "stopped"
    WATCHING = "watching"


class WatcherEventType(str, Enum):
    STATUS_AUTO_UPDATED = "status_auto_updated"
    STAGE_UNBLOCKED = "stage_unblocked"
    STAGE_BLOCKED = "stage_blocked"
    PRE_ASSIGNED_STAGE_READY = "pre_assigned_stage_ready"


@dataclass
class WatcherEvent:
    type: WatcherEventType
    stage: Stage
    previous_status: StageStatus
    new_status: StageStatus
    reason: str
    priority: str = "normal"


@dataclass(frozen=True)
class _Observation:
    persisted: StageStatus
    derived: StageStatus


class DependencyWatcher:
    """
    Polling state machine for one project at a time.

    Args:
        fetch_stages: Coroutine returning the current stages of a project
    """

    def __init__(self, fetch_stages: StageFetcher):
        self.fetch_stages = fetch_stages
        self.state = WatcherState.STOPPED
        self.project_id: str | None = None
        self.interval_ms: int = get_settings().watcher_interval_ms
        self._subscribers: dict[int, Subscriber] = {}
        self._next_token = 0
        self._snapshot: dict[str, _Observation] = {}
        self._task: asyncio.Task | None = None
        self._tick_in_flight = False
        # Bumped on every start/stop so a tick started earlier cannot emit
        self._generation = 0

    @property
    def is_watching(self) -> bool:
        return self.state == WatcherState.WATCHING

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_watching(self, project_id: str, interval_ms: int | None = None) -> None:
        """
        Start polling ``project_id``. Must be called from a running event loop.

        Does nothing if already watching.
        """
        if self.is_watching:
            return
        if interval_ms is not None:
            if interval_ms <= 0:
                raise ValueError("interval_ms must be positive")
            self.interval_ms = interval_ms

        self._generation += 1
        self.state = WatcherState.WATCHING
        self.project_id = project_id
        self._snapshot.clear()
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))
        logger.info(f"Watching project {project_id} every {self.interval_ms}ms")

    def stop_watching(self) -> None:
        """Stop polling. Safe to call any number of times."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self.is_watching:
            logger.info(f"Stopped watching project {self.project_id}")
        self._generation += 1
        self.state = WatcherState.STOPPED
        self.project_id = None
        self._snapshot.clear()

    async def _run(self, generation: int) -> None:
        # One task, so ticks never overlap: the next sleep starts only after a tick ends
        while self._generation == generation:
            await self.check_dependencies()
            await asyncio.sleep(self.interval_ms / 1000)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every event; returns its unsubscribe function."""
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    async def _notify(self, event: WatcherEvent) -> None:
        for callback in list(self._subscribers.values()):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Subscriber failed on {event.type.value} for stage {event.stage.id}")

    # -------------------------------------------------------------------------
    # Ticks
    # -------------------------------------------------------------------------

    async def force_refresh(self) -> list[WatcherEvent]:
        """Run one tick now; skipped while another tick is in flight."""
        if not self.is_watching or self._tick_in_flight:
            return []
        return await self.check_dependencies()

    async def check_dependencies(self) -> list[WatcherEvent]:
        """
        One tick: fetch, derive, diff against the last snapshot, emit.

        A failed fetch is logged and skipped without touching the snapshot.
        """
        if self.project_id is None:
            return []

        generation = self._generation
        self._tick_in_flight = True
        try:
            try:
                stages = await self.fetch_stages(self.project_id)
                graph = StageGraph(stages)
            except Exception as e:
                logger.warning(f"Watcher tick for project {self.project_id} failed: {e}")
                return []

            if generation != self._generation:
                return []

            events = self._diff(graph)
            for event in events:
                if generation != self._generation:
                    break
                await self._notify(event)
            return events
        finally:
            self._tick_in_flight = False

    def _diff(self, graph: StageGraph) -> list[WatcherEvent]:
        derived = derive_all(graph)
        previous = self._snapshot
        current: dict[str, _Observation] = {}
        events = []

        for stage in graph.topological_order():
            observation = _Observation(persisted=stage.status, derived=derived[stage.id])
            current[stage.id] = observation
            before = previous.get(stage.id)

            if observation.persisted != observation.derived and observation != before:
                events.append(WatcherEvent(
                    type=WatcherEventType.STATUS_AUTO_UPDATED,
                    stage=stage,
                    previous_status=observation.persisted,
                    new_status=observation.derived,
                    reason=(
                        "Dependencies not met"
                        if observation.derived == StageStatus.BLOCKED
                        else "Dependencies completed"
                    ),
                ))

            if before is None or before.derived == observation.derived:
                continue

            if before.derived == StageStatus.BLOCKED and observation.derived == StageStatus.NOT_STARTED:
                events.append(WatcherEvent(
                    type=WatcherEventType.STAGE_UNBLOCKED,
                    stage=stage,
                    previous_status=StageStatus.BLOCKED,
                    new_status=StageStatus.NOT_STARTED,
                    reason="Dependencies completed",
                ))
                if stage.assigned_to:
                    events.append(WatcherEvent(
                        type=WatcherEventType.PRE_ASSIGNED_STAGE_READY,
                        stage=stage,
                        previous_status=StageStatus.BLOCKED,
                        new_status=StageStatus.NOT_STARTED,
                        reason="Dependencies completed - pre-assigned stage is now ready",
                        priority="high",
                    ))
            elif before.derived == StageStatus.NOT_STARTED and observation.derived == StageStatus.BLOCKED:
                events.append(WatcherEvent(
                    type=WatcherEventType.STAGE_BLOCKED,
                    stage=stage,
                    previous_status=StageStatus.NOT_STARTED,
                    new_status=StageStatus.BLOCKED,
                    reason="A dependency is no longer completed",
                ))

        self._snapshot = current
        if events:
            logger.debug(f"Watcher tick for project {self.project_id}: {len(events)} event(s)")
        return events
