"""
Background cascade propagation.

After the API stores a manual date edit it enqueues ``cascade_subtree``.
The job re-reads the project, recomputes the cascade from the stored
dates of the edited stage and writes every shifted dependent back.
"""

import uuid

from stageline.database import get_session_context
from stageline.logging_config import get_logger
from stageline.models import Project
from stageline.services.engine import DependencyEngine
from stageline.services.store import StageStore

logger = get_logger(__name__)


async def cascade_subtree(
    ctx: dict,
    project_id: str,
    stage_id: str,
    version_id: str,
    pull_earlier: bool = False,
) -> str:
    """
    ARQ job: push the stored dates of ``stage_id`` down to its dependents.

    Args:
        ctx: ARQ context
        project_id: Project of the edited stage
        stage_id: The stage that was edited (anchor point)
        version_id: The project's calc_version_id at time of the edit
        pull_earlier: Also pull dependents earlier when the edit shrinks

    Returns:
        Status message
    """
    async with get_session_context() as session:
        # Guard clause - check if this job is stale
        project = await session.get(Project, uuid.UUID(project_id))
        if project is None:
            return f"Project {project_id} not found - may have been deleted"

        if str(project.calc_version_id) != version_id:
            return f"Stale job: version mismatch (expected {version_id}, got {project.calc_version_id})"

        store = StageStore(session)
        engine = DependencyEngine(await store.list_stages(project.id), deadline=project.deadline)

        if stage_id not in engine.graph:
            return f"Stage {stage_id} not found - may have been deleted"
        stage = engine.graph.get_stage(stage_id)
        if stage.start_date is None or stage.end_date is None:
            return f"Stage {stage_id} has no dates to cascade"

        effect = engine.calculate_cascade_effect(
            stage_id, stage.start_date, stage.end_date, pull_earlier=pull_earlier
        )
        if not effect.valid:
            logger.warning(f"Cascade from {stage_id} blocked: {effect.summary.message}")
            return f"Cascade blocked: {effect.summary.conflict_count} conflict(s)"

        if not effect.affected:
            return "No date changes needed"

        changed = engine.apply_cascade(effect, stage.start_date, stage.end_date)
        updated = await store.apply_dates(project.id, [s for s in changed if s.id != stage_id])

        logger.info(f"Cascade from {stage_id} updated {updated} stage(s) in project {project_id}")
        return f"Updated {updated} stages"
