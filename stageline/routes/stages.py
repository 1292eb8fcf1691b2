"""
Stage date-edit routes for the Stageline API.

Editing a stage's dates is two-phase: the edit and its cascade are
computed in memory and returned right away, the edited stage is written
immediately, and the dependents are written by a background job.
"""

import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stageline.database import get_session
from stageline.schemas import DateEdit
from stageline.schemas.cascade import CascadeApplyRead
from stageline.services.cascade import CascadeEffect
from stageline.services.engine import DependencyEngine
from stageline.services.store import StageStore
from stageline.worker import enqueue_cascade
from stageline.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _load_engine(store: StageStore, project_id: uuid.UUID):
    project = await store.get_project(project_id)
    stages = await store.list_stages(project_id)
    return project, DependencyEngine(stages, deadline=project.deadline)


@router.post("/{project_id}/stages/{stage_id}/cascade", response_model=CascadeEffect)
async def preview_cascade(
    project_id: uuid.UUID,
    stage_id: str,
    edit: DateEdit,
    session: AsyncSession = Depends(get_session),
) -> CascadeEffect:
    """Preview the impact of moving a stage. Never writes."""
    _, engine = await _load_engine(StageStore(session), project_id)
    return engine.calculate_cascade_effect(
        stage_id, edit.start_date, edit.end_date, pull_earlier=edit.pull_earlier
    )


@router.post("/{project_id}/stages/{stage_id}/cascade/apply", response_model=CascadeApplyRead)
async def apply_cascade(
    project_id: uuid.UUID,
    stage_id: str,
    edit: DateEdit,
    session: AsyncSession = Depends(get_session),
) -> CascadeApplyRead:
    """
    Apply a date edit.

    Rejected with 409 when the cascade has blocking conflicts (completed
    stages, dependency or deadline violations).
    """
    store = StageStore(session)
    project, engine = await _load_engine(store, project_id)

    effect = engine.calculate_cascade_effect(
        stage_id, edit.start_date, edit.end_date, pull_earlier=edit.pull_earlier
    )
    changed = engine.apply_cascade(effect, edit.start_date, edit.end_date)

    logger.info(f"Applying edit to stage {stage_id}: {edit.start_date} -> {edit.end_date}")

    await store.apply_dates(project_id, [s for s in changed if s.id == stage_id])
    version_id = await store.bump_version(project)
    # Commit before enqueueing so the job sees the new version
    await session.commit()

    if effect.affected:
        await enqueue_cascade(str(project_id), stage_id, str(version_id), edit.pull_earlier)

    return CascadeApplyRead(effect=effect, stages=changed, calc_version_id=version_id)
