"""
Project routes for the Stageline API.
"""

import uuid
from datetime import date
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stageline.database import get_session
from stageline.models import Project
from stageline.schemas import ProjectCreate, ProjectRead, Stage, StageCreate
from stageline.schemas.cascade import CriticalPathRead
from stageline.services.critical_path import analyze_critical_path, critical_path
from stageline.services.engine import DependencyEngine, Suggestion
from stageline.services.graph import StageGraph
from stageline.services.scheduler import recompute_all
from stageline.services.status import BlockedStage, blocked_stages
from stageline.services.store import StageStore
from stageline.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """
    Create a new project and seed its stages.

    The stages must form a valid DAG; otherwise nothing is created.
    """
    project = Project(
        name=project_in.name,
        start_date=project_in.start_date or date.today(),
        deadline=project_in.deadline,
    )
    session.add(project)
    await session.flush()

    await StageStore(session).add_stages(project, project_in.stages)
    await session.refresh(project)

    logger.info(f"Created project: id={project.id} name='{project.name}' stages={len(project_in.stages)}")

    return project


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Get a project by ID."""
    return await StageStore(session).get_project(project_id)


@router.get("/{project_id}/stages", response_model=list[Stage])
async def list_stages(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[Stage]:
    """List a project's stages ordered by number_index."""
    store = StageStore(session)
    await store.get_project(project_id)
    return await store.list_stages(project_id)


@router.post("/{project_id}/stages", response_model=list[Stage], status_code=status.HTTP_201_CREATED)
async def add_stages(
    project_id: uuid.UUID,
    stages_in: list[StageCreate],
    session: AsyncSession = Depends(get_session),
) -> list[Stage]:
    """Bulk-add stages to an existing project."""
    store = StageStore(session)
    project = await store.get_project(project_id)
    await store.add_stages(project, stages_in)
    return await store.list_stages(project_id)


@router.post("/{project_id}/schedule", response_model=list[Stage])
async def recompute_schedule(
    project_id: uuid.UUID,
    keep_completed: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[Stage]:
    """
    Recompute every stage's dates from the project start date and persist them.

    Returns the stages in topological order.
    """
    store = StageStore(session)
    project = await store.get_project(project_id)
    stages = recompute_all(
        await store.list_stages(project_id),
        project.start_date,
        keep_completed=keep_completed,
    )
    changed = await store.apply_dates(project_id, stages)
    if changed:
        await store.bump_version(project)

    logger.info(f"Recomputed schedule for project {project_id}: {changed} stage(s) changed")

    return stages


@router.get("/{project_id}/critical-path", response_model=CriticalPathRead)
async def get_critical_path(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CriticalPathRead:
    """Critical path and slack analysis."""
    store = StageStore(session)
    await store.get_project(project_id)
    stages = await store.list_stages(project_id)
    return CriticalPathRead(
        stages=critical_path(stages),
        analysis=analyze_critical_path(stages),
    )


@router.get("/{project_id}/blocked", response_model=list[BlockedStage])
async def get_blocked_stages(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[BlockedStage]:
    """Blocked stages and what each is waiting for."""
    store = StageStore(session)
    await store.get_project(project_id)
    return blocked_stages(StageGraph(await store.list_stages(project_id)))


@router.get("/{project_id}/suggestions", response_model=list[Suggestion])
async def get_schedule_suggestions(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[Suggestion]:
    """Bottlenecks to relieve and underutilized periods to fill."""
    store = StageStore(session)
    project = await store.get_project(project_id)
    engine = DependencyEngine(await store.list_stages(project_id), deadline=project.deadline)
    return engine.suggest_optimal_schedule()
