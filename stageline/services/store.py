"""
Stage store: the boundary between the scheduling core and the database.

The core only ever sees ``Stage`` snapshots; this module loads them from
``StageRecord`` rows and writes computed dates back.
"""

import uuid
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from stageline.database import get_session_context
from stageline.exceptions import NotFoundError
from stageline.logging_config import get_logger
from stageline.models import Project, StageRecord
from stageline.schemas.stage import Stage, StageCreate
from stageline.services.graph import StageGraph

logger = get_logger(__name__)


def to_stage(record: StageRecord) -> Stage:
    return Stage.model_validate(record)


class StageStore:
    """Project and stage persistence for one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_project(self, project_id: uuid.UUID) -> Project:
        project = await self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project", str(project_id))
        return project

    async def list_stage_records(self, project_id: uuid.UUID) -> list[StageRecord]:
        result = await self.session.execute(
            select(StageRecord)
            .where(StageRecord.project_id == project_id)
            .order_by(StageRecord.number_index, StageRecord.id)
        )
        return list(result.scalars().all())

    async def list_stages(self, project_id: uuid.UUID) -> list[Stage]:
        return [to_stage(record) for record in await self.list_stage_records(project_id)]

    async def get_stage_record(self, project_id: uuid.UUID, stage_id: str) -> StageRecord:
        record = await self.session.get(StageRecord, (project_id, stage_id))
        if record is None:
            raise NotFoundError("Stage", stage_id)
        return record

    async def add_stages(self, project: Project, stages_in: list[StageCreate]) -> list[StageRecord]:
        """
        Bulk-insert stages into a project.

        The new stages, together with any already stored, must form a
        valid DAG; nothing is written otherwise.

        Raises:
            ValidationError / CycleError: the combined stage set is invalid
        """
        existing = await self.list_stages(project.id)
        records = []
        for stage_in in stages_in:
            data = stage_in.model_dump()
            if data["id"] is None:
                data.pop("id")
            data["status"] = stage_in.status.value
            records.append(StageRecord(project_id=project.id, **data))

        StageGraph(existing + [to_stage(record) for record in records])

        self.session.add_all(records)
        await self.session.flush()
        logger.info(f"Added {len(records)} stages to project {project.id}")
        return records

    async def apply_dates(self, project_id: uuid.UUID, stages: list[Stage]) -> int:
        """
        Write start/end dates of the given stages back to their rows.

        Returns the number of rows whose dates actually changed.
        """
        changed = 0
        now = datetime.utcnow()
        for stage in stages:
            record = await self.get_stage_record(project_id, stage.id)
            if record.start_date == stage.start_date and record.end_date == stage.end_date:
                continue
            record.start_date = stage.start_date
            record.end_date = stage.end_date
            record.updated_at = now
            self.session.add(record)
            changed += 1
        await self.session.flush()
        return changed

    async def bump_version(self, project: Project) -> uuid.UUID:
        """New calc_version_id; any queued job for the old one becomes stale."""
        project.calc_version_id = uuid.uuid4()
        project.updated_at = datetime.utcnow()
        self.session.add(project)
        await self.session.flush()
        return project.calc_version_id


async def fetch_project_stages(project_id: str) -> list[Stage]:
    """Load a project's stages in a fresh session. Default watcher fetcher."""
    async with get_session_context() as session:
        return await StageStore(session).list_stages(uuid.UUID(project_id))
