import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from stageline.models.project import Project


def _new_stage_id() -> str:
    return str(uuid.uuid4())


class StageRecord(SQLModel, table=True):
    """
    Stored stage.

    Dependencies and parallel tracks are kept as JSON arrays of stage ids
    on the stage row itself; the graph is rebuilt in memory on every read.
    """

    __tablename__ = "stages"

    # Stage ids are unique within a project
    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    id: str = Field(default_factory=_new_stage_id, primary_key=True)
    name: str = Field(default="")
    number_index: int = Field(default=0, index=True)
    dependencies: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    parallel_tracks: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    estimated_duration: int | None = Field(default=None)
    start_date: date | None = Field(default=None)
    end_date: date | None = Field(default=None)
    status: str = Field(default="not_started")
    is_deliverable: bool = Field(default=False)
    assigned_to: str | None = Field(default=None)

    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    project: "Project" = Relationship(back_populates="stages")
