import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from stageline.models.stage import StageRecord


class Project(SQLModel, table=True):
    """
    Project model - groups stages and anchors the schedule.

    Key fields:
    - start_date: Where stages without dependencies begin
    - deadline: Optional; cascades past it are critical conflicts
    - calc_version_id: Concurrency guard - changes on every date edit
    """

    __tablename__ = "projects"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    start_date: date = Field(default_factory=date.today)
    deadline: date | None = Field(default=None)
    calc_version_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    stages: list["StageRecord"] = Relationship(back_populates="project")
