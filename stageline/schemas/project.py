import uuid
from datetime import date, datetime
from pydantic import BaseModel, Field

from stageline.schemas.stage import StageCreate


class ProjectCreate(BaseModel):
    """Schema for creating a project together with its seeded stages."""
    name: str
    start_date: date | None = None  # Defaults to today if not provided
    deadline: date | None = None
    stages: list[StageCreate] = Field(default_factory=list)


class ProjectRead(BaseModel):
    """Schema for reading a project."""
    id: uuid.UUID
    name: str
    start_date: date
    deadline: date | None
    calc_version_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
