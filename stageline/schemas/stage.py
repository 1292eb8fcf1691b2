from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


DEFAULT_DURATION_DAYS = 3


class StageStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


class Stage(BaseModel):
    """
    A unit of work in the project plan.

    ``dependencies`` gate scheduling; ``parallel_tracks`` are informational.
    Dates follow ``end_date = start_date + duration``.
    """
    id: str
    name: str = ""
    number_index: int = 0
    dependencies: list[str] = Field(default_factory=list)
    parallel_tracks: list[str] = Field(default_factory=list)
    estimated_duration: int | None = None  # None -> DEFAULT_DURATION_DAYS
    start_date: date | None = None
    end_date: date | None = None
    status: StageStatus = StageStatus.NOT_STARTED
    is_deliverable: bool = False
    assigned_to: str | None = None

    model_config = {"from_attributes": True}

    @property
    def duration(self) -> int:
        if self.estimated_duration is None:
            return DEFAULT_DURATION_DAYS
        return self.estimated_duration

    @property
    def is_completed(self) -> bool:
        return self.status == StageStatus.COMPLETED

    @property
    def label(self) -> str:
        return self.name or self.id


class StageCreate(BaseModel):
    """Schema for seeding a stage into a project."""
    id: str | None = None  # Generated when omitted
    name: str = ""
    number_index: int = 0
    dependencies: list[str] = Field(default_factory=list)
    parallel_tracks: list[str] = Field(default_factory=list)
    estimated_duration: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    status: StageStatus = StageStatus.NOT_STARTED
    is_deliverable: bool = False
    assigned_to: str | None = None


class DateEdit(BaseModel):
    """A proposed manual edit of one stage's window."""
    start_date: date
    end_date: date
    pull_earlier: bool = False
