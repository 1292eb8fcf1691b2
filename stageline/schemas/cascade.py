import uuid
from pydantic import BaseModel

from stageline.schemas.stage import Stage
from stageline.services.cascade import CascadeEffect
from stageline.services.critical_path import ProjectAnalysis


class CascadeApplyRead(BaseModel):
    """Result of an applied edit: the effect and every stage that moved."""
    effect: CascadeEffect
    stages: list[Stage]
    calc_version_id: uuid.UUID


class CriticalPathRead(BaseModel):
    """Critical path stages in order, with the full CPM analysis."""
    stages: list[Stage]
    analysis: ProjectAnalysis
