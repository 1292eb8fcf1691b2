from stageline.schemas.stage import (
    DEFAULT_DURATION_DAYS,
    DateEdit,
    Stage,
    StageCreate,
    StageStatus,
)
from stageline.schemas.project import ProjectCreate, ProjectRead

__all__ = [
    "DEFAULT_DURATION_DAYS",
    "DateEdit",
    "Stage",
    "StageCreate",
    "StageStatus",
    "ProjectCreate",
    "ProjectRead",
]
