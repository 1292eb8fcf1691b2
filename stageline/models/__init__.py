from stageline.models.project import Project
from stageline.models.stage import StageRecord

__all__ = ["Project", "StageRecord"]
