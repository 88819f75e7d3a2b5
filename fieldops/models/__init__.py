from fieldops.models.enums import (
    TaskStatus, PhaseStatus, ValidationStatus, MaterialRequestStatus, TargetRole,
)
from fieldops.models.task import Task, Phase, TaskEmployee, TaskMaterial
from fieldops.models.report import Report, ReportPhoto
from fieldops.models.material import Material, MaterialRequest, MaterialRequestLine
from fieldops.models.notification import Notification

__all__ = [
    "TaskStatus",
    "PhaseStatus",
    "ValidationStatus",
    "MaterialRequestStatus",
    "TargetRole",
    "Task",
    "Phase",
    "TaskEmployee",
    "TaskMaterial",
    "Report",
    "ReportPhoto",
    "Material",
    "MaterialRequest",
    "MaterialRequestLine",
    "Notification",
]
