"""
Pydantic schemas shared by the workflow services and the API routers
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fieldops.models.enums import TaskStatus, PhaseStatus, ValidationStatus, MaterialRequestStatus, TargetRole


# --- Input schemas ---

class MaterialLine(BaseModel):
    """A (material name, quantity) pair; serialized as {nom, quantite} in payloads"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="nom")
    quantity: float = Field(alias="quantite")


class PhaseIn(BaseModel):
    name: str
    description: Optional[str] = None
    planned_duration_days: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: PhaseStatus = PhaseStatus.WAITING


class PhaseCreate(PhaseIn):
    task_id: str


class PhaseUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    planned_duration_days: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class PhaseStatusUpdate(BaseModel):
    status: PhaseStatus


class TaskCreate(BaseModel):
    title: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    status: TaskStatus = TaskStatus.PENDING
    brigade_id: Optional[int] = None
    team_id: Optional[int] = None
    employee_ids: List[int] = []
    materials: List[MaterialLine] = []
    phases: List[PhaseIn] = []


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    status: Optional[TaskStatus] = None
    brigade_id: Optional[int] = None
    team_id: Optional[int] = None
    employee_ids: Optional[List[int]] = None
    materials: Optional[List[MaterialLine]] = None


class ReportCreate(BaseModel):
    phase_id: str
    description: str
    advancement: int = 0
    report_date: Optional[date] = None
    photos: List[str] = []  # stored filenames, in display order


class ReportUpdate(BaseModel):
    description: Optional[str] = None
    advancement: Optional[int] = None
    report_date: Optional[date] = None
    photos: Optional[List[str]] = None


class ReportJudgement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    validation: Optional[str] = None  # "En attente" | "À réviser" | "Approuvé"
    comment: Optional[str] = Field(default=None, alias="commentaire")


class MaterialCreate(BaseModel):
    name: str
    type: Optional[str] = None
    quantity: float = 0
    state: str = "disponible"


class MaterialRequestCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: Optional[str] = Field(default=None, alias="idTache")
    items: List[MaterialLine] = Field(default_factory=list, alias="materiels")


class MarkReadRequest(BaseModel):
    id: Optional[str] = None


# --- Response schemas ---

class PhaseResponse(BaseModel):
    id: str
    task_id: str
    position: int
    name: str
    description: Optional[str]
    planned_duration_days: Optional[int]
    start_date: Optional[date]
    end_date: Optional[date]
    actual_start_date: Optional[date]
    actual_end_date: Optional[date]
    status: PhaseStatus

    class Config:
        from_attributes = True


class PhotoResponse(BaseModel):
    id: int
    filename: str
    position: int

    class Config:
        from_attributes = True


class ReportResponse(BaseModel):
    id: str
    phase_id: str
    task_id: Optional[str] = None
    phase_name: Optional[str] = None
    description: str
    report_date: date
    advancement: int
    validation: ValidationStatus
    validation_label: str
    comment: Optional[str]
    photos: List[PhotoResponse] = []
    created_at: Optional[datetime]


class TaskMaterialResponse(BaseModel):
    material_id: str
    name: str
    quantity: float


class TaskResponse(BaseModel):
    id: str
    title: str
    start_date: Optional[date]
    end_date: Optional[date]
    actual_end_date: Optional[date]
    status: TaskStatus
    brigade_id: Optional[int]
    team_id: Optional[int]
    employee_ids: List[int] = []
    materials: List[TaskMaterialResponse] = []
    phases: List[PhaseResponse] = []
    phase_count: int = 0
    done_count: int = 0
    progress: float = 0.0
    reports: List[ReportResponse] = []
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    warnings: List[str] = []


class MaterialResponse(BaseModel):
    id: str
    name: str
    type: Optional[str]
    quantity: float
    state: str

    class Config:
        from_attributes = True


class MaterialRequestLineResponse(BaseModel):
    material_id: str
    name: Optional[str] = None
    quantity_requested: float


class MaterialRequestResponse(BaseModel):
    id: str
    task_id: str
    status: MaterialRequestStatus
    created_at: Optional[datetime]
    lines: List[MaterialRequestLineResponse] = []


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    target_role: TargetRole
    target_user_id: Optional[str]
    payload: Optional[Dict[str, Any]]
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationFeed(BaseModel):
    role: TargetRole
    notifications: List[NotificationResponse]
    unread_count: int
    latest_id: Optional[str]
    poll_interval_seconds: float
