"""
Workflow orchestrator - executes the lifecycle transitions of tasks,
phases, reports and material requests, and emits the notifications the
counter-party discovers by polling.

Every public method is one transaction: the entity rows and the
notification they trigger are committed together, so a poller never sees
a notification pointing at an uncommitted entity.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.models.enums import PhaseStatus, TargetRole, ValidationStatus
from fieldops.models.material import Material
from fieldops.models.notification import Notification
from fieldops.models.report import Report, ReportPhoto
from fieldops.models.task import Task, Phase
from fieldops.schemas import (
    MaterialCreate, MaterialLine, PhaseIn, PhaseUpdate, TaskCreate, TaskUpdate,
)
from fieldops.services import material_service, notification_service, report_service, task_service
from fieldops.services.errors import (
    NotificationEmissionFailure, StorageUnavailable, ValidationError,
)
from fieldops.services.identifiers import format_identifier, MATERIAL_REQUEST_PREFIX
from fieldops.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TASK_CREATED_TITLE = "Nouvelle tâche ajoutée"
MATERIAL_REQUEST_TITLE = "Demande de matériel"


class NotificationPolicy(str, Enum):
    ADVISORY = "advisory"  # failure logged, entity kept
    REQUIRED = "required"  # failure aborts the whole operation


@dataclass
class WorkflowResult(Generic[T]):
    value: T
    warnings: List[str] = field(default_factory=list)
    notification_id: Optional[str] = None


@dataclass
class MaterialRequestSummary:
    id: str
    task_id: str
    persisted: bool
    resolved_lines: int = 0


def format_quantity(quantity: float):
    """5.0 -> 5, 2.5 -> 2.5"""
    quantity = float(quantity)
    return int(quantity) if quantity.is_integer() else quantity


def material_request_message(description: str, task_id: str, items: List[MaterialLine]) -> str:
    lines = "\n".join(f"- {item.name} (quantité: {format_quantity(item.quantity)})" for item in items)
    return (
        f'Le chef de brigade demande des matériels pour la tâche "{description}" ({task_id}).'
        f"\n\nMatériels demandés:\n{lines}"
    )


def _check_line_items(items: List[MaterialLine]) -> None:
    if not items:
        raise ValidationError("At least one material is required")


class WorkflowOrchestrator:
    """Runs workflow operations against an AsyncSession and owns their commit"""

    def __init__(self, notifications=notification_service):
        self.notifications = notifications

    @asynccontextmanager
    async def _transaction(self, session: AsyncSession, operation: str):
        try:
            yield
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"{operation} failed, storage error: {e}")
            raise StorageUnavailable(f"{operation} failed: storage unavailable") from e
        except Exception:
            await session.rollback()
            raise

    async def _emit(
        self,
        session: AsyncSession,
        policy: NotificationPolicy,
        result: WorkflowResult,
        title: str,
        message: str,
        target_role: TargetRole,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        try:
            async with session.begin_nested():
                notification = await self.notifications.create_for_role(
                    session, title, message, target_role, payload=payload,
                )
        except Exception as e:
            if policy == NotificationPolicy.REQUIRED:
                logger.error(f"Notification '{title}' for {target_role.value} failed: {e}")
                raise NotificationEmissionFailure(
                    f"Could not notify {target_role.value}: {e}"
                ) from e
            logger.warning(f"Notification '{title}' for {target_role.value} not sent: {e}")
            result.warnings.append(f"Notification to {target_role.value} could not be created")
            return None

        result.notification_id = notification.id
        return notification

    # --- Tasks ---

    async def create_task(self, session: AsyncSession, data: TaskCreate) -> WorkflowResult[Task]:
        """Plan a task and tell the brigade; a lost notification never undoes the task"""
        async with self._transaction(session, "CreateTask"):
            task = await task_service.create_task_record(session, data)
            task_id = task.id
            result = WorkflowResult(value=task)
            await self._emit(
                session,
                NotificationPolicy.ADVISORY,
                result,
                TASK_CREATED_TITLE,
                f'La tâche "{data.title}" a été planifiée par le chef de section.',
                TargetRole.CHEF_BRIGADE,
                payload={"taskId": task_id, "redirectTo": f"/brigade/taches/{task_id}"},
            )

        result.value = await task_service.get_task(session, task_id)
        return result

    async def update_task(self, session: AsyncSession, task_id: str, data: TaskUpdate) -> bool:
        async with self._transaction(session, "UpdateTask"):
            updated = await task_service.update_task(session, task_id, data)
        return updated

    async def delete_task(self, session: AsyncSession, task_id: str) -> bool:
        async with self._transaction(session, "DeleteTask"):
            deleted = await task_service.delete_task(session, task_id)
        return deleted

    # --- Phases ---

    async def add_phase(self, session: AsyncSession, task_id: str, data: PhaseIn) -> Optional[Phase]:
        async with self._transaction(session, "AddPhase"):
            phase = await task_service.add_phase(session, task_id, data)
        return phase

    async def update_phase(self, session: AsyncSession, phase_id: str, data: PhaseUpdate) -> bool:
        async with self._transaction(session, "UpdatePhase"):
            updated = await task_service.update_phase(session, phase_id, data)
        return updated

    async def set_phase_status(self, session: AsyncSession, phase_id: str, status: PhaseStatus) -> bool:
        async with self._transaction(session, "SetPhaseStatus"):
            updated = await task_service.set_phase_status(session, phase_id, status)
        return updated

    async def delete_phase(self, session: AsyncSession, phase_id: str) -> bool:
        async with self._transaction(session, "DeletePhase"):
            deleted = await task_service.delete_phase(session, phase_id)
        return deleted

    # --- Reports ---

    async def submit_report(
        self,
        session: AsyncSession,
        phase_id: str,
        description: str,
        advancement: int,
        photos: Optional[List[str]] = None,
        report_date=None,
    ) -> Optional[Report]:
        """Pending report on a phase; None when the phase does not exist"""
        async with self._transaction(session, "SubmitReport"):
            report = await report_service.create_report(
                session, phase_id, description, advancement, report_date=report_date, photos=photos,
            )
        if report is None:
            return None
        return await report_service.get_report(session, report.id)

    async def update_report(
        self,
        session: AsyncSession,
        report_id: str,
        description: Optional[str] = None,
        advancement: Optional[int] = None,
        report_date=None,
        photos: Optional[List[str]] = None,
    ) -> bool:
        async with self._transaction(session, "UpdateReport"):
            updated = await report_service.update_report(
                session, report_id, description=description, advancement=advancement,
                report_date=report_date, photos=photos,
            )
        return updated

    async def judge_report(
        self,
        session: AsyncSession,
        report_id: str,
        validation_label: Optional[str],
        comment: Optional[str],
    ) -> bool:
        """
        Supervisor decision on a report. validation_label is one of the
        persisted labels ("En attente", "À réviser", "Approuvé") and is
        checked before any storage access.
        """
        validation = None
        if validation_label is not None:
            validation = ValidationStatus.from_label(validation_label)

        async with self._transaction(session, "JudgeReport"):
            judged = await report_service.judge_report(session, report_id, validation, comment)
        return judged

    async def store_report_photos(
        self, session: AsyncSession, report_id: str, files: List[Tuple[str, bytes]]
    ) -> Optional[List[ReportPhoto]]:
        async with self._transaction(session, "StoreReportPhotos"):
            photos = await report_service.store_photos(session, report_id, files)
        return photos

    async def delete_report(self, session: AsyncSession, report_id: str) -> bool:
        async with self._transaction(session, "DeleteReport"):
            deleted = await report_service.delete_report(session, report_id)
        return deleted

    # --- Materials ---

    async def create_material(self, session: AsyncSession, data: MaterialCreate) -> Material:
        async with self._transaction(session, "CreateMaterial"):
            existing = await material_service.resolve_by_name(session, [data.name])
            if existing:
                raise ValidationError(f"Material {data.name!r} already exists")
            material = await material_service.create_material(session, data)
        return material

    async def request_materials(
        self,
        session: AsyncSession,
        task_id: Optional[str],
        items: List[MaterialLine],
    ) -> WorkflowResult[MaterialRequestSummary]:
        """
        Record a brigade's material request and notify the section.

        The request row is best effort: if it cannot be stored the
        operation continues with the fallback id DM001. The notification is
        required; if it fails nothing is committed.
        """
        if not task_id:
            raise ValidationError("Task id is required")
        _check_line_items(items)

        async with self._transaction(session, "RequestMaterials"):
            try:
                async with session.begin_nested():
                    request = await material_service.create_request(session, task_id, items)
                summary = MaterialRequestSummary(
                    id=request.id, task_id=task_id, persisted=True, resolved_lines=len(request.lines),
                )
                result = WorkflowResult(value=summary)
            except (SQLAlchemyError, StorageUnavailable) as e:
                logger.warning(f"Material request for task {task_id} not stored: {e}")
                # Fixed fallback id even when allocation succeeded; it may repeat an earlier demandeId
                summary = MaterialRequestSummary(
                    id=format_identifier(MATERIAL_REQUEST_PREFIX, 1), task_id=task_id, persisted=False,
                )
                result = WorkflowResult(value=summary, warnings=["Material request could not be stored"])

            description = await task_service.get_task_description(session, task_id) or task_id
            await self._emit(
                session,
                NotificationPolicy.REQUIRED,
                result,
                MATERIAL_REQUEST_TITLE,
                material_request_message(description, task_id, items),
                TargetRole.CHEF_SECTION,
                payload={
                    "demandeId": summary.id,
                    "taskId": task_id,
                    "materiels": [
                        {"nom": item.name, "quantite": format_quantity(item.quantity)} for item in items
                    ],
                    "redirectTo": "/materiels",
                    "filter": "demandes",
                },
            )

        return result

    # --- Notifications ---

    async def mark_notification_read(self, session: AsyncSession, notification_id: Optional[str]) -> bool:
        if not notification_id:
            raise ValidationError("Notification id is required")
        async with self._transaction(session, "MarkRead"):
            found = await self.notifications.mark_read(session, notification_id)
        return found


orchestrator = WorkflowOrchestrator()
