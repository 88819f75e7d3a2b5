"""
Task and phase persistence.

Async sessions cannot lazy-load, so every query that hands a Task to a
caller eagerly loads the collections the caller may touch.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fieldops.models.enums import TaskStatus, PhaseStatus, PHASE_ORDER
from fieldops.models.report import Report
from fieldops.models.task import Task, Phase, TaskEmployee, TaskMaterial
from fieldops.schemas import TaskCreate, TaskUpdate, PhaseIn, PhaseUpdate, MaterialLine
from fieldops.services import material_service
from fieldops.services.errors import InvalidTransition, ValidationError
from fieldops.services.identifiers import add_with_identifier, TASK_PREFIX, PHASE_PREFIX
from fieldops.services.photo_storage import photo_storage
from fieldops.utils.logger import get_logger

logger = get_logger(__name__)


def _task_options():
    return (
        selectinload(Task.phases).selectinload(Phase.reports).selectinload(Report.photos),
        selectinload(Task.employees),
        selectinload(Task.materials).selectinload(TaskMaterial.material),
    )


def progress_fraction(phases: List[Phase]) -> float:
    """done / total, 0 for a task without phases"""
    if not phases:
        return 0.0
    done = sum(1 for p in phases if p.status == PhaseStatus.DONE)
    return done / len(phases)


async def get_task(session: AsyncSession, task_id: str) -> Optional[Task]:
    result = await session.execute(
        select(Task)
        .options(*_task_options())
        .where(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_task_description(session: AsyncSession, task_id: str) -> Optional[str]:
    result = await session.execute(select(Task.description).where(Task.id == task_id))
    return result.scalar_one_or_none()


async def list_tasks(
    session: AsyncSession,
    brigade_id: Optional[int] = None,
    team_id: Optional[int] = None,
) -> List[Task]:
    query = select(Task).options(*_task_options()).order_by(
        Task.start_date.asc().nullslast(), func.length(Task.id), Task.id
    )
    if brigade_id is not None:
        query = query.where(Task.brigade_id == brigade_id)
    if team_id is not None:
        query = query.where(Task.team_id == team_id)
    result = await session.execute(query)
    return list(result.scalars().all())


# --- Task writes ---

async def create_task_record(session: AsyncSession, data: TaskCreate) -> Task:
    """Persist the task row, its phases and its employee/material links"""
    if not data.title.strip():
        raise ValidationError("Task title is required")

    task = await add_with_identifier(
        session,
        Task,
        TASK_PREFIX,
        lambda identifier: Task(
            id=identifier,
            description=data.title,
            start_date=data.start_date,
            end_date=data.end_date,
            actual_end_date=data.actual_end_date,
            status=data.status,
            brigade_id=data.brigade_id,
            team_id=data.team_id,
        ),
    )

    for position, phase_data in enumerate(data.phases):
        await _insert_phase(session, task.id, position, phase_data)

    await assign_employees(session, task.id, data.employee_ids)
    await assign_materials(session, task.id, data.materials)
    logger.info(f"Task {task.id} created with {len(data.phases)} phase(s)")
    return task


async def assign_employees(session: AsyncSession, task_id: str, employee_ids: List[int]) -> None:
    """Replace the employee assignment of a task"""
    existing = await session.execute(select(TaskEmployee).where(TaskEmployee.task_id == task_id))
    for link in existing.scalars().all():
        await session.delete(link)
    await session.flush()

    for employee_id in dict.fromkeys(employee_ids):
        session.add(TaskEmployee(task_id=task_id, employee_id=employee_id))
    await session.flush()


async def assign_materials(session: AsyncSession, task_id: str, items: List[MaterialLine]) -> None:
    """Replace the material links of a task; unknown material names are dropped"""
    existing = await session.execute(select(TaskMaterial).where(TaskMaterial.task_id == task_id))
    for link in existing.scalars().all():
        await session.delete(link)
    await session.flush()

    quantities = {}
    for material, quantity in await material_service.resolve_lines(session, items):
        quantities[material.id] = quantities.get(material.id, 0) + quantity
    for material_id, quantity in quantities.items():
        session.add(TaskMaterial(task_id=task_id, material_id=material_id, quantity_used=quantity))
    await session.flush()


async def update_task(session: AsyncSession, task_id: str, data: TaskUpdate) -> bool:
    task = await session.get(Task, task_id)
    if task is None:
        return False

    updates = data.model_dump(exclude_unset=True, exclude={"employee_ids", "materials"})
    if "title" in updates:
        title = updates.pop("title")
        if title is not None:
            if not title.strip():
                raise ValidationError("Task title is required")
            task.description = title

    was_completed = task.status == TaskStatus.COMPLETED
    for key, value in updates.items():
        if key == "status" and value is None:
            continue
        setattr(task, key, value)

    # Late completion without an explicit date: today
    if (
        not was_completed
        and task.status == TaskStatus.COMPLETED
        and task.actual_end_date is None
        and task.end_date is not None
        and date.today() > task.end_date
    ):
        task.actual_end_date = date.today()

    if data.employee_ids is not None:
        await assign_employees(session, task_id, data.employee_ids)
    if data.materials is not None:
        await assign_materials(session, task_id, data.materials)

    await session.flush()
    return True


async def delete_task(session: AsyncSession, task_id: str) -> bool:
    task = await get_task(session, task_id)
    if task is None:
        return False

    report_ids = [r.id for p in task.phases for r in p.reports]
    await session.delete(task)
    await session.flush()
    for report_id in report_ids:
        photo_storage.delete_report(report_id)
    logger.info(f"Task {task_id} deleted with {len(report_ids)} report(s)")
    return True


# --- Phases ---

async def _next_position(session: AsyncSession, task_id: str) -> int:
    result = await session.execute(select(func.max(Phase.position)).where(Phase.task_id == task_id))
    last = result.scalar_one_or_none()
    return 0 if last is None else last + 1


async def _insert_phase(session: AsyncSession, task_id: str, position: int, data: PhaseIn) -> Phase:
    if not data.name.strip():
        raise ValidationError("Phase name is required")
    if data.planned_duration_days is not None and data.planned_duration_days < 0:
        raise ValidationError("Planned duration cannot be negative")

    today = date.today()
    return await add_with_identifier(
        session,
        Phase,
        PHASE_PREFIX,
        lambda identifier: Phase(
            id=identifier,
            task_id=task_id,
            position=position,
            name=data.name,
            description=data.description,
            planned_duration_days=data.planned_duration_days,
            start_date=data.start_date,
            end_date=data.end_date,
            status=data.status,
            actual_start_date=today if data.status != PhaseStatus.WAITING else None,
            actual_end_date=today if data.status == PhaseStatus.DONE else None,
        ),
    )


async def get_phase(session: AsyncSession, phase_id: str) -> Optional[Phase]:
    return await session.get(Phase, phase_id)


async def add_phase(session: AsyncSession, task_id: str, data: PhaseIn) -> Optional[Phase]:
    """Append a phase at the end of the task; None when the task does not exist"""
    if await session.get(Task, task_id) is None:
        return None
    phase = await _insert_phase(session, task_id, await _next_position(session, task_id), data)
    logger.info(f"Phase {phase.id} added to task {task_id} at position {phase.position}")
    return phase


async def list_phases(session: AsyncSession, task_id: Optional[str] = None) -> List[Phase]:
    query = select(Phase).order_by(Phase.task_id, Phase.position)
    if task_id:
        query = query.where(Phase.task_id == task_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def update_phase(session: AsyncSession, phase_id: str, data: PhaseUpdate) -> bool:
    phase = await session.get(Phase, phase_id)
    if phase is None:
        return False

    updates = data.model_dump(exclude_unset=True)
    if "name" in updates and not (updates["name"] or "").strip():
        raise ValidationError("Phase name is required")
    for key, value in updates.items():
        setattr(phase, key, value)
    await session.flush()
    return True


async def set_phase_status(session: AsyncSession, phase_id: str, status: PhaseStatus) -> bool:
    """Move a phase forward (waiting -> in_progress -> done); backwards is refused"""
    phase = await session.get(Phase, phase_id)
    if phase is None:
        return False

    if PHASE_ORDER[status] < PHASE_ORDER[phase.status]:
        raise InvalidTransition(
            f"Phase {phase_id} cannot go from {phase.status.value} back to {status.value}"
        )

    today = date.today()
    if status != PhaseStatus.WAITING and phase.actual_start_date is None:
        phase.actual_start_date = today
    if status == PhaseStatus.DONE and phase.actual_end_date is None:
        phase.actual_end_date = today
    phase.status = status
    await session.flush()
    return True


async def delete_phase(session: AsyncSession, phase_id: str) -> bool:
    result = await session.execute(
        select(Phase)
        .options(selectinload(Phase.reports).selectinload(Report.photos))
        .where(Phase.id == phase_id)
    )
    phase = result.scalar_one_or_none()
    if phase is None:
        return False

    report_ids = [r.id for r in phase.reports]
    await session.delete(phase)
    await session.flush()
    for report_id in report_ids:
        photo_storage.delete_report(report_id)
    return True
