"""
Task API endpoints - planning by the section supervisor, read by brigades
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.api.reports import build_report_response
from fieldops.database import get_db
from fieldops.models.enums import PhaseStatus
from fieldops.models.task import Task
from fieldops.schemas import PhaseResponse, TaskCreate, TaskMaterialResponse, TaskResponse, TaskUpdate
from fieldops.services import task_service
from fieldops.services.workflow import orchestrator

router = APIRouter()


def build_task_response(t: Task, warnings: Optional[List[str]] = None) -> TaskResponse:
    done_count = sum(1 for p in t.phases if p.status == PhaseStatus.DONE)
    return TaskResponse(
        id=t.id,
        title=t.description,
        start_date=t.start_date,
        end_date=t.end_date,
        actual_end_date=t.actual_end_date,
        status=t.status,
        brigade_id=t.brigade_id,
        team_id=t.team_id,
        employee_ids=[e.employee_id for e in t.employees],
        materials=[
            TaskMaterialResponse(material_id=m.material_id, name=m.material.name, quantity=m.quantity_used)
            for m in t.materials
        ],
        phases=[PhaseResponse.model_validate(p) for p in t.phases],
        phase_count=len(t.phases),
        done_count=done_count,
        progress=task_service.progress_fraction(t.phases),
        reports=[build_report_response(r, phase=p) for p in t.phases for r in p.reports],
        created_at=t.created_at,
        updated_at=t.updated_at,
        warnings=warnings or [],
    )


@router.get("/", response_model=List[TaskResponse])
async def list_tasks(
    brigade_id: Optional[int] = None,
    team_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """List tasks, optionally for one brigade and/or team"""
    tasks = await task_service.list_tasks(db, brigade_id=brigade_id, team_id=team_id)
    return [build_task_response(t) for t in tasks]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)):
    """Task with phases, reports, materials, employees and progress"""
    task = await task_service.get_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return build_task_response(task)


@router.post("/", response_model=TaskResponse, status_code=201)
async def create_task(data: TaskCreate, db: AsyncSession = Depends(get_db)):
    """Plan a task; the brigade is notified"""
    result = await orchestrator.create_task(db, data)
    return build_task_response(result.value, warnings=result.warnings)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(task_id: str, data: TaskUpdate, db: AsyncSession = Depends(get_db)):
    """Update a task. Status may be set to any value, phases are left as they are"""
    updated = await orchestrator.update_task(db, task_id, data)
    if not updated:
        raise HTTPException(status_code=404, detail="Task not found")
    return build_task_response(await task_service.get_task(db, task_id))


@router.delete("/{task_id}")
async def delete_task(task_id: str, db: AsyncSession = Depends(get_db)):
    """Delete a task with its phases, reports and photos"""
    deleted = await orchestrator.delete_task(db, task_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"message": "Task deleted"}
