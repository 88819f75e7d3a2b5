"""
Phase API endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.database import get_db
from fieldops.schemas import PhaseCreate, PhaseIn, PhaseResponse, PhaseStatusUpdate, PhaseUpdate
from fieldops.services import task_service
from fieldops.services.workflow import orchestrator

router = APIRouter()


@router.get("/", response_model=List[PhaseResponse])
async def list_phases(task_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """List phases in order, optionally for one task"""
    return await task_service.list_phases(db, task_id=task_id)


@router.post("/", response_model=PhaseResponse, status_code=201)
async def add_phase(data: PhaseCreate, db: AsyncSession = Depends(get_db)):
    """Append a phase to a task"""
    phase = await orchestrator.add_phase(db, data.task_id, PhaseIn(**data.model_dump(exclude={"task_id"})))
    if not phase:
        raise HTTPException(status_code=404, detail="Task not found")
    return phase


@router.put("/{phase_id}", response_model=PhaseResponse)
async def update_phase(phase_id: str, data: PhaseUpdate, db: AsyncSession = Depends(get_db)):
    updated = await orchestrator.update_phase(db, phase_id, data)
    if not updated:
        raise HTTPException(status_code=404, detail="Phase not found")
    return await task_service.get_phase(db, phase_id)


@router.patch("/{phase_id}/status", response_model=PhaseResponse)
async def set_phase_status(phase_id: str, data: PhaseStatusUpdate, db: AsyncSession = Depends(get_db)):
    """Move a phase forward: waiting -> in_progress -> done"""
    updated = await orchestrator.set_phase_status(db, phase_id, data.status)
    if not updated:
        raise HTTPException(status_code=404, detail="Phase not found")
    return await task_service.get_phase(db, phase_id)


@router.delete("/{phase_id}")
async def delete_phase(phase_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await orchestrator.delete_phase(db, phase_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Phase not found")
    return {"message": "Phase deleted"}
