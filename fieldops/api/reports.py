"""
Report API endpoints - brigade progress reports, supervisor validation, photos
"""
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.database import get_db
from fieldops.models.enums import ValidationStatus
from fieldops.models.report import Report
from fieldops.models.task import Phase
from fieldops.schemas import (
    PhotoResponse, ReportCreate, ReportJudgement, ReportResponse, ReportUpdate,
)
from fieldops.services import report_service
from fieldops.services.photo_storage import photo_storage
from fieldops.services.workflow import orchestrator

router = APIRouter()


def build_report_response(r: Report, phase: Optional[Phase] = None) -> ReportResponse:
    phase = phase or r.phase
    return ReportResponse(
        id=r.id,
        phase_id=r.phase_id,
        task_id=phase.task_id if phase is not None else None,
        phase_name=phase.name if phase is not None else None,
        description=r.description,
        report_date=r.report_date,
        advancement=r.advancement,
        validation=r.validation,
        validation_label=r.validation.label,
        comment=r.comment,
        photos=[PhotoResponse.model_validate(p) for p in r.photos],
        created_at=r.created_at,
    )


@router.get("/", response_model=List[ReportResponse])
async def list_reports(
    task_id: Optional[str] = None,
    phase_id: Optional[str] = None,
    validation: Optional[ValidationStatus] = None,
    db: AsyncSession = Depends(get_db),
):
    """List reports, newest first. validation filters on the normalized code"""
    reports = await report_service.list_reports(db, task_id=task_id, phase_id=phase_id, validation=validation)
    return [build_report_response(r) for r in reports]


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(report_id: str, db: AsyncSession = Depends(get_db)):
    report = await report_service.get_report(db, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return build_report_response(report)


@router.post("/", response_model=ReportResponse, status_code=201)
async def submit_report(data: ReportCreate, db: AsyncSession = Depends(get_db)):
    """Submit a report on a phase; it starts pending validation"""
    report = await orchestrator.submit_report(
        db,
        data.phase_id,
        data.description,
        data.advancement,
        photos=data.photos,
        report_date=data.report_date,
    )
    if not report:
        raise HTTPException(status_code=404, detail="Phase not found")
    return build_report_response(report)


@router.put("/{report_id}", response_model=ReportResponse)
async def update_report(report_id: str, data: ReportUpdate, db: AsyncSession = Depends(get_db)):
    updated = await orchestrator.update_report(
        db,
        report_id,
        description=data.description,
        advancement=data.advancement,
        report_date=data.report_date,
        photos=data.photos,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Report not found")
    return build_report_response(await report_service.get_report(db, report_id))


@router.put("/{report_id}/validation", response_model=ReportResponse)
async def judge_report(report_id: str, data: ReportJudgement, db: AsyncSession = Depends(get_db)):
    """Supervisor decision: validation is "En attente", "À réviser" or "Approuvé" """
    judged = await orchestrator.judge_report(db, report_id, data.validation, data.comment)
    if not judged:
        raise HTTPException(status_code=404, detail="Report not found")
    return build_report_response(await report_service.get_report(db, report_id))


@router.delete("/{report_id}")
async def delete_report(report_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await orchestrator.delete_report(db, report_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Report not found")
    return {"message": "Report deleted"}


# --- Photos ---

@router.post("/{report_id}/photos", response_model=List[PhotoResponse])
async def upload_photos(
    report_id: str,
    files: List[UploadFile] = File(...),
    db: AsyncSession = Depends(get_db),
):
    """Upload a new photo batch; previous photos of the report are replaced"""
    batch = [(f.filename, await f.read()) for f in files]
    photos = await orchestrator.store_report_photos(db, report_id, batch)
    if photos is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return [PhotoResponse.model_validate(p) for p in photos]


@router.get("/{report_id}/photos/{photo_id}")
async def download_photo(report_id: str, photo_id: int, db: AsyncSession = Depends(get_db)):
    photo = await report_service.get_photo(db, report_id, photo_id)
    if not photo:
        raise HTTPException(status_code=404, detail="Photo not found")

    file_path = photo_storage.path_for(report_id, photo.filename)
    if not os.path.exists(file_path):
        raise HTTPException(status_code=404, detail="Photo file not found")
    return FileResponse(file_path, filename=photo.filename)
