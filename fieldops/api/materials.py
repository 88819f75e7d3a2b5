"""
Material API endpoints - catalog and brigade material requests
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.database import get_db
from fieldops.models.material import MaterialRequest
from fieldops.schemas import (
    MaterialCreate, MaterialRequestCreate, MaterialRequestLineResponse,
    MaterialRequestResponse, MaterialResponse,
)
from fieldops.services import material_service
from fieldops.services.workflow import orchestrator

router = APIRouter()


def _build_request_response(r: MaterialRequest) -> MaterialRequestResponse:
    return MaterialRequestResponse(
        id=r.id,
        task_id=r.task_id,
        status=r.status,
        created_at=r.created_at,
        lines=[
            MaterialRequestLineResponse(
                material_id=line.material_id,
                name=line.material.name if line.material else None,
                quantity_requested=line.quantity_requested,
            )
            for line in r.lines
        ],
    )


@router.get("/", response_model=List[MaterialResponse])
async def list_materials(db: AsyncSession = Depends(get_db)):
    return await material_service.list_materials(db)


@router.post("/", response_model=MaterialResponse, status_code=201)
async def create_material(data: MaterialCreate, db: AsyncSession = Depends(get_db)):
    """Add a material to the catalog; names are unique"""
    return await orchestrator.create_material(db, data)


@router.get("/requests", response_model=List[MaterialRequestResponse])
async def list_material_requests(task_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    requests = await material_service.list_requests(db, task_id=task_id)
    return [_build_request_response(r) for r in requests]


@router.post("/requests", status_code=201)
async def request_materials(data: MaterialRequestCreate, db: AsyncSession = Depends(get_db)):
    """
    Brigade material request. Body: {"idTache": "T001", "materiels": [{"nom": ..., "quantite": ...}]}

    The section supervisor is notified; if that notification cannot be
    created the request fails with 502 and nothing is recorded.
    """
    result = await orchestrator.request_materials(db, data.task_id, data.items)
    return {
        "success": True,
        "id": result.value.id,
        "persisted": result.value.persisted,
        "warnings": result.warnings,
    }
