"""
Material catalog and material request persistence
"""
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fieldops.models.enums import MaterialRequestStatus
from fieldops.models.material import Material, MaterialRequest, MaterialRequestLine
from fieldops.schemas import MaterialCreate, MaterialLine
from fieldops.services.errors import ValidationError
from fieldops.services.identifiers import add_with_identifier, MATERIAL_PREFIX, MATERIAL_REQUEST_PREFIX
from fieldops.utils.logger import get_logger

logger = get_logger(__name__)


async def resolve_by_name(session: AsyncSession, names: List[str]) -> Dict[str, Material]:
    """Exact, case-sensitive name match against the catalog"""
    if not names:
        return {}
    result = await session.execute(select(Material).where(Material.name.in_(set(names))))
    return {m.name: m for m in result.scalars().all()}


async def resolve_lines(
    session: AsyncSession, items: List[MaterialLine]
) -> List[Tuple[Material, float]]:
    """
    Catalog material + quantity for each usable item. Lines without a name,
    with a non-positive quantity or naming an unknown material are dropped.
    """
    catalog = await resolve_by_name(session, [item.name for item in items if item.name])
    resolved = []
    for item in items:
        if not item.name or not item.quantity or item.quantity < 0:
            logger.info(f"Incomplete material line {item.name!r} x {item.quantity}, line dropped")
            continue
        material = catalog.get(item.name)
        if material is None:
            logger.info(f"Unknown material {item.name!r}, line dropped")
            continue
        resolved.append((material, item.quantity))
    return resolved


async def list_materials(session: AsyncSession) -> List[Material]:
    result = await session.execute(select(Material).order_by(Material.name))
    return list(result.scalars().all())


async def create_material(session: AsyncSession, data: MaterialCreate) -> Material:
    if not data.name.strip():
        raise ValidationError("Material name is required")
    if data.quantity < 0:
        raise ValidationError("Material quantity cannot be negative")

    return await add_with_identifier(
        session,
        Material,
        MATERIAL_PREFIX,
        lambda identifier: Material(id=identifier, **data.model_dump()),
    )


async def create_request(
    session: AsyncSession, task_id: str, items: List[MaterialLine]
) -> MaterialRequest:
    """Persist a pending request and its resolved detail lines"""
    resolved = await resolve_lines(session, items)

    def build(identifier: str) -> MaterialRequest:
        request = MaterialRequest(id=identifier, task_id=task_id, status=MaterialRequestStatus.PENDING)
        request.lines = [
            MaterialRequestLine(material_id=material.id, quantity_requested=quantity)
            for material, quantity in resolved
        ]
        return request

    request = await add_with_identifier(session, MaterialRequest, MATERIAL_REQUEST_PREFIX, build)
    logger.info(
        f"Material request {request.id} for task {task_id}: "
        f"{len(resolved)}/{len(items)} line(s) resolved"
    )
    return request


async def list_requests(session: AsyncSession, task_id: Optional[str] = None) -> List[MaterialRequest]:
    query = (
        select(MaterialRequest)
        .options(selectinload(MaterialRequest.lines).selectinload(MaterialRequestLine.material))
        .order_by(MaterialRequest.created_at.desc(), MaterialRequest.id.desc())
    )
    if task_id:
        query = query.where(MaterialRequest.task_id == task_id)
    result = await session.execute(query)
    return list(result.scalars().all())
