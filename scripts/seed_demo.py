"""
Demo data: material catalog plus one planned task with its phases
"""
import asyncio
from datetime import date, timedelta
from typing import List

from fieldops.database import engine, Base, AsyncSessionLocal
from fieldops.models.material import Material
from fieldops.schemas import MaterialCreate, MaterialLine, PhaseIn, TaskCreate
from fieldops.services import material_service
from fieldops.services.workflow import orchestrator

CATALOG = [
    MaterialCreate(name="Ciment", type="consommable", quantity=120),
    MaterialCreate(name="Pelle", type="outil", quantity=15),
    MaterialCreate(name="Brouette", type="outil", quantity=6),
    MaterialCreate(name="Casque", type="EPI", quantity=40),
    MaterialCreate(name="Gilet fluorescent", type="EPI", quantity=40),
]


async def seed_catalog(session) -> List[Material]:
    """Add the catalog materials that are not there yet"""
    existing = await material_service.resolve_by_name(session, [m.name for m in CATALOG])
    created = []
    for data in CATALOG:
        if data.name in existing:
            continue
        created.append(await orchestrator.create_material(session, data))
    return created


async def seed_demo():
    print("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        for material in await seed_catalog(session):
            print(f"  {material.id} {material.name}")

        start = date.today()
        result = await orchestrator.create_task(session, TaskCreate(
            title="Réfection trottoir rue de la Gare",
            start_date=start,
            end_date=start + timedelta(days=5),
            brigade_id=1,
            team_id=1,
            employee_ids=[11, 12, 13],
            materials=[MaterialLine(name="Ciment", quantity=10), MaterialLine(name="Pelle", quantity=3)],
            phases=[
                PhaseIn(name="Balisage du chantier", planned_duration_days=1),
                PhaseIn(name="Démolition", planned_duration_days=2),
                PhaseIn(name="Coulage", planned_duration_days=2),
            ],
        ))
        task = result.value
        print(f"Task {task.id} created with {len(task.phases)} phases")
        for warning in result.warnings:
            print(f"  warning: {warning}")

    await engine.dispose()
    print("\nDemo data ready")


if __name__ == "__main__":
    asyncio.run(seed_demo())
