"""
Workflow orchestrator: lifecycle transitions and their notification side effects
"""
from datetime import date, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select, func, text
from sqlalchemy.exc import OperationalError

from fieldops.models.enums import PhaseStatus, TargetRole, TaskStatus, ValidationStatus
from fieldops.models.material import MaterialRequest, MaterialRequestLine
from fieldops.models.notification import Notification
from fieldops.models.report import ReportPhoto
from fieldops.models.task import Task
from fieldops.schemas import MaterialLine, PhaseIn, TaskCreate, TaskUpdate
from fieldops.services import notification_service, report_service, task_service
from fieldops.services.errors import (
    InvalidTransition, NotificationEmissionFailure, ValidationError,
)
from fieldops.services.workflow import orchestrator, WorkflowOrchestrator


def _three_phase_task(**overrides) -> TaskCreate:
    data = {
        "title": "Réfection trottoir rue Haute",
        "start_date": date(2024, 5, 6),
        "end_date": date(2024, 5, 17),
        "brigade_id": 3,
        "team_id": 7,
        "employee_ids": [11, 12],
        "materials": [
            MaterialLine(name="Ciment", quantity=10),
            MaterialLine(name="Brouette", quantity=2),
        ],
        "phases": [
            PhaseIn(name="Démolition", planned_duration_days=2),
            PhaseIn(name="Coffrage", planned_duration_days=3),
            PhaseIn(name="Coulage", planned_duration_days=1),
        ],
    }
    data.update(overrides)
    return TaskCreate(**data)


async def _notification_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(Notification))
    return result.scalar_one()


# ===================== CREATE TASK =====================


async def test_create_task_persists_phases_links_and_notifies_brigade(db_session, seed_data):
    result = await orchestrator.create_task(db_session, _three_phase_task())
    task = result.value

    assert task.id == "T001"
    assert task.status == TaskStatus.PENDING
    assert [p.id for p in task.phases] == ["P001", "P002", "P003"]
    assert [p.position for p in task.phases] == [0, 1, 2]
    assert all(p.status == PhaseStatus.WAITING for p in task.phases)
    assert sorted(e.employee_id for e in task.employees) == [11, 12]
    # unknown "Brouette" dropped
    assert [(m.material.name, m.quantity_used) for m in task.materials] == [("Ciment", 10)]
    assert result.warnings == []

    notifications = await notification_service.list_for_role(db_session, TargetRole.CHEF_BRIGADE)
    assert len(notifications) == 1
    notification = notifications[0]
    assert result.notification_id == notification.id
    assert notification.title == "Nouvelle tâche ajoutée"
    assert notification.message == 'La tâche "Réfection trottoir rue Haute" a été planifiée par le chef de section.'
    assert notification.payload == {"taskId": "T001", "redirectTo": "/brigade/taches/T001"}
    assert notification.is_read is False


async def test_create_task_ids_are_unique_and_increasing(db_session, seed_data):
    ids = []
    for n in range(4):
        result = await orchestrator.create_task(db_session, TaskCreate(title=f"Tâche {n}"))
        ids.append(result.value.id)

    assert ids == ["T001", "T002", "T003", "T004"]


async def test_create_task_keeps_supervisor_status(db_session, seed_data):
    result = await orchestrator.create_task(db_session, TaskCreate(title="Urgence", status=TaskStatus.IN_PROGRESS))
    assert result.value.status == TaskStatus.IN_PROGRESS


async def test_create_task_survives_notification_failure(db_session, seed_data):
    failing = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")))
    with patch.object(orchestrator.notifications, "create_for_role", failing):
        result = await orchestrator.create_task(db_session, _three_phase_task())

    assert failing.await_count == 1
    assert result.notification_id is None
    assert result.warnings == ["Notification to chef_brigade could not be created"]

    db_session.expunge_all()
    task = await task_service.get_task(db_session, result.value.id)
    assert task is not None
    assert len(task.phases) == 3
    assert await _notification_count(db_session) == 0


async def test_create_task_survives_non_database_notification_error(db_session, seed_data):
    failing = AsyncMock(side_effect=TypeError("Object of type date is not JSON serializable"))
    with patch.object(orchestrator.notifications, "create_for_role", failing):
        result = await orchestrator.create_task(db_session, TaskCreate(title="Curage"))

    assert result.warnings == ["Notification to chef_brigade could not be created"]
    task_id = result.value.id

    db_session.expunge_all()
    assert await task_service.get_task(db_session, task_id) is not None
    assert await _notification_count(db_session) == 0


async def test_create_task_rejects_blank_title(db_session, seed_data):
    with pytest.raises(ValidationError):
        await orchestrator.create_task(db_session, TaskCreate(title="   "))
    assert await _notification_count(db_session) == 0


# ===================== UPDATE / DELETE TASK =====================


async def test_update_task_unknown_returns_false(db_session, seed_data):
    assert await orchestrator.update_task(db_session, "T404", TaskUpdate(title="x")) is False


async def test_update_task_late_completion_records_today(db_session, seed_data):
    past_end = date.today() - timedelta(days=3)
    created = await orchestrator.create_task(db_session, TaskCreate(title="En retard", end_date=past_end))

    assert await orchestrator.update_task(db_session, created.value.id, TaskUpdate(status=TaskStatus.COMPLETED))

    task = await task_service.get_task(db_session, created.value.id)
    assert task.status == TaskStatus.COMPLETED
    assert task.actual_end_date == date.today()


async def test_update_task_on_time_completion_leaves_actual_end_empty(db_session, seed_data):
    future_end = date.today() + timedelta(days=3)
    created = await orchestrator.create_task(db_session, TaskCreate(title="À l'heure", end_date=future_end))

    await orchestrator.update_task(db_session, created.value.id, TaskUpdate(status=TaskStatus.COMPLETED))

    task = await task_service.get_task(db_session, created.value.id)
    assert task.actual_end_date is None


async def test_update_task_replaces_links_and_emits_nothing(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    before = await _notification_count(db_session)

    await orchestrator.update_task(db_session, created.value.id, TaskUpdate(
        title="Nouveau titre",
        employee_ids=[42],
        materials=[MaterialLine(name="Pelle", quantity=4)],
    ))

    task = await task_service.get_task(db_session, created.value.id)
    assert task.description == "Nouveau titre"
    assert [e.employee_id for e in task.employees] == [42]
    assert [(m.material_id, m.quantity_used) for m in task.materials] == [("M002", 4)]
    assert len(task.phases) == 3
    assert await _notification_count(db_session) == before


async def test_direct_status_override_leaves_phases_inconsistent(db_session, seed_data):
    """Status is supervisor-owned: completing a task does not touch its phases"""
    created = await orchestrator.create_task(db_session, _three_phase_task())

    await orchestrator.update_task(db_session, created.value.id, TaskUpdate(status=TaskStatus.COMPLETED))

    task = await task_service.get_task(db_session, created.value.id)
    assert task.status == TaskStatus.COMPLETED
    assert task_service.progress_fraction(task.phases) == 0.0


async def test_delete_task_removes_everything_below(db_session, seed_data, photo_dir):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    phase_id = created.value.phases[0].id
    report = await orchestrator.submit_report(db_session, phase_id, "Démolition faite", 100)
    await orchestrator.store_report_photos(db_session, report.id, [("a.jpg", b"jpeg")])
    assert (photo_dir / report.id).exists()

    assert await orchestrator.delete_task(db_session, created.value.id) is True
    assert await task_service.get_task(db_session, created.value.id) is None
    assert await report_service.get_report(db_session, report.id) is None
    assert not (photo_dir / report.id).exists()
    assert await orchestrator.delete_task(db_session, created.value.id) is False


# ===================== PHASES & PROGRESS =====================


async def test_progress_fraction_without_phases_is_zero(db_session, seed_data):
    result = await orchestrator.create_task(db_session, TaskCreate(title="Sans phases"))
    assert task_service.progress_fraction(result.value.phases) == 0.0


async def test_three_phase_scenario_progress_and_brigade_notification(db_session, seed_data):
    result = await orchestrator.create_task(db_session, _three_phase_task())
    task = result.value
    assert task_service.progress_fraction(task.phases) == 0.0

    notifications = await notification_service.list_for_role(db_session, TargetRole.CHEF_BRIGADE)
    assert notifications[0].payload["taskId"] == task.id

    assert await orchestrator.set_phase_status(db_session, task.phases[0].id, PhaseStatus.DONE)

    task = await task_service.get_task(db_session, task.id)
    assert task_service.progress_fraction(task.phases) == pytest.approx(1 / 3)
    assert task.phases[0].actual_start_date == date.today()
    assert task.phases[0].actual_end_date == date.today()


async def test_phase_status_only_moves_forward(db_session, seed_data):
    result = await orchestrator.create_task(db_session, _three_phase_task())
    phase_id = result.value.phases[1].id

    assert await orchestrator.set_phase_status(db_session, phase_id, PhaseStatus.IN_PROGRESS)
    phase = await task_service.get_phase(db_session, phase_id)
    assert phase.actual_start_date == date.today()
    assert phase.actual_end_date is None

    with pytest.raises(InvalidTransition):
        await orchestrator.set_phase_status(db_session, phase_id, PhaseStatus.WAITING)

    phase = await task_service.get_phase(db_session, phase_id)
    assert phase.status == PhaseStatus.IN_PROGRESS
    assert await orchestrator.set_phase_status(db_session, "P404", PhaseStatus.DONE) is False


async def test_add_phase_appends_at_the_end(db_session, seed_data):
    result = await orchestrator.create_task(db_session, _three_phase_task())

    phase = await orchestrator.add_phase(db_session, result.value.id, PhaseIn(name="Nettoyage"))
    assert phase.id == "P004"
    assert phase.position == 3

    assert await orchestrator.add_phase(db_session, "T404", PhaseIn(name="Orpheline")) is None


async def test_delete_phase(db_session, seed_data):
    result = await orchestrator.create_task(db_session, _three_phase_task())
    phase_id = result.value.phases[2].id

    assert await orchestrator.delete_phase(db_session, phase_id) is True
    phases = await task_service.list_phases(db_session, task_id=result.value.id)
    assert [p.id for p in phases] == ["P001", "P002"]
    assert await orchestrator.delete_phase(db_session, phase_id) is False


# ===================== REPORTS =====================


async def test_submit_then_judge_report_scenario(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    phase_id = created.value.phases[0].id
    before = await _notification_count(db_session)

    report = await orchestrator.submit_report(db_session, phase_id, "Démolition terminée", 100)
    assert report.id == "R001"
    assert report.validation == ValidationStatus.PENDING

    assert await orchestrator.judge_report(db_session, report.id, "À réviser", "retake photo 2") is True

    report = await report_service.get_report(db_session, report.id)
    assert report.validation == ValidationStatus.NEEDS_REVISION
    assert report.comment == "retake photo 2"
    assert await _notification_count(db_session) == before


async def test_submit_report_on_unknown_phase_returns_none(db_session, seed_data):
    assert await orchestrator.submit_report(db_session, "P404", "rien", 10) is None


@pytest.mark.parametrize("advancement", [-1, 101])
async def test_submit_report_rejects_out_of_range_advancement(db_session, seed_data, advancement):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    with pytest.raises(ValidationError):
        await orchestrator.submit_report(db_session, created.value.phases[0].id, "x", advancement)


async def test_submit_report_does_not_check_phase_status(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    phase = created.value.phases[2]
    assert phase.status == PhaseStatus.WAITING

    report = await orchestrator.submit_report(db_session, phase.id, "Anticipé", 5)
    assert report is not None


async def test_judge_report_rejects_unknown_label_before_storage(db_session, seed_data):
    with pytest.raises(ValidationError):
        await orchestrator.judge_report(db_session, "R404", "approved", None)


async def test_judged_report_is_terminal(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    report = await orchestrator.submit_report(db_session, created.value.phases[0].id, "ok", 50)
    report_id = report.id

    await orchestrator.judge_report(db_session, report_id, "Approuvé", "parfait")
    # re-applying the same decision is accepted
    assert await orchestrator.judge_report(db_session, report_id, "Approuvé", "parfait, merci") is True

    with pytest.raises(InvalidTransition):
        await orchestrator.judge_report(db_session, report_id, "À réviser", None)
    with pytest.raises(InvalidTransition):
        await orchestrator.judge_report(db_session, report_id, "En attente", None)

    report = await report_service.get_report(db_session, report_id)
    assert report.validation == ValidationStatus.APPROVED
    assert report.comment == "parfait, merci"


async def test_judge_report_comment_only(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    report = await orchestrator.submit_report(db_session, created.value.phases[0].id, "ok", 50)

    assert await orchestrator.judge_report(db_session, report.id, None, "photos floues") is True

    report = await report_service.get_report(db_session, report.id)
    assert report.validation == ValidationStatus.PENDING
    assert report.comment == "photos floues"
    assert await orchestrator.judge_report(db_session, "R404", None, "x") is False


async def test_photo_upload_replaces_previous_batch(db_session, seed_data, photo_dir):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    report = await orchestrator.submit_report(db_session, created.value.phases[0].id, "ok", 50)

    await orchestrator.store_report_photos(db_session, report.id, [
        ("avant.jpg", b"1"), ("pendant.png", b"2"), ("apres.jpg", b"3"),
    ])
    photos = await orchestrator.store_report_photos(db_session, report.id, [("final.webp", b"4")])

    assert [(p.filename, p.position) for p in photos] == [(f"{report.id}_1.webp", 0)]
    assert sorted(f.name for f in (photo_dir / report.id).iterdir()) == [f"{report.id}_1.webp"]

    result = await db_session.execute(select(ReportPhoto).where(ReportPhoto.report_id == report.id))
    assert len(result.scalars().all()) == 1


async def test_photo_upload_rejects_non_images_without_touching_the_batch(db_session, seed_data, photo_dir):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    report = await orchestrator.submit_report(db_session, created.value.phases[0].id, "ok", 50)
    report_id = report.id
    await orchestrator.store_report_photos(db_session, report_id, [("a.jpg", b"1")])

    with pytest.raises(ValidationError):
        await orchestrator.store_report_photos(db_session, report_id, [("b.jpg", b"2"), ("notes.pdf", b"3")])

    assert sorted(f.name for f in (photo_dir / report_id).iterdir()) == [f"{report_id}_1.jpg"]
    report = await report_service.get_report(db_session, report_id)
    assert [p.filename for p in report.photos] == [f"{report_id}_1.jpg"]


async def test_update_report_keeps_validation(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    report = await orchestrator.submit_report(db_session, created.value.phases[0].id, "v1", 30)
    await orchestrator.judge_report(db_session, report.id, "À réviser", "incomplet")

    assert await orchestrator.update_report(db_session, report.id, description="v2", advancement=60) is True

    report = await report_service.get_report(db_session, report.id)
    assert (report.description, report.advancement) == ("v2", 60)
    assert report.validation == ValidationStatus.NEEDS_REVISION


# ===================== MATERIAL REQUESTS =====================


async def test_request_materials_with_unknown_material(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    task_id = created.value.id

    result = await orchestrator.request_materials(db_session, task_id, [
        MaterialLine(name="Ciment", quantity=5),
        MaterialLine(name="Marteau-piqueur", quantity=1),
    ])

    assert result.value.id == "DM001"
    assert result.value.persisted is True
    lines = (await db_session.execute(select(MaterialRequestLine))).scalars().all()
    assert [(line.material_id, line.quantity_requested) for line in lines] == [("M001", 5)]

    notifications = await notification_service.list_for_role(db_session, TargetRole.CHEF_SECTION)
    assert len(notifications) == 1
    notification = notifications[0]
    assert notification.title == "Demande de matériel"
    assert notification.message == (
        'Le chef de brigade demande des matériels pour la tâche "Réfection trottoir rue Haute" (T001).'
        "\n\nMatériels demandés:\n- Ciment (quantité: 5)\n- Marteau-piqueur (quantité: 1)"
    )
    assert notification.payload == {
        "demandeId": "DM001",
        "taskId": "T001",
        "materiels": [{"nom": "Ciment", "quantite": 5}, {"nom": "Marteau-piqueur", "quantite": 1}],
        "redirectTo": "/materiels",
        "filter": "demandes",
    }


async def test_request_materials_uses_task_id_when_description_missing(db_session, seed_data):
    result = await orchestrator.request_materials(db_session, "T999", [MaterialLine(name="Pelle", quantity=2)])

    # unknown task: the request row cannot reference it and is skipped
    assert result.value.persisted is False
    notifications = await notification_service.list_for_role(db_session, TargetRole.CHEF_SECTION)
    assert 'pour la tâche "T999" (T999).' in notifications[0].message


async def test_request_materials_notification_failure_is_fatal(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())

    failing = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("database is locked")))
    with patch.object(orchestrator.notifications, "create_for_role", failing):
        with pytest.raises(NotificationEmissionFailure):
            await orchestrator.request_materials(
                db_session, created.value.id, [MaterialLine(name="Ciment", quantity=5)],
            )

    requests = (await db_session.execute(select(MaterialRequest))).scalars().all()
    assert requests == []


async def test_request_materials_any_notification_error_is_fatal(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    task_id = created.value.id

    failing = AsyncMock(side_effect=RuntimeError("payload not serializable"))
    with patch.object(orchestrator.notifications, "create_for_role", failing):
        with pytest.raises(NotificationEmissionFailure):
            await orchestrator.request_materials(db_session, task_id, [MaterialLine(name="Pelle", quantity=2)])

    requests = (await db_session.execute(select(MaterialRequest))).scalars().all()
    assert requests == []


async def test_request_materials_degraded_mode_without_tables(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    await db_session.execute(text("DROP TABLE material_request_lines"))
    await db_session.execute(text("DROP TABLE material_requests"))
    await db_session.commit()

    result = await orchestrator.request_materials(
        db_session, created.value.id, [MaterialLine(name="Casque", quantity=3)],
    )

    assert result.value.id == "DM001"
    assert result.value.persisted is False
    assert result.warnings == ["Material request could not be stored"]
    notifications = await notification_service.list_for_role(db_session, TargetRole.CHEF_SECTION)
    assert notifications[0].payload["demandeId"] == "DM001"


async def test_request_materials_rejects_empty_list(db_session, seed_data):
    with pytest.raises(ValidationError):
        await orchestrator.request_materials(db_session, "T001", [])
    assert await _notification_count(db_session) == 0


async def test_request_materials_skips_incomplete_lines_but_lists_them(db_session, seed_data):
    created = await orchestrator.create_task(db_session, _three_phase_task())
    task_id = created.value.id

    result = await orchestrator.request_materials(db_session, task_id, [
        MaterialLine(name="Ciment", quantity=0),
        MaterialLine(name="", quantity=2),
        MaterialLine(name="Casque", quantity=4),
    ])

    assert result.value.persisted is True
    assert result.value.resolved_lines == 1
    lines = (await db_session.execute(select(MaterialRequestLine))).scalars().all()
    assert [(line.material_id, line.quantity_requested) for line in lines] == [("M003", 4)]

    notifications = await notification_service.list_for_role(db_session, TargetRole.CHEF_SECTION)
    assert notifications[0].message.endswith(
        "Matériels demandés:\n- Ciment (quantité: 0)\n-  (quantité: 2)\n- Casque (quantité: 4)"
    )


async def test_orchestrators_do_not_share_notification_patches(db_session, seed_data):
    """A separately built orchestrator writes through the real store"""
    other = WorkflowOrchestrator()
    result = await other.create_task(db_session, TaskCreate(title="Indépendante"))
    assert result.notification_id == "N001"
    db_session.expunge_all()
    assert await db_session.get(Task, result.value.id) is not None
