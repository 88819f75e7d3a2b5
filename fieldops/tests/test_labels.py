"""
Status code <-> persisted label mapping
"""
import pytest
from sqlalchemy import text

from fieldops.models.enums import (
    LabelEnum, MaterialRequestStatus, PhaseStatus, TargetRole, TaskStatus, ValidationStatus,
)
from fieldops.models.task import Task
from fieldops.services.errors import ValidationError


@pytest.mark.parametrize("status,label", [
    (ValidationStatus.PENDING, "En attente"),
    (ValidationStatus.NEEDS_REVISION, "À réviser"),
    (ValidationStatus.APPROVED, "Approuvé"),
])
def test_validation_labels_round_trip(status, label):
    assert status.label == label
    assert ValidationStatus.from_label(label) is status


@pytest.mark.parametrize("status,label", [
    (TaskStatus.PENDING, "En attente"),
    (TaskStatus.IN_PROGRESS, "En cours"),
    (TaskStatus.COMPLETED, "Terminé"),
    (TaskStatus.PAUSED, "En pause"),
])
def test_task_status_labels_round_trip(status, label):
    assert status.label == label
    assert TaskStatus.from_label(label) is status


def test_phase_status_labels():
    assert [s.label for s in PhaseStatus] == ["En attente", "En cours", "Terminé"]
    for status in PhaseStatus:
        assert PhaseStatus.from_label(status.label) is status


def test_every_enum_has_a_label_per_member():
    for enum_class in (TaskStatus, PhaseStatus, ValidationStatus, MaterialRequestStatus, TargetRole):
        assert len(set(enum_class.labels())) == len(enum_class)


@pytest.mark.parametrize("label", ["approuvé", "A réviser", "Approved", "", "Terminé "])
def test_unknown_validation_label_rejected(label):
    with pytest.raises(ValidationError):
        ValidationStatus.from_label(label)


def test_unknown_code_rejected():
    with pytest.raises(ValidationError):
        TaskStatus.from_code("done")
    with pytest.raises(ValueError):
        TargetRole.from_code("admin")


def test_label_enum_binds_codes_and_members():
    column_type = LabelEnum(TaskStatus)
    assert column_type.process_bind_param(TaskStatus.PAUSED, None) == "En pause"
    assert column_type.process_bind_param("in_progress", None) == "En cours"
    assert column_type.process_bind_param(None, None) is None
    assert column_type.process_result_value("Terminé", None) is TaskStatus.COMPLETED


async def test_labels_are_what_the_database_stores(db_session):
    db_session.add(Task(id="T001", description="Pose de bordures", status=TaskStatus.IN_PROGRESS))
    await db_session.commit()

    raw = await db_session.execute(text("SELECT status FROM tasks WHERE id = 'T001'"))
    assert raw.scalar_one() == "En cours"

    task = await db_session.get(Task, "T001")
    assert task.status is TaskStatus.IN_PROGRESS
