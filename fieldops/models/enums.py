"""
Workflow status enums and their persisted labels.

Application code only ever sees the normalized codes (TaskStatus.PENDING,
ValidationStatus.NEEDS_REVISION...). The human-readable labels stored in
the database ("En attente", "À réviser"...) are produced and parsed in a
single place: the LabelEnum column type below.
"""
from enum import Enum
from typing import Dict, Type

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from fieldops.services.errors import ValidationError


class LabeledEnum(str, Enum):
    """str enum with a lossless code <-> label mapping"""

    @property
    def label(self) -> str:
        return _LABELS[type(self)][self]

    @classmethod
    def labels(cls) -> list[str]:
        return list(_LABELS[cls].values())

    @classmethod
    def from_label(cls, label: str) -> "LabeledEnum":
        for member, member_label in _LABELS[cls].items():
            if member_label == label:
                return member
        raise ValidationError(
            f"Invalid {cls.__name__} label {label!r}. Must be one of: {cls.labels()}"
        )

    @classmethod
    def from_code(cls, code: str) -> "LabeledEnum":
        try:
            return cls(code)
        except ValueError:
            raise ValidationError(
                f"Invalid {cls.__name__} {code!r}. Must be one of: {[m.value for m in cls]}"
            ) from None


class TaskStatus(LabeledEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class PhaseStatus(LabeledEnum):
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class ValidationStatus(LabeledEnum):
    PENDING = "pending"
    NEEDS_REVISION = "needs_revision"
    APPROVED = "approved"


class MaterialRequestStatus(LabeledEnum):
    PENDING = "pending"


class TargetRole(LabeledEnum):
    CHEF_SECTION = "chef_section"
    CHEF_BRIGADE = "chef_brigade"


_LABELS: Dict[Type[LabeledEnum], Dict[LabeledEnum, str]] = {
    TaskStatus: {
        TaskStatus.PENDING: "En attente",
        TaskStatus.IN_PROGRESS: "En cours",
        TaskStatus.COMPLETED: "Terminé",
        TaskStatus.PAUSED: "En pause",
    },
    PhaseStatus: {
        PhaseStatus.WAITING: "En attente",
        PhaseStatus.IN_PROGRESS: "En cours",
        PhaseStatus.DONE: "Terminé",
    },
    ValidationStatus: {
        ValidationStatus.PENDING: "En attente",
        ValidationStatus.NEEDS_REVISION: "À réviser",
        ValidationStatus.APPROVED: "Approuvé",
    },
    MaterialRequestStatus: {
        MaterialRequestStatus.PENDING: "En attente",
    },
    TargetRole: {
        TargetRole.CHEF_SECTION: "chef_section",
        TargetRole.CHEF_BRIGADE: "chef_brigade",
    },
}

# Phases only move forward
PHASE_ORDER = {
    PhaseStatus.WAITING: 0,
    PhaseStatus.IN_PROGRESS: 1,
    PhaseStatus.DONE: 2,
}


class LabelEnum(TypeDecorator):
    """
    Column type persisting a LabeledEnum as its human-readable label.

    Binds accept either the enum member or its code; rows come back as
    enum members. Unknown labels in the database raise ValidationError.
    """
    impl = String
    cache_ok = True

    def __init__(self, enum_class: Type[LabeledEnum], length: int = 32):
        super().__init__(length)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.enum_class.from_code(value).label

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_class.from_label(value)
