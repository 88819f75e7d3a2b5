"""
Task models - a unit of field work decomposed into ordered phases
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Float, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from fieldops.database import Base
from fieldops.models.enums import LabelEnum, TaskStatus, PhaseStatus


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(16), primary_key=True)  # T001, T002...
    description = Column(Text, nullable=False)  # task title
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    actual_end_date = Column(Date, nullable=True)  # only set on late completion
    status = Column(LabelEnum(TaskStatus), nullable=False, default=TaskStatus.PENDING)
    brigade_id = Column(Integer, nullable=True, index=True)
    team_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    phases = relationship(
        "Phase", back_populates="task", order_by="Phase.position",
        cascade="all, delete-orphan",
    )
    employees = relationship("TaskEmployee", back_populates="task", cascade="all, delete-orphan")
    materials = relationship("TaskMaterial", back_populates="task", cascade="all, delete-orphan")


class Phase(Base):
    __tablename__ = "phases"

    id = Column(String(16), primary_key=True)  # P001, P002...
    task_id = Column(String(16), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # ordre
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    planned_duration_days = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    actual_start_date = Column(Date, nullable=True)
    actual_end_date = Column(Date, nullable=True)
    status = Column(LabelEnum(PhaseStatus), nullable=False, default=PhaseStatus.WAITING)

    # Relationships
    task = relationship("Task", back_populates="phases")
    reports = relationship("Report", back_populates="phase", cascade="all, delete-orphan")


class TaskEmployee(Base):
    __tablename__ = "task_employees"

    task_id = Column(String(16), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    employee_id = Column(Integer, primary_key=True)

    task = relationship("Task", back_populates="employees")


class TaskMaterial(Base):
    __tablename__ = "task_materials"

    task_id = Column(String(16), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    material_id = Column(String(16), ForeignKey("materials.id"), primary_key=True)
    quantity_used = Column(Float, nullable=False, default=0)

    task = relationship("Task", back_populates="materials")
    material = relationship("Material")
