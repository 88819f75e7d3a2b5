"""
Material catalog and ad-hoc material requests tied to a task
"""
from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from fieldops.database import Base
from fieldops.models.enums import LabelEnum, MaterialRequestStatus


class Material(Base):
    __tablename__ = "materials"

    id = Column(String(16), primary_key=True)  # M001...
    name = Column(String, nullable=False, unique=True, index=True)
    type = Column(String, nullable=True)
    quantity = Column(Float, nullable=False, default=0)  # stock
    state = Column(String, nullable=False, default="disponible")  # disponible / utilise / maintenance


class MaterialRequest(Base):
    __tablename__ = "material_requests"

    id = Column(String(16), primary_key=True)  # DM001...
    task_id = Column(String(16), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(LabelEnum(MaterialRequestStatus), nullable=False, default=MaterialRequestStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)

    lines = relationship("MaterialRequestLine", back_populates="request", cascade="all, delete-orphan")


class MaterialRequestLine(Base):
    __tablename__ = "material_request_lines"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(String(16), ForeignKey("material_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(String(16), ForeignKey("materials.id"), nullable=False)
    quantity_requested = Column(Float, nullable=False)

    request = relationship("MaterialRequest", back_populates="lines")
    material = relationship("Material")
