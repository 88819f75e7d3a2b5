"""
Report models - brigade progress updates against a phase, with photos
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from fieldops.database import Base
from fieldops.models.enums import LabelEnum, ValidationStatus


class Report(Base):
    __tablename__ = "reports"

    id = Column(String(16), primary_key=True)  # R001, R002...
    phase_id = Column(String(16), ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    report_date = Column(Date, nullable=False)
    advancement = Column(Integer, nullable=False, default=0)  # 0-100
    validation = Column(LabelEnum(ValidationStatus), nullable=False, default=ValidationStatus.PENDING)
    comment = Column(Text, nullable=True)  # reviewer comment
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    phase = relationship("Phase", back_populates="reports")
    photos = relationship(
        "ReportPhoto", back_populates="report", order_by="ReportPhoto.position",
        cascade="all, delete-orphan",
    )


class ReportPhoto(Base):
    __tablename__ = "report_photos"
    __table_args__ = (
        UniqueConstraint("report_id", "position", name="uq_report_photo_position"),
    )

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(String(16), ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)  # display order, 0-based
    created_at = Column(DateTime, default=datetime.utcnow)

    report = relationship("Report", back_populates="photos")
