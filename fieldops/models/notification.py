"""
Notification model - role-targeted events discovered by polling clients
"""
from sqlalchemy import Column, String, Text, DateTime, Boolean, JSON, Index
from datetime import datetime
from fieldops.database import Base
from fieldops.models.enums import LabelEnum, TargetRole


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_role_created", "target_role", "created_at"),
    )

    id = Column(String(16), primary_key=True)  # N001...
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    target_role = Column(LabelEnum(TargetRole), nullable=False)
    target_user_id = Column(String, nullable=True)  # reserved for per-user addressing
    payload = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
