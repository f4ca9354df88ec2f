# ===== app/models/event_type.py =====
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class EventType(Base):
    """Bookable meeting type: duration plus the buffers kept free around it"""
    __tablename__ = "booking_event_types"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_event_types_duration_positive"),
        CheckConstraint("buffer_before_minutes >= 0", name="ck_event_types_buffer_before"),
        CheckConstraint("buffer_after_minutes >= 0", name="ck_event_types_buffer_after"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=30)
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
