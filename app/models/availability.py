# ===== app/models/availability.py =====
from sqlalchemy import Column, String, Integer, Boolean, Time, Date, DateTime, Index, CheckConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class AvailabilityRule(Base):
    """Weekly recurring availability for one owner and weekday"""
    __tablename__ = "availability_rules"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_availability_rules_start_before_end"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_rules_day_of_week"),
        # At most one active rule per owner and weekday
        Index(
            "uq_availability_rules_active_day",
            "owner_id",
            "day_of_week",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_time = Column(Time, nullable=False)  # local wall clock
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")

    # Rules are never deleted, only deactivated when replaced
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deactivated_at = Column(DateTime(timezone=True), nullable=True)


class AvailabilityOverride(Base):
    """Specific date overrides (holidays, time-off, special hours)"""
    __tablename__ = "availability_overrides"
    __table_args__ = (
        Index("ix_availability_overrides_owner_date", "owner_id", "date", unique=True),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False)

    date = Column(Date, nullable=False)  # local date in `timezone`
    is_available = Column(Boolean, nullable=False)  # False = day off
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.
