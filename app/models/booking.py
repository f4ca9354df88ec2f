# ===== app/models/booking.py =====
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_bookings_start_before_end"),
        Index("ix_bookings_owner_status_start", "owner_id", "status", "start_time"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    owner_id = Column(UUID(as_uuid=True), nullable=False)
    event_type_id = Column(UUID(as_uuid=True), ForeignKey("booking_event_types.id"), nullable=True)  # null = ad-hoc
    rescheduled_from_id = Column(UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=True)

    # Interval, UTC
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)

    # Booker info
    booker_name = Column(String, nullable=False)
    booker_email = Column(String, nullable=False)
    booker_company = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    # Status tracking
    status = Column(String, nullable=False, default="confirmed")  # confirmed, cancelled

    # Calendar sync
    external_ref = Column(String, nullable=True)
    sync_status = Column(String, default="pending")  # pending, synced, failed, failed_permanent, sync_disabled
    sync_attempts = Column(Integer, default=0)
    last_sync_error = Column(Text, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)


class BookingOwnerLock(Base):
    """One row per owner, locked FOR UPDATE while a booking is committed"""
    __tablename__ = "booking_owner_locks"

    owner_id = Column(UUID(as_uuid=True), primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
