# ===== app/models/calendar_integration.py =====
from sqlalchemy import Column, String, Boolean, DateTime, LargeBinary, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.models.base import Base
import uuid


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    provider = Column(String, nullable=False, default="google")
    calendar_id = Column(String, nullable=False, default="primary")
    is_active = Column(Boolean, default=True)
    is_primary = Column(Boolean, default=False)  # bookings are pushed to the primary calendar

    # Whether busy time from this calendar blocks bookable slots
    include_in_availability = Column(Boolean, nullable=False, default=True)

    # OAuth tokens, Fernet encrypted
    access_token_encrypted = Column(LargeBinary)
    refresh_token_encrypted = Column(LargeBinary)
    token_expires_at = Column(DateTime(timezone=True))

    # Sync settings
    sync_direction = Column(String, default="bidirectional")  # 'read_only', 'write_only', 'bidirectional'
    connection_status = Column(String, default="connected")  # 'connected', 'auth_revoked', 'error'
    last_sync_at = Column(DateTime(timezone=True))
    last_sync_status = Column(String)  # 'success', 'failed', 'partial'
    last_sync_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
