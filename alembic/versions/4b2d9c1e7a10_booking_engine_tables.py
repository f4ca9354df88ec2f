"""booking engine tables

Revision ID: 4b2d9c1e7a10
Revises:
Create Date: 2025-12-02 10:14:37.512904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4b2d9c1e7a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Weekly availability rules
    op.create_table(
        'availability_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('start_time', sa.Time, nullable=False),
        sa.Column('end_time', sa.Time, nullable=False),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('start_time < end_time', name='ck_availability_rules_start_before_end'),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_availability_rules_day_of_week'),
    )
    op.create_index('ix_availability_rules_owner_id', 'availability_rules', ['owner_id'])
    op.create_index(
        'uq_availability_rules_active_day',
        'availability_rules',
        ['owner_id', 'day_of_week'],
        unique=True,
        postgresql_where=sa.text('is_active')
    )

    # 2. Date overrides
    op.create_table(
        'availability_overrides',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('is_available', sa.Boolean, nullable=False),
        sa.Column('start_time', sa.Time, nullable=True),
        sa.Column('end_time', sa.Time, nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('reason', sa.String, nullable=True),
    )
    op.create_index(
        'ix_availability_overrides_owner_date', 'availability_overrides', ['owner_id', 'date'], unique=True
    )

    # 3. Event types
    op.create_table(
        'booking_event_types',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('duration_minutes', sa.Integer, nullable=False, server_default='30'),
        sa.Column('buffer_before_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('buffer_after_minutes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.CheckConstraint('duration_minutes > 0', name='ck_event_types_duration_positive'),
        sa.CheckConstraint('buffer_before_minutes >= 0', name='ck_event_types_buffer_before'),
        sa.CheckConstraint('buffer_after_minutes >= 0', name='ck_event_types_buffer_after'),
    )
    op.create_index('ix_booking_event_types_owner_id', 'booking_event_types', ['owner_id'])

    # 4. Bookings
    op.create_table(
        'bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('booking_event_types.id'), nullable=True),
        sa.Column('rescheduled_from_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('bookings.id'), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('booker_name', sa.String, nullable=False),
        sa.Column('booker_email', sa.String, nullable=False),
        sa.Column('booker_company', sa.String, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('status', sa.String, nullable=False, server_default='confirmed'),
        sa.Column('external_ref', sa.String, nullable=True),
        sa.Column('sync_status', sa.String, server_default='pending'),
        sa.Column('sync_attempts', sa.Integer, server_default='0'),
        sa.Column('last_sync_error', sa.Text, nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.CheckConstraint('start_time < end_time', name='ck_bookings_start_before_end'),
    )
    op.create_index('ix_bookings_owner_status_start', 'bookings', ['owner_id', 'status', 'start_time'])

    # 5. Per-owner booking lock rows
    op.create_table(
        'booking_owner_locks',
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('version', sa.Integer, nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    # 6. External calendar connections
    op.create_table(
        'calendar_integrations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('provider', sa.String, nullable=False, server_default='google'),
        sa.Column('calendar_id', sa.String, nullable=False, server_default='primary'),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('is_primary', sa.Boolean, server_default=sa.text('false')),
        sa.Column('include_in_availability', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('access_token_encrypted', sa.LargeBinary),
        sa.Column('refresh_token_encrypted', sa.LargeBinary),
        sa.Column('token_expires_at', sa.DateTime(timezone=True)),
        sa.Column('sync_direction', sa.String, server_default='bidirectional'),
        sa.Column('connection_status', sa.String, server_default='connected'),
        sa.Column('last_sync_at', sa.DateTime(timezone=True)),
        sa.Column('last_sync_status', sa.String),
        sa.Column('last_sync_error', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_calendar_integrations_owner_id', 'calendar_integrations', ['owner_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_calendar_integrations_owner_id', table_name='calendar_integrations')
    op.drop_table('calendar_integrations')
    op.drop_table('booking_owner_locks')
    op.drop_index('ix_bookings_owner_status_start', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_booking_event_types_owner_id', table_name='booking_event_types')
    op.drop_table('booking_event_types')
    op.drop_index('ix_availability_overrides_owner_date', table_name='availability_overrides')
    op.drop_table('availability_overrides')
    op.drop_index('uq_availability_rules_active_day', table_name='availability_rules')
    op.drop_index('ix_availability_rules_owner_id', table_name='availability_rules')
    op.drop_table('availability_rules')
