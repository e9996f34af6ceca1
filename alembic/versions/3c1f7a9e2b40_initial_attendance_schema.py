"""Initial schema: users, events, attendance ledger, notifications

Revision ID: 3c1f7a9e2b40
Revises: 
Create Date: 2026-10-18 10:12:04.331270

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c1f7a9e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    role_enum = postgresql.ENUM('user', 'admin', 'guest', name='roleenum', create_type=False)
    event_status_enum = postgresql.ENUM('draft', 'published', 'cancelled', 'completed', name='eventstatusenum', create_type=False)
    attendance_status_enum = postgresql.ENUM('confirmed', 'waitlist', 'cancelled', name='attendancestatusenum', create_type=False)
    notification_type_enum = postgresql.ENUM(
        'rsvp_update', 'rsvp_confirmation', 'rsvp_waitlisted', 'rsvp_promoted',
        name='notificationtypeenum', create_type=False,
    )
    for enum_type in (role_enum, event_status_enum, attendance_status_enum, notification_type_enum):
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', role_enum, nullable=False, server_default='user'),
        sa.Column('notify_rsvp_updates', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('capacity', sa.Integer, nullable=False),
        sa.Column('status', event_status_enum, nullable=False, server_default='published'),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('capacity > 0', name='ck_event_capacity_positive'),
    )
    op.create_index('idx_event_date', 'events', ['starts_at'])
    op.create_index('idx_event_organizer', 'events', ['created_by'])

    # single source of truth for attendance; one row per (event, user), never deleted
    op.create_table(
        'attendances',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_id', sa.Uuid(), sa.ForeignKey('events.id'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', attendance_status_enum, nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('event_id', 'user_id', name='uq_attendance_event_user'),
    )
    op.create_index('idx_attendance_event_status', 'attendances', ['event_id', 'status'])
    op.create_index('idx_attendance_user', 'attendances', ['user_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('event_id', sa.Uuid(), sa.ForeignKey('events.id'), nullable=True),
        sa.Column('type', notification_type_enum, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_notification_user_created', 'notifications', ['user_id', 'created_at'])
    op.create_index('idx_notification_user_read', 'notifications', ['user_id', 'is_read'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('attendances')
    op.drop_table('events')
    op.drop_table('users')

    sa.Enum(name='notificationtypeenum').drop(op.get_bind())
    sa.Enum(name='attendancestatusenum').drop(op.get_bind())
    sa.Enum(name='eventstatusenum').drop(op.get_bind())
    sa.Enum(name='roleenum').drop(op.get_bind())
