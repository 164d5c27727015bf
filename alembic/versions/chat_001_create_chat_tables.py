"""create users, profiles, chat and notification tables

Revision ID: chat_001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = 'chat_001'
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def _profile_table(name: str, *extra):
    op.create_table(name,
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        *extra,
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f(f'ix_{name}_user_id'), name, ['user_id'], unique=True)
    op.create_index(op.f(f'ix_{name}_created_at'), name, ['created_at'])


def upgrade() -> None:
    # Identity tables, owned by the auth service and read here for lookups
    op.create_table('users',
        *_base_columns(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=True),
        sa.Column('role', sa.String(length=8), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_created_at'), 'users', ['created_at'])

    _profile_table('patients')
    _profile_table('nurses')
    _profile_table('doctors', sa.Column('specialization', sa.String(length=100), nullable=True))

    # Create chat_rooms table
    op.create_table('chat_rooms',
        *_base_columns(),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('patient_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('nurse_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('doctor_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('participant_key', sa.String(length=160), nullable=False),
        sa.Column('status', sa.String(length=8), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
        sa.ForeignKeyConstraint(['nurse_id'], ['nurses.id'], ),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    # Create indexes for chat_rooms
    op.create_index('idx_chat_room_participants', 'chat_rooms', ['participant_key'], unique=True)
    op.create_index(op.f('ix_chat_rooms_kind'), 'chat_rooms', ['kind'])
    op.create_index(op.f('ix_chat_rooms_patient_id'), 'chat_rooms', ['patient_id'])
    op.create_index(op.f('ix_chat_rooms_nurse_id'), 'chat_rooms', ['nurse_id'])
    op.create_index(op.f('ix_chat_rooms_doctor_id'), 'chat_rooms', ['doctor_id'])
    op.create_index(op.f('ix_chat_rooms_last_activity_at'), 'chat_rooms', ['last_activity_at'])
    op.create_index(op.f('ix_chat_rooms_created_at'), 'chat_rooms', ['created_at'])

    # Create chat_messages table
    op.create_table('chat_messages',
        *_base_columns(),
        sa.Column('chat_room_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sender_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('sender_role', sa.String(length=8), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['chat_room_id'], ['chat_rooms.id'], ),
        sa.PrimaryKeyConstraint('id')
    )

    # Create indexes for chat_messages
    op.create_index('idx_chat_message_room_time', 'chat_messages', ['chat_room_id', 'created_at'])
    op.create_index('idx_chat_message_unread', 'chat_messages', ['chat_room_id', 'is_read'])
    op.create_index(op.f('ix_chat_messages_chat_room_id'), 'chat_messages', ['chat_room_id'])
    op.create_index(op.f('ix_chat_messages_sender_id'), 'chat_messages', ['sender_id'])
    op.create_index(op.f('ix_chat_messages_created_at'), 'chat_messages', ['created_at'])

    # Create notifications table
    op.create_table('notifications',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_notification_user_unread', 'notifications', ['user_id', 'is_read'])
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'])
    op.create_index(op.f('ix_notifications_type'), 'notifications', ['type'])
    op.create_index(op.f('ix_notifications_created_at'), 'notifications', ['created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('chat_messages')
    op.drop_table('chat_rooms')
    op.drop_table('doctors')
    op.drop_table('nurses')
    op.drop_table('patients')
    op.drop_table('users')
