"""Initial schema: profiles, trips, trip_members

Revision ID: 001
Revises: 
Create Date: 2025-03-03 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Profiles mirror identity-provider accounts (id = provider user id)
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)

    # Trips table
    op.create_table(
        'trips',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('privacy', sa.String(20), nullable=False, server_default='private'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("privacy IN ('private', 'friends-only', 'public')", name='ck_trips_privacy'),
    )
    op.create_index('ix_trips_owner_id', 'trips', ['owner_id'])

    # Trip members: joined_at NULL = pending invitation
    op.create_table(
        'trip_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('trip_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('trips.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='viewer'),
        sa.Column('invited_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('invited_at', sa.DateTime(), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('trip_id', 'user_id', name='uq_trip_members_trip_user'),
        sa.CheckConstraint("role IN ('owner', 'editor', 'viewer')", name='ck_trip_members_role'),
    )
    op.create_index('ix_trip_members_trip_id', 'trip_members', ['trip_id'])
    op.create_index('ix_trip_members_user_id', 'trip_members', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_trip_members_user_id', table_name='trip_members')
    op.drop_index('ix_trip_members_trip_id', table_name='trip_members')
    op.drop_table('trip_members')
    op.drop_index('ix_trips_owner_id', table_name='trips')
    op.drop_table('trips')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
