"""add invitation_tokens

Revision ID: 002
Revises: 001
Create Date: 2025-03-10 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "invitation_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("trip_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="editor"),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column("invited_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("used_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('editor', 'viewer')", name="ck_invitation_tokens_role"),
    )
    op.create_index("ix_invitation_tokens_token", "invitation_tokens", ["token"], unique=True)
    op.create_index("ix_invitation_tokens_trip_id", "invitation_tokens", ["trip_id"])
    op.create_index("ix_invitation_tokens_email", "invitation_tokens", ["email"])
    # At most one unused token per (trip, email)
    op.create_index(
        "uq_invitation_tokens_trip_email_unused",
        "invitation_tokens",
        ["trip_id", "email"],
        unique=True,
        postgresql_where=sa.text("used_at IS NULL"),
    )


def downgrade():
    op.drop_index("uq_invitation_tokens_trip_email_unused", table_name="invitation_tokens")
    op.drop_index("ix_invitation_tokens_email", table_name="invitation_tokens")
    op.drop_index("ix_invitation_tokens_trip_id", table_name="invitation_tokens")
    op.drop_index("ix_invitation_tokens_token", table_name="invitation_tokens")
    op.drop_table("invitation_tokens")
