"""initial meet_sessions table

Revision ID: 001
Revises:
Create Date: 2026-09-28 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "meet_sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("flow", sa.String(length=10), nullable=False, server_default="session"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="created"),
        sa.Column("sender_lat", sa.Float(), nullable=False),
        sa.Column("sender_lng", sa.Float(), nullable=False),
        sa.Column("receiver_lat", sa.Float(), nullable=True),
        sa.Column("receiver_lng", sa.Float(), nullable=True),
        sa.Column("privacy_masked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("midpoint_lat", sa.Float(), nullable=True),
        sa.Column("midpoint_lng", sa.Float(), nullable=True),
        sa.Column("candidate_places", sa.JSON(), nullable=False),
        sa.Column("selected_place_id", sa.String(length=300), nullable=True),
        sa.Column("search_radius_m", sa.Integer(), nullable=False, server_default=sa.text("5000")),
        sa.Column("radius_expanded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("invite_token", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_meet_sessions_status", "meet_sessions", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_meet_sessions_status", table_name="meet_sessions")
    op.drop_table("meet_sessions")
