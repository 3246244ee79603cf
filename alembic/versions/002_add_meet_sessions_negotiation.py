"""meet_sessions: propose/confirm columns and optimistic version

Revision ID: 002
Revises: 001
Create Date: 2026-10-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("meet_sessions", sa.Column("proposed_place_id", sa.String(length=300), nullable=True))
    op.add_column("meet_sessions", sa.Column("confirmed_place_id", sa.String(length=300), nullable=True))
    op.add_column(
        "meet_sessions",
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )


def downgrade() -> None:
    op.drop_column("meet_sessions", "version")
    op.drop_column("meet_sessions", "confirmed_place_id")
    op.drop_column("meet_sessions", "proposed_place_id")
