"""create stable memory tables"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_create_memory_blocks"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "memory_blocks",
        sa.Column("block_no", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
    )
    op.create_table(
        "memory_state",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("size_pages", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("memory_state")
    op.drop_table("memory_blocks")
