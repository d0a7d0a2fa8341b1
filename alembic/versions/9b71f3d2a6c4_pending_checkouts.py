"""pending checkouts for gated member changes

Revision ID: 9b71f3d2a6c4
Revises: 4d2e8a61c0b7
Create Date: 2026-10-20 10:41:07.518230

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '9b71f3d2a6c4'
down_revision: str | Sequence[str] | None = '4d2e8a61c0b7'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "pending_checkouts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("checkout_session_id", sa.String(255), nullable=False),
        sa.Column("seat_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("members", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("reactivate_account_ids", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("invited_by", sa.Uuid(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_pending_checkouts_company_id", "pending_checkouts", ["company_id"])
    op.create_index(
        "ix_pending_checkouts_checkout_session_id",
        "pending_checkouts",
        ["checkout_session_id"],
        unique=True,
    )
    op.create_index("ix_pending_checkouts_created_at", "pending_checkouts", ["created_at"])


def downgrade() -> None:
    op.drop_table("pending_checkouts")
