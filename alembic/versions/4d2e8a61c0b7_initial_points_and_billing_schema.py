"""initial points ledger and seat billing schema

Revision ID: 4d2e8a61c0b7
Revises:
Create Date: 2026-10-19 09:12:44.302118

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4d2e8a61c0b7'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

subscription_status = sa.Enum(
    "INACTIVE", "ACTIVE", "PAST_DUE", "CANCELLED", name="subscriptionstatus"
)
account_status = sa.Enum("INVITED", "ACTIVE", "DEACTIVATED", name="accountstatus")
transaction_kind = sa.Enum(
    "RECOGNITION",
    "ADMIN_GRANT",
    "ADMIN_REMOVAL",
    "MEMBER_REMOVAL_RETURN",
    "POOL_GRANT",
    "POOL_DEDUCTION",
    "MONTHLY_ALLOCATION",
    name="transactionkind",
)
subscription_event_type = sa.Enum(
    "SUBSCRIPTION_CREATED",
    "QUANTITY_UPDATED",
    "MIGRATION",
    "SYNC_FAILED",
    "STATUS_CHANGED",
    name="subscriptioneventtype",
)


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("team_member_monthly_limit", sa.Integer(), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("subscription_status", subscription_status, nullable=False),
        sa.Column("team_slots", sa.Integer(), nullable=True),
        sa.Column("seats_out_of_sync", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_companies_slug", "companies", ["slug"], unique=True)
    op.create_index("ix_companies_stripe_subscription_id", "companies", ["stripe_subscription_id"])
    op.create_index("ix_companies_seats_out_of_sync", "companies", ["seats_out_of_sync"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("auth_user_id", sa.String(255), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("department", sa.String(255), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("monthly_limit", sa.Integer(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", account_status, nullable=False),
        sa.Column("invited_by", sa.Uuid(), sa.ForeignKey("accounts.id"), nullable=True),
        sa.Column("activated_at", sa.DateTime(), nullable=True),
        sa.Column("deactivated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("company_id", "email", name="uq_accounts_company_email"),
        sa.CheckConstraint("points >= 0", name="ck_accounts_points_non_negative"),
    )
    op.create_index("ix_accounts_company_id", "accounts", ["company_id"])
    op.create_index("ix_accounts_auth_user_id", "accounts", ["auth_user_id"])
    op.create_index("ix_accounts_status", "accounts", ["status"])

    op.create_table(
        "point_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("sender_id", sa.Uuid(), sa.ForeignKey("accounts.id"), nullable=True),
        sa.Column("recipient_id", sa.Uuid(), sa.ForeignKey("accounts.id"), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("kind", transaction_kind, nullable=False),
        sa.Column("initiated_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("points > 0", name="ck_point_transactions_positive"),
    )
    op.create_index("ix_point_transactions_company_id", "point_transactions", ["company_id"])
    op.create_index("ix_point_transactions_sender_id", "point_transactions", ["sender_id"])
    op.create_index("ix_point_transactions_recipient_id", "point_transactions", ["recipient_id"])
    op.create_index("ix_point_transactions_kind", "point_transactions", ["kind"])
    op.create_index("ix_point_transactions_created_at", "point_transactions", ["created_at"])

    op.create_table(
        "subscription_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("event_type", subscription_event_type, nullable=False),
        sa.Column("previous_quantity", sa.Integer(), nullable=True),
        sa.Column("new_quantity", sa.Integer(), nullable=True),
        sa.Column("previous_slots", sa.Integer(), nullable=True),
        sa.Column("new_slots", sa.Integer(), nullable=True),
        sa.Column("stripe_invoice_id", sa.String(255), nullable=True),
        sa.Column("details", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_subscription_events_company_id", "subscription_events", ["company_id"])
    op.create_index("ix_subscription_events_event_type", "subscription_events", ["event_type"])
    op.create_index("ix_subscription_events_created_at", "subscription_events", ["created_at"])

    op.create_table(
        "platform_settings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_platform_settings_key", "platform_settings", ["key"], unique=True)
    op.execute(
        "INSERT INTO platform_settings (id, key, value, description, created_at, updated_at) "
        "VALUES ('6f1c0e52-3b7a-4c1e-9d0a-2a4f8e9b1c11', 'member_monthly_price_cents', '999', "
        "'Monthly price per active non-admin member, USD cents', "
        "CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
    )


def downgrade() -> None:
    op.drop_table("platform_settings")
    op.drop_table("subscription_events")
    op.drop_table("point_transactions")
    op.drop_table("accounts")
    op.drop_table("companies")
    for enum in (subscription_event_type, transaction_kind, account_status, subscription_status):
        enum.drop(op.get_bind(), checkfirst=True)
