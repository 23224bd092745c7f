"""create tenant accounts with quota counters

Revision ID: 20261019_00
Revises:
Create Date: 2026-10-19 09:10:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_00"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenant_accounts",
        sa.Column("tenant_id", sa.String(length=255), nullable=False),
        sa.Column("tier", sa.String(length=50), nullable=False, server_default="trial"),
        sa.Column("current_projects", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_month_expenses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_users", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expense_counter_reset_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("tenant_id"),
        sa.CheckConstraint("current_projects >= 0", name="ck_tenant_accounts_projects_nonneg"),
        sa.CheckConstraint("current_month_expenses >= 0", name="ck_tenant_accounts_expenses_nonneg"),
        sa.CheckConstraint("current_users >= 0", name="ck_tenant_accounts_users_nonneg"),
    )
    op.create_index("ix_tenant_accounts_tier", "tenant_accounts", ["tier"], unique=False)

    op.alter_column("tenant_accounts", "tier", server_default=None)


def downgrade() -> None:
    op.drop_index("ix_tenant_accounts_tier", table_name="tenant_accounts")
    op.drop_table("tenant_accounts")
