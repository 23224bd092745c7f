from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tenant_quota.models.base import TimestampedBase


class TenantAccount(TimestampedBase):
    __tablename__ = "tenant_accounts"
    __table_args__ = (
        CheckConstraint("current_projects >= 0", name="ck_tenant_accounts_projects_nonneg"),
        CheckConstraint("current_month_expenses >= 0", name="ck_tenant_accounts_expenses_nonneg"),
        CheckConstraint("current_users >= 0", name="ck_tenant_accounts_users_nonneg"),
    )

    tenant_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    tier: Mapped[str] = mapped_column(String(50), nullable=False, default="trial", index=True)
    current_projects: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_month_expenses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expense_counter_reset_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
