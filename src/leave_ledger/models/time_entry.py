"""Work session and leave ledger models."""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leave_ledger.models.base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid4())


class WorkSessionRecord(Base, TimestampMixin):
    """A work, leave or adjustment row for an employee on a date."""

    __tablename__ = "work_sessions"
    __table_args__ = (
        Index("ix_work_sessions_employee_date", "employee_id", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    entry_type: Mapped[str] = mapped_column(String(32), nullable=False)
    hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2))
    service_id: Mapped[str | None] = mapped_column(String(64))
    sessions_count: Mapped[int | None] = mapped_column(Integer)
    students_count: Mapped[int | None] = mapped_column(Integer)
    rate_used: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    total_payment: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text)
    payable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True))


class LeaveBalanceRecord(Base, TimestampMixin):
    """A signed day-count change to an employee's leave balance."""

    __tablename__ = "leave_balances"
    __table_args__ = (
        Index("ix_leave_balances_employee_date", "employee_id", "effective_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    effective_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(8, 3), nullable=False)
    leave_type: Mapped[str] = mapped_column(String(64), nullable=False)
    work_session_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("work_sessions.id", ondelete="SET NULL")
    )
    notes: Mapped[str | None] = mapped_column(Text)
