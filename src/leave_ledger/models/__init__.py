"""SQLAlchemy ORM models."""

from leave_ledger.models.base import Base, TimestampMixin
from leave_ledger.models.time_entry import LeaveBalanceRecord, WorkSessionRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "LeaveBalanceRecord",
    "WorkSessionRecord",
]
