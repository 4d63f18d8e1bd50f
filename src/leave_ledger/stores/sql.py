"""SQLAlchemy-backed stores.

Both stores run inside a caller-owned ``AsyncSession``; they flush but never
commit, so a save can be committed or rolled back as one unit via
``leave_ledger.database.get_session()``.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.calculators.types import EntryType, LeaveLedgerEntry, SessionMetadata, WorkSession
from leave_ledger.errors import RecordStoreError
from leave_ledger.models import LeaveBalanceRecord, WorkSessionRecord
from leave_ledger.stores.base import SessionQuery
from leave_ledger.stores.metadata import decode_metadata, encode_metadata


def _to_session(record: WorkSessionRecord, correlation_id: str | None = None) -> WorkSession:
    return WorkSession(
        id=record.id,
        employee_id=record.employee_id,
        date=record.date,
        entry_type=EntryType(record.entry_type),
        hours=record.hours,
        service_id=record.service_id,
        sessions_count=record.sessions_count,
        students_count=record.students_count,
        rate_used=record.rate_used,
        total_payment=record.total_payment if record.total_payment is not None else Decimal("0"),
        notes=record.notes,
        payable=record.payable,
        metadata=decode_metadata(record.metadata_json),
        deleted=record.deleted,
        deleted_at=record.deleted_at,
        correlation_id=correlation_id,
    )


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    values = {}
    for key, value in changes.items():
        if key == "metadata":
            values["metadata_json"] = encode_metadata(value if isinstance(value, SessionMetadata) else None)
        elif key == "entry_type":
            values["entry_type"] = value.value if isinstance(value, EntryType) else str(value)
        else:
            values[key] = value
    return values


class SqlRecordStore:
    """WorkSession store over the ``work_sessions`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def fetch(self, query: SessionQuery) -> list[WorkSession]:
        stmt = select(WorkSessionRecord)
        if query.employee_ids:
            stmt = stmt.where(WorkSessionRecord.employee_id.in_(list(query.employee_ids)))
        if query.start_date:
            stmt = stmt.where(WorkSessionRecord.date >= query.start_date)
        if query.end_date:
            stmt = stmt.where(WorkSessionRecord.date <= query.end_date)
        if not query.include_deleted:
            stmt = stmt.where(WorkSessionRecord.deleted.is_(False))
        stmt = stmt.order_by(WorkSessionRecord.date, WorkSessionRecord.created_at, WorkSessionRecord.id)
        result = await self.session.execute(stmt)
        return [_to_session(record) for record in result.scalars()]

    async def create(self, sessions: Sequence[WorkSession]) -> list[WorkSession]:
        records = []
        for item in sessions:
            record = WorkSessionRecord(
                employee_id=item.employee_id,
                date=item.date,
                entry_type=item.entry_type.value,
                hours=item.hours,
                service_id=item.service_id,
                sessions_count=item.sessions_count,
                students_count=item.students_count,
                rate_used=item.rate_used,
                total_payment=item.total_payment,
                notes=item.notes,
                payable=item.payable,
                metadata_json=encode_metadata(item.metadata),
                deleted=False,
            )
            self.session.add(record)
            records.append((record, item.correlation_id))
        await self.session.flush()
        return [_to_session(record, token) for record, token in records]

    async def update(self, session_id: str, changes: dict[str, Any]) -> WorkSession:
        record = await self.session.get(WorkSessionRecord, session_id)
        if record is None:
            raise RecordStoreError(f"WorkSession {session_id} not found")
        for key, value in _column_values(changes).items():
            setattr(record, key, value)
        await self.session.flush()
        return _to_session(record)

    async def soft_delete(self, session_ids: Sequence[str]) -> list[str]:
        if not session_ids:
            return []
        stmt = select(WorkSessionRecord).where(
            WorkSessionRecord.id.in_(list(session_ids)),
            WorkSessionRecord.deleted.is_(False),
        )
        result = await self.session.execute(stmt)
        records = list(result.scalars())
        now = datetime.now(timezone.utc)
        for record in records:
            record.deleted = True
            record.deleted_at = now
        await self.session.flush()
        return [record.id for record in records]


class SqlLedgerStore:
    """Leave ledger over the ``leave_balances`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entry(record: LeaveBalanceRecord) -> LeaveLedgerEntry:
        return LeaveLedgerEntry(
            id=record.id,
            employee_id=record.employee_id,
            effective_date=record.effective_date,
            balance=Decimal(record.balance),
            leave_type=record.leave_type,
            work_session_id=record.work_session_id,
            notes=record.notes,
        )

    async def fetch_entries(self, employee_id: str, end_date: date | None = None) -> list[LeaveLedgerEntry]:
        stmt = select(LeaveBalanceRecord).where(LeaveBalanceRecord.employee_id == employee_id)
        if end_date:
            stmt = stmt.where(LeaveBalanceRecord.effective_date <= end_date)
        stmt = stmt.order_by(LeaveBalanceRecord.effective_date, LeaveBalanceRecord.id)
        result = await self.session.execute(stmt)
        return [self._to_entry(record) for record in result.scalars()]

    async def create_entries(self, entries: Sequence[LeaveLedgerEntry]) -> list[LeaveLedgerEntry]:
        records = [
            LeaveBalanceRecord(
                employee_id=entry.employee_id,
                effective_date=entry.effective_date,
                balance=entry.balance,
                leave_type=entry.leave_type,
                work_session_id=entry.work_session_id,
                notes=entry.notes,
            )
            for entry in entries
        ]
        self.session.add_all(records)
        await self.session.flush()
        return [self._to_entry(record) for record in records]

    async def delete_entries(self, entry_ids: Sequence[str]) -> list[str]:
        if not entry_ids:
            return []
        stmt = select(LeaveBalanceRecord).where(LeaveBalanceRecord.id.in_(list(entry_ids)))
        result = await self.session.execute(stmt)
        records = list(result.scalars())
        for record in records:
            await self.session.delete(record)
        await self.session.flush()
        return [record.id for record in records]
