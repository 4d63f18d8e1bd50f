"""In-memory stores.

Used for tests, demos and by callers that keep state in process. They
follow the same contract as the SQL stores, including echoing
``correlation_id`` on create.
"""

from __future__ import annotations

from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Any, Sequence
from uuid import uuid4

from leave_ledger.calculators.types import LeaveLedgerEntry, WorkSession
from leave_ledger.errors import RecordStoreError
from leave_ledger.stores.base import SessionQuery

_SESSION_FIELDS = {f.name for f in fields(WorkSession)} - {"id", "correlation_id"}


class InMemoryRecordStore:
    """Dict-backed WorkSession store."""

    def __init__(self, sessions: Sequence[WorkSession] = ()):
        self._rows: dict[str, WorkSession] = {}
        for session in sessions:
            row = session if session.id else replace(session, id=str(uuid4()))
            self._rows[row.id] = replace(row, correlation_id=None)

    @property
    def rows(self) -> list[WorkSession]:
        """All rows, including soft-deleted ones."""
        return list(self._rows.values())

    async def fetch(self, query: SessionQuery) -> list[WorkSession]:
        return [replace(row) for row in self._rows.values() if query.matches(row)]

    async def create(self, sessions: Sequence[WorkSession]) -> list[WorkSession]:
        created = []
        for session in sessions:
            row = replace(session, id=str(uuid4()))
            self._rows[row.id] = replace(row, correlation_id=None)
            created.append(row)
        return created

    async def update(self, session_id: str, changes: dict[str, Any]) -> WorkSession:
        if session_id not in self._rows:
            raise RecordStoreError(f"WorkSession {session_id} not found")
        unknown = set(changes) - _SESSION_FIELDS
        if unknown:
            raise RecordStoreError(f"Unknown WorkSession fields: {sorted(unknown)}")
        row = replace(self._rows[session_id], **changes)
        self._rows[session_id] = row
        return replace(row)

    async def soft_delete(self, session_ids: Sequence[str]) -> list[str]:
        deleted = []
        now = datetime.now(timezone.utc)
        for session_id in session_ids:
            row = self._rows.get(session_id)
            if row is None or row.deleted:
                continue
            self._rows[session_id] = replace(row, deleted=True, deleted_at=now)
            deleted.append(session_id)
        return deleted


class InMemoryLedgerStore:
    """List-backed leave ledger."""

    def __init__(self, entries: Sequence[LeaveLedgerEntry] = ()):
        self._entries: dict[str, LeaveLedgerEntry] = {}
        for entry in entries:
            row = entry if entry.id else replace(entry, id=str(uuid4()))
            self._entries[row.id] = row

    @property
    def entries(self) -> list[LeaveLedgerEntry]:
        return list(self._entries.values())

    async def fetch_entries(self, employee_id: str, end_date: date | None = None) -> list[LeaveLedgerEntry]:
        return [
            replace(entry)
            for entry in self._entries.values()
            if entry.employee_id == employee_id and (end_date is None or entry.effective_date <= end_date)
        ]

    async def create_entries(self, entries: Sequence[LeaveLedgerEntry]) -> list[LeaveLedgerEntry]:
        created = []
        for entry in entries:
            row = replace(entry, id=str(uuid4()))
            self._entries[row.id] = row
            created.append(replace(row))
        return created

    async def delete_entries(self, entry_ids: Sequence[str]) -> list[str]:
        return [entry_id for entry_id in entry_ids if self._entries.pop(entry_id, None) is not None]
