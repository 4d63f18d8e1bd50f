"""Leave ledger service - links ledger entries to the sessions that caused them.

Provides:
- Engine entry detection (reserved ``time_entry_leave`` prefix)
- Lookup of entries linked to a set of sessions
- Replace semantics: linked entries are deleted and rewritten, never appended
- Link verification via correlation tokens for newly created sessions
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from leave_ledger.calculators.leave_classifier import ENGINE_LEDGER_PREFIX, LeaveClassification
from leave_ledger.calculators.types import LeaveLedgerEntry, WorkSession
from leave_ledger.errors import LedgerLinkFailure
from leave_ledger.stores.base import LedgerStore


def is_engine_ledger_entry(entry: LeaveLedgerEntry) -> bool:
    """Check if an entry was written by the time entry engine."""
    return bool(entry.leave_type) and entry.leave_type.startswith(ENGINE_LEDGER_PREFIX)


@dataclass(frozen=True)
class PendingLedgerEntry:
    """A ledger entry waiting for its session id.

    Exactly one of ``session_id`` (existing session) or ``correlation_id``
    (session created in the same save) identifies the session.
    """

    employee_id: str
    effective_date: date
    balance: Decimal
    leave_type: str
    session_id: str | None = None
    correlation_id: str | None = None
    notes: str | None = None


def build_pending_entry(
    employee_id: str,
    effective_date: date,
    classification: LeaveClassification,
    *,
    session_id: str | None = None,
    correlation_id: str | None = None,
    notes: str | None = None,
) -> PendingLedgerEntry:
    return PendingLedgerEntry(
        employee_id=employee_id,
        effective_date=effective_date,
        balance=classification.ledger_delta,
        leave_type=classification.ledger_type,
        session_id=session_id,
        correlation_id=correlation_id,
        notes=notes,
    )


@dataclass
class LedgerWriteResult:
    """Outcome of a ledger replace."""

    deleted_ids: list[str] = field(default_factory=list)
    inserted: list[LeaveLedgerEntry] = field(default_factory=list)


class LeaveLedgerService:
    """Ledger writes for the time entry orchestrator."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def fetch_for_employee(self, employee_id: str, end_date: date | None = None) -> list[LeaveLedgerEntry]:
        return await self.store.fetch_entries(employee_id, end_date)

    @staticmethod
    def linked_entries(
        entries: Iterable[LeaveLedgerEntry],
        session_ids: Iterable[str],
    ) -> list[LeaveLedgerEntry]:
        """Engine entries linked to any of the given sessions."""
        wanted = {session_id for session_id in session_ids if session_id}
        return [
            entry
            for entry in entries
            if entry.work_session_id in wanted and is_engine_ledger_entry(entry)
        ]

    @staticmethod
    def resolve_links(
        pending: Iterable[PendingLedgerEntry],
        created_by_token: Mapping[str, WorkSession],
    ) -> list[LeaveLedgerEntry]:
        """Attach session ids to pending entries.

        Raises:
            LedgerLinkFailure: If any entry cannot be matched to a session.
        """
        resolved = []
        unlinked = []
        for item in pending:
            session_id = item.session_id
            if session_id is None and item.correlation_id is not None:
                created = created_by_token.get(item.correlation_id)
                session_id = created.id if created else None
            if not session_id:
                unlinked.append(item.correlation_id)
                continue
            resolved.append(
                LeaveLedgerEntry(
                    employee_id=item.employee_id,
                    effective_date=item.effective_date,
                    balance=item.balance,
                    leave_type=item.leave_type,
                    work_session_id=session_id,
                    notes=item.notes,
                )
            )
        if unlinked:
            raise LedgerLinkFailure(details={"unlinked": unlinked})
        return resolved

    async def replace_entries(
        self,
        delete_ids: Iterable[str],
        entries: list[LeaveLedgerEntry],
    ) -> LedgerWriteResult:
        """Delete stale entries then insert the new ones."""
        result = LedgerWriteResult()
        ids = [entry_id for entry_id in delete_ids if entry_id]
        if ids:
            result.deleted_ids = await self.store.delete_entries(ids)
        if entries:
            result.inserted = await self.store.create_entries(entries)
            if len(result.inserted) != len(entries):
                raise LedgerLinkFailure(
                    "Ledger store did not create every entry",
                    details={"expected": len(entries), "created": len(result.inserted)},
                )
        return result
