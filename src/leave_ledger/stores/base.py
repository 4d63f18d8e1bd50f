"""Collaborator protocols for the persistence edge.

The orchestrator never talks to a database directly. Every read and write
goes through these protocols so deployments can plug in SQL, HTTP or
in-memory implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Protocol, Sequence

from leave_ledger.calculators.types import Employee, LeaveLedgerEntry, RateQuote, WorkSession


@dataclass(frozen=True)
class SessionQuery:
    """Filter for reading WorkSession rows."""

    employee_ids: Sequence[str] = field(default_factory=tuple)
    start_date: date | None = None
    end_date: date | None = None
    include_deleted: bool = False

    def matches(self, session: WorkSession) -> bool:
        if self.employee_ids and session.employee_id not in self.employee_ids:
            return False
        if self.start_date and session.date < self.start_date:
            return False
        if self.end_date and session.date > self.end_date:
            return False
        return self.include_deleted or not session.deleted


class RecordStore(Protocol):
    """Authoritative store of WorkSession rows.

    ``create`` must echo each input's ``correlation_id`` on the returned
    row so callers can match created ids back to what they submitted.
    """

    async def fetch(self, query: SessionQuery) -> list[WorkSession]:
        """Return rows matching the query."""
        ...

    async def create(self, sessions: Sequence[WorkSession]) -> list[WorkSession]:
        """Insert rows, returning them with assigned ids."""
        ...

    async def update(self, session_id: str, changes: dict[str, Any]) -> WorkSession:
        """Apply field changes to an existing row."""
        ...

    async def soft_delete(self, session_ids: Sequence[str]) -> list[str]:
        """Mark rows deleted, returning the ids that were deleted."""
        ...


class LedgerStore(Protocol):
    """Store of LeaveLedgerEntry rows."""

    async def fetch_entries(self, employee_id: str, end_date: date | None = None) -> list[LeaveLedgerEntry]:
        """Return an employee's entries dated on or before end_date."""
        ...

    async def create_entries(self, entries: Sequence[LeaveLedgerEntry]) -> list[LeaveLedgerEntry]:
        """Insert entries, returning them with assigned ids."""
        ...

    async def delete_entries(self, entry_ids: Sequence[str]) -> list[str]:
        """Delete entries by id, returning the deleted ids."""
        ...


class RateLookup(Protocol):
    """Effective-dated rate lookup."""

    def get_rate_for_date(
        self,
        employee_id: str,
        target_date: date,
        service_id: str | None = None,
    ) -> RateQuote:
        """Return the rate in effect on the date."""
        ...


class GlobalDailyRateCalculator(Protocol):
    """Converts a monthly salary into a daily rate."""

    def __call__(self, employee: Employee, target_date: date, monthly_rate: Decimal) -> Decimal:
        ...
