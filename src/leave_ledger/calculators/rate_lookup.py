"""Rate history lookup by effective date."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from leave_ledger.calculators.types import GENERIC_RATE_SERVICE_ID, RateQuote


@dataclass(frozen=True)
class RateHistoryEntry:
    """A rate that takes effect on a date for an (employee, service) pair."""

    employee_id: str
    effective_date: date
    rate: Decimal
    service_id: str = GENERIC_RATE_SERVICE_ID


class RateHistoryLookup:
    """Resolves rates from an in-memory rate history.

    Rate selection:
    1. Only entries for the employee and service
    2. Effective date on or before the target date
    3. Latest effective date wins
    """

    def __init__(self, history: Iterable[RateHistoryEntry] = ()):
        self._history = list(history)

    def add(self, entry: RateHistoryEntry) -> None:
        self._history.append(entry)

    def get_rate_for_date(
        self,
        employee_id: str,
        target_date: date,
        service_id: str | None = None,
    ) -> RateQuote:
        """Return the effective rate, or a quote with a reason when none exists."""
        wanted = service_id or GENERIC_RATE_SERVICE_ID
        best: RateHistoryEntry | None = None
        for entry in self._history:
            if entry.employee_id != employee_id or entry.service_id != wanted:
                continue
            if entry.effective_date > target_date:
                continue
            if best is None or entry.effective_date > best.effective_date:
                best = entry

        if best is None:
            return RateQuote(
                rate=None,
                reason=f"No rate for employee {employee_id} and service {wanted} on {target_date}",
            )
        return RateQuote(rate=best.rate)
