"""In-memory snapshot the selectors compute over."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from leave_ledger.calculators.types import Employee, LeaveLedgerEntry, Service, WorkSession
from leave_ledger.policy import LeavePayPolicy, LeavePolicy


@dataclass
class SelectorContext:
    """Read-only collections owned by the caller."""

    employees: Sequence[Employee] = field(default_factory=list)
    work_sessions: Sequence[WorkSession] = field(default_factory=list)
    services: Sequence[Service] = field(default_factory=list)
    leave_balances: Sequence[LeaveLedgerEntry] = field(default_factory=list)
    leave_policy: LeavePolicy = field(default_factory=LeavePolicy)
    leave_pay_policy: LeavePayPolicy = field(default_factory=LeavePayPolicy)

    def employee(self, employee_id: str) -> Employee | None:
        for employee in self.employees:
            if employee.id == employee_id:
                return employee
        return None

    def services_by_id(self) -> dict[str, Service]:
        return {service.id: service for service in self.services}
