"""Leave balance replay.

The balance for a date is rebuilt from scratch: for every calendar year
from the hire year up to the evaluation year,

    remaining = quota + carry_in - used

where ``used`` is the negated sum of ledger deltas dated within that year
(and at or before the evaluation date in the final year). When carry-over
is enabled each closing balance feeds the next year's ``carry_in``,
clamped to ``[0, carryover_max_days]``.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from leave_ledger.calculators.context import SelectorContext
from leave_ledger.calculators.types import ZERO, Employee, LeaveLedgerEntry
from leave_ledger.policy import LeavePolicy

DAYS_PRECISION = Decimal("0.001")


def _days(value: Decimal) -> Decimal:
    return value.quantize(DAYS_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LeaveBalanceSummary:
    """Balance of an employee at a date, in days."""

    remaining: Decimal
    used: Decimal
    quota: Decimal
    carry_in: Decimal
    allocations: Decimal
    adjustments: Decimal
    year: int

    @classmethod
    def empty(cls, year: int) -> LeaveBalanceSummary:
        return cls(
            remaining=ZERO,
            used=ZERO,
            quota=ZERO,
            carry_in=ZERO,
            allocations=ZERO,
            adjustments=ZERO,
            year=year,
        )


@dataclass(frozen=True)
class BalanceProjection:
    """Balance before and after a prospective change."""

    summary: LeaveBalanceSummary
    delta: Decimal
    projected_remaining: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.summary.remaining


def compute_base_quota_for_year(employee: Employee, year: int, policy: LeavePolicy | None = None) -> Decimal:
    """Annual quota for a year, prorated by calendar days in the hire year."""
    annual = employee.annual_leave_days
    if annual is None and policy is not None:
        annual = policy.annual_quota_days
    if not annual:
        return ZERO
    annual = Decimal(annual)
    start = employee.start_date
    if start is None or start.year < year:
        return annual
    if start.year > year:
        return ZERO
    total_days = 366 if calendar.isleap(year) else 365
    remaining_days = (date(year, 12, 31) - start).days + 1
    if remaining_days <= 0:
        return ZERO
    return max(ZERO, annual * remaining_days / total_days)


def _entries_for_year(
    employee_id: str,
    year: int,
    entries: Iterable[LeaveLedgerEntry],
    up_to: date | None,
) -> list[LeaveLedgerEntry]:
    return [
        entry
        for entry in entries
        if entry.employee_id == employee_id
        and entry.effective_date.year == year
        and (up_to is None or entry.effective_date <= up_to)
    ]


def compute_leave_summary(
    employee: Employee | None,
    entries: Iterable[LeaveLedgerEntry],
    policy: LeavePolicy,
    target_date: date,
) -> LeaveBalanceSummary:
    """Replay the ledger to get the balance at a date.

    Unknown employees and dates before the employee start date return
    an all-zero summary.
    """
    if employee is None:
        return LeaveBalanceSummary.empty(target_date.year)
    if employee.start_date and target_date < employee.start_date:
        return LeaveBalanceSummary.empty(target_date.year)

    entries = list(entries)
    start_year = employee.start_date.year if employee.start_date else target_date.year
    carry = ZERO
    summary = LeaveBalanceSummary.empty(target_date.year)

    for year in range(start_year, target_date.year + 1):
        is_target_year = year == target_date.year
        year_entries = _entries_for_year(
            employee.id, year, entries, target_date if is_target_year else None
        )
        quota = compute_base_quota_for_year(employee, year, policy)
        total_delta = sum((Decimal(e.balance) for e in year_entries), ZERO)
        positive = sum((Decimal(e.balance) for e in year_entries if e.balance > 0), ZERO)
        balance = quota + carry + total_delta

        if is_target_year:
            summary = LeaveBalanceSummary(
                remaining=_days(balance),
                used=_days(-total_delta),
                quota=_days(quota),
                carry_in=_days(carry),
                allocations=_days(quota + positive),
                adjustments=_days(total_delta),
                year=year,
            )
        elif policy.carryover_enabled:
            carry = max(ZERO, min(balance, policy.carryover_max_days))
        else:
            carry = ZERO

    return summary


def select_leave_remaining(employee_id: str, target_date: date, context: SelectorContext) -> LeaveBalanceSummary:
    """Balance selector over an in-memory snapshot."""
    return compute_leave_summary(
        context.employee(employee_id),
        context.leave_balances,
        context.leave_policy,
        target_date,
    )


def project_balance_after_change(
    employee: Employee | None,
    entries: Iterable[LeaveLedgerEntry],
    policy: LeavePolicy,
    target_date: date,
    delta: Decimal,
) -> BalanceProjection:
    """Balance at a date plus the effect of a prospective delta."""
    summary = compute_leave_summary(employee, entries, policy, target_date)
    return BalanceProjection(
        summary=summary,
        delta=delta,
        projected_remaining=_days(summary.remaining + delta),
    )


def balance_allows_usage(baseline: Decimal, projected: Decimal, policy: LeavePolicy) -> bool:
    """Check the balance floor for a usage (negative delta).

    Without negative balances a usage is refused when nothing remains
    (baseline <= 0) or when it would go below zero. With negative
    balances only the configured floor applies.
    """
    if policy.allow_negative_balance:
        return projected >= policy.negative_floor
    return baseline > 0 and projected >= 0
