"""Monetary value of one paid leave day.

The value is derived from the employee's own earnings history over a
lookback window ending on the leave date:

- legal: total earnings / worked days. With ``legal_allow_12m_if_better``
  a 12 month window is also evaluated and the higher value wins.
- avg_hourly_x_avg_day_hours: (earnings / hours) * (hours / worked days)
- fixed_rate: the employee's fixed day rate, else the policy default

History counts only non-deleted, payable ``hours`` and ``session`` rows.
A worked day is a distinct date with hours or a non-zero payment.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Mapping

from leave_ledger.calculators.context import SelectorContext
from leave_ledger.calculators.pay_method_resolver import ResolvedPayMethod, resolve_leave_pay_method
from leave_ledger.calculators.types import ZERO, Employee, EntryType, Service, WorkSession, quantize_money
from leave_ledger.policy import LeavePayMethod

logger = logging.getLogger(__name__)

WIDE_WINDOW_MONTHS = 12

FallbackEstimator = Callable[[Employee, date], Decimal | None]


def subtract_months(value: date, months: int) -> date:
    """Calendar-month subtraction, clamping to the end of the target month."""
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class WorkHistory:
    """Earnings aggregated over a window."""

    total_earnings: Decimal
    total_hours: Decimal
    worked_days: int

    @property
    def average_daily(self) -> Decimal:
        if self.worked_days == 0:
            return ZERO
        return self.total_earnings / self.worked_days

    @property
    def average_hourly(self) -> Decimal:
        if self.total_hours <= 0:
            return ZERO
        return self.total_earnings / self.total_hours

    @property
    def average_day_hours(self) -> Decimal:
        if self.worked_days == 0:
            return ZERO
        return self.total_hours / self.worked_days


def _session_hours(session: WorkSession, services: Mapping[str, Service]) -> Decimal:
    if session.hours is not None and session.hours > 0:
        return Decimal(session.hours)
    if session.entry_type == EntryType.SESSION and session.service_id in services:
        duration = services[session.service_id].duration_minutes
        if duration:
            return Decimal(duration) / 60 * (session.sessions_count or 1)
    return ZERO


def summarize_work_history(
    sessions: Iterable[WorkSession],
    services: Mapping[str, Service],
    employee_id: str,
    start: date,
    end: date,
) -> WorkHistory:
    """Aggregate payable work for one employee between start and end (inclusive)."""
    earnings = ZERO
    hours = ZERO
    days: set[date] = set()
    for session in sessions:
        if session.employee_id != employee_id or session.deleted or not session.payable:
            continue
        if not session.is_work or not start <= session.date <= end:
            continue
        amount = Decimal(session.total_payment or 0)
        session_hours = _session_hours(session, services)
        earnings += amount
        hours += session_hours
        if session_hours > 0 or amount != 0:
            days.add(session.date)
    return WorkHistory(total_earnings=earnings, total_hours=hours, worked_days=len(days))


def compute_history_value(method: LeavePayMethod, history: WorkHistory) -> Decimal:
    if method == LeavePayMethod.AVG_HOURLY_X_AVG_DAY_HOURS:
        value = history.average_hourly * history.average_day_hours
    else:
        value = history.average_daily
    return quantize_money(value) if value > 0 else ZERO


@dataclass(frozen=True)
class LeaveDayValue:
    """Result of valuing a leave day."""

    value: Decimal
    insufficient_data: bool = False
    pre_start_date: bool = False
    method: LeavePayMethod | None = None
    source: str = "history"  # history / history_12m / fixed_rate / fallback / none / pre_start
    pay_method: ResolvedPayMethod | None = None


def select_leave_day_value(
    employee_id: str,
    target_date: date,
    context: SelectorContext,
    *,
    fallback: FallbackEstimator | None = None,
) -> LeaveDayValue:
    """Value one paid leave day for an employee.

    Args:
        employee_id: Employee to value
        target_date: Leave date; also the end of the lookback window
        context: Snapshot of employees, work sessions, services and policies
        fallback: Optional estimator used when history is insufficient
            (typically current rate times a type-specific formula)

    Returns:
        LeaveDayValue. ``insufficient_data`` stays True even when the
        fallback produced a value, so callers can ask for confirmation.
    """
    employee = context.employee(employee_id)
    if employee is None:
        return LeaveDayValue(value=ZERO, insufficient_data=True, source="none")

    if employee.start_date and target_date < employee.start_date:
        return LeaveDayValue(value=ZERO, pre_start_date=True, source="pre_start")

    resolved = resolve_leave_pay_method(employee, context.leave_pay_policy)

    if resolved.method == LeavePayMethod.FIXED_RATE:
        rate = employee.leave_fixed_day_rate
        if rate is None or rate < 0:
            rate = context.leave_pay_policy.fixed_rate_default
        if rate is not None:
            return LeaveDayValue(
                value=Decimal(rate),
                method=resolved.method,
                source="fixed_rate",
                pay_method=resolved,
            )
        return _insufficient(employee, target_date, resolved, fallback)

    services = context.services_by_id()
    start = subtract_months(target_date, resolved.lookback_months)
    history = summarize_work_history(context.work_sessions, services, employee_id, start, target_date)
    value = compute_history_value(resolved.method, history)
    source = "history"

    if resolved.method == LeavePayMethod.LEGAL and resolved.legal_allow_12m_if_better:
        wide_start = subtract_months(target_date, WIDE_WINDOW_MONTHS)
        wide = summarize_work_history(context.work_sessions, services, employee_id, wide_start, target_date)
        wide_value = compute_history_value(resolved.method, wide)
        if wide_value > value:
            value = wide_value
            source = "history_12m"

    if value <= 0:
        logger.debug(
            "Insufficient leave value history for employee %s on %s "
            "(method=%s, earnings=%s, hours=%s, worked_days=%s)",
            employee_id,
            target_date,
            resolved.method.value,
            history.total_earnings,
            history.total_hours,
            history.worked_days,
        )
        return _insufficient(employee, target_date, resolved, fallback)

    return LeaveDayValue(value=value, method=resolved.method, source=source, pay_method=resolved)


def _insufficient(
    employee: Employee,
    target_date: date,
    resolved: ResolvedPayMethod,
    fallback: FallbackEstimator | None,
) -> LeaveDayValue:
    estimate = fallback(employee, target_date) if fallback else None
    if estimate is not None and estimate > 0:
        return LeaveDayValue(
            value=estimate,
            insufficient_data=True,
            method=resolved.method,
            source="fallback",
            pay_method=resolved,
        )
    return LeaveDayValue(
        value=ZERO,
        insufficient_data=True,
        method=resolved.method,
        source="none",
        pay_method=resolved,
    )
