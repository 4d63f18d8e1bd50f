"""Daily rate for employees paid a global monthly salary."""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal

from leave_ledger.calculators.types import Employee, quantize_money

# date.weekday(): Monday == 0
_WEEKDAY_CODES = ("MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN")


def count_working_days(year: int, month: int, working_days: tuple[str, ...]) -> int:
    """Count the days of a month that fall on the given weekday codes."""
    codes = {code.upper()[:3] for code in working_days}
    _, days_in_month = calendar.monthrange(year, month)
    return sum(
        1
        for day in range(1, days_in_month + 1)
        if _WEEKDAY_CODES[date(year, month, day).weekday()] in codes
    )


def calculate_global_daily_rate(employee: Employee, target_date: date, monthly_rate: Decimal) -> Decimal:
    """Monthly rate divided by the employee's working days in that month.

    Raises:
        ValueError: If the month contains none of the employee's working days.
    """
    working_days = count_working_days(target_date.year, target_date.month, employee.working_days)
    if working_days == 0:
        raise ValueError(
            f"No working days for employee {employee.id} in {target_date:%Y-%m}"
        )
    return quantize_money(Decimal(monthly_rate) / working_days)
