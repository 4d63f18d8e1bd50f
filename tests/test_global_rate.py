"""Tests for global employee daily rates."""

from datetime import date
from decimal import Decimal

import pytest

from leave_ledger.calculators.global_rate import calculate_global_daily_rate, count_working_days
from leave_ledger.calculators.types import Employee, EmployeeType


class TestCountWorkingDays:
    def test_sunday_to_thursday(self):
        assert count_working_days(2025, 6, ("SUN", "MON", "TUE", "WED", "THU")) == 22

    def test_codes_are_case_insensitive(self):
        assert count_working_days(2025, 2, ("mon", "tue", "wed", "thu", "fri")) == 20

    def test_no_days(self):
        assert count_working_days(2025, 6, ()) == 0


class TestCalculateGlobalDailyRate:
    """Test monthly to daily conversion."""

    def test_monthly_divided_by_working_days(self, global_employee):
        rate = calculate_global_daily_rate(global_employee, date(2025, 6, 10), Decimal("6600"))

        assert rate == Decimal("300.00")

    def test_rounds_to_cents(self, global_employee):
        rate = calculate_global_daily_rate(global_employee, date(2025, 6, 10), Decimal("1000"))

        assert rate == Decimal("45.45")

    def test_no_working_days_raises(self):
        employee = Employee(id="E9", employee_type=EmployeeType.GLOBAL, working_days=())

        with pytest.raises(ValueError, match="No working days"):
            calculate_global_daily_rate(employee, date(2025, 6, 10), Decimal("6600"))
